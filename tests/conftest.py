from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from handoff_queue.queue import Identity
from handoff_queue.service import HandoffQueue
from handoff_queue.storage import SqliteTaskBackend


class TickingClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: str = "2025-01-01T00:00:00+00:00") -> None:
        self.current = datetime.fromisoformat(start)

    def __call__(self) -> str:
        self.current += timedelta(seconds=1)
        return self.current.astimezone(timezone.utc).isoformat(timespec="microseconds")


@pytest.fixture
def backend(tmp_path: Path) -> SqliteTaskBackend:
    return SqliteTaskBackend(tmp_path / "handoff.sqlite3", busy_timeout=10.0)


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def queue(backend: SqliteTaskBackend, clock: TickingClock) -> HandoffQueue:
    return HandoffQueue(backend, clock=clock)


@pytest.fixture
def alice() -> Identity:
    return Identity(user_id="alice", teammates=("bob",))


@pytest.fixture
def bob() -> Identity:
    return Identity(user_id="bob", teammates=("alice",))
