from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from handoff_queue import __version__
from handoff_queue.config import HandoffSettings
from handoff_queue.server import create_server
from handoff_queue.service import HandoffQueue


@pytest.fixture
def settings(tmp_path: Path) -> HandoffSettings:
    return HandoffSettings(
        HANDOFF_DB_PATH=str(tmp_path / "handoff.sqlite3"),
        CHROMA_PERSIST_PATH=str(tmp_path / "chroma"),
        HANDOFF_JOURNAL_ENABLED=False,
        HANDOFF_TEAMMATES="bob",
    )


def test_create_server_builds_queue_from_settings(settings: HandoffSettings) -> None:
    server = create_server(settings)

    queue = getattr(server, "handoff_queue")
    assert isinstance(queue, HandoffQueue)
    assert queue.journal is None
    assert queue.journal_metadata["available"] is False
    assert Path(getattr(queue.backend, "db_path")) == settings.db_path


def test_status_payload(settings: HandoffSettings, queue, alice) -> None:
    queue.create_task(alice, "status check", project_name="ops")
    server = create_server(settings, queue=queue)

    payload = getattr(server, "build_status")()

    assert payload["server_version"] == __version__
    assert payload["store"]["task_count"] == 1
    assert payload["projects"] == [
        {"project_name": "ops", "total": 1, "pending": 1, "complete": 0}
    ]
    assert payload["teammates"] == ["bob"]


def test_tool_handles_are_callable(settings: HandoffSettings, queue) -> None:
    server = create_server(settings, queue=queue)
    handles = getattr(server, "tool_handles")

    created = handles.create_task.fn(instruction="via server", user_id="alice")
    claimed = handles.get_next_task.fn(user_id="bob")

    assert claimed["task"]["id"] == created["task"]["id"]


def test_every_tool_handle_wraps_its_function(settings: HandoffSettings, queue) -> None:
    server = create_server(settings, queue=queue)
    handles = getattr(server, "tool_handles")

    for field in dataclasses.fields(handles):
        tool = getattr(handles, field.name)
        assert callable(tool.fn), field.name
        assert tool.name.startswith("handoff_")
