from __future__ import annotations

import json
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from handoff_queue.queue import StoreUnavailable, TaskStatus
from handoff_queue.service import HandoffQueue
from handoff_queue.storage import JournalUnavailableError, TaskJournal


@dataclass
class _Record:
    document: str
    metadata: dict[str, Any]
    id: str


class StubCollection:
    def __init__(self) -> None:
        self.records: list[_Record] = []

    def add(self, *, documents, metadatas, ids) -> None:  # type: ignore[override]
        for document, metadata, record_id in zip(documents, metadatas, ids):
            self.records.append(_Record(document=document, metadata=dict(metadata), id=record_id))

    def get(self, *, where=None, include=None):  # type: ignore[override]
        clauses = (where or {}).get("$and", [where] if where else [])
        filtered = self.records
        for clause in clauses:
            for key, value in clause.items():
                filtered = [record for record in filtered if record.metadata.get(key) == value]
        return {
            "ids": [record.id for record in filtered],
            "documents": [record.document for record in filtered],
            "metadatas": [record.metadata for record in filtered],
        }


class StubClient:
    def __init__(self) -> None:
        self.collections = defaultdict(StubCollection)

    def get_or_create_collection(self, name: str) -> StubCollection:
        return self.collections[name]


class FailingCollection(StubCollection):
    def add(self, *, documents, metadatas, ids) -> None:  # type: ignore[override]
        raise RuntimeError("disk full")


def make_journal(tmp_path: Path, client: StubClient | None = None) -> TaskJournal:
    client = client or StubClient()
    return TaskJournal(
        tmp_path / "chroma",
        client_factory=lambda: client,
        clock=lambda: datetime.fromisoformat("2025-01-01T00:00:00+00:00"),
    )


def test_record_and_fetch_events(tmp_path: Path) -> None:
    client = StubClient()
    journal = make_journal(tmp_path, client)

    event = journal.record_event(
        task_id="TASK-1",
        event_type="task_created",
        body={"instruction": "write"},
        user="alice",
        status=TaskStatus.PENDING,
        project_name=None,
    )

    assert event.sequence == 1
    assert event.status == "pending"
    stored = client.collections["handoff_events"].records[0]
    assert "project_name" not in stored.metadata
    assert json.loads(stored.document) == {"instruction": "write"}

    events = journal.fetch_task_events("TASK-1")
    assert len(events) == 1
    assert events[0].user == "alice"
    assert events[0].status == "pending"
    assert events[0].project_name is None
    assert events[0].body == {"instruction": "write"}
    assert events[0].recorded_at == datetime.fromisoformat("2025-01-01T00:00:00+00:00")


def test_sequence_is_per_task(tmp_path: Path) -> None:
    journal = make_journal(tmp_path)

    journal.record_event(task_id="TASK-1", event_type="a", body={"n": "one"})
    journal.record_event(task_id="TASK-2", event_type="a", body={"n": "other"})
    second = journal.record_event(task_id="TASK-1", event_type="b", body={"n": "two"})

    assert second.sequence == 2
    assert [event.body["n"] for event in journal.fetch_task_events("TASK-1")] == ["one", "two"]
    assert [event.event_type for event in journal.fetch_task_events("TASK-1", limit=1)] == ["a"]


def test_sequence_continues_across_journal_instances(tmp_path: Path) -> None:
    client = StubClient()
    make_journal(tmp_path, client).record_event(task_id="TASK-1", event_type="a")
    make_journal(tmp_path, client).record_event(task_id="TASK-1", event_type="b")

    history = make_journal(tmp_path, client).fetch_task_events("TASK-1")

    assert [(event.sequence, event.event_type) for event in history] == [(1, "a"), (2, "b")]


def test_undecodable_document_is_kept_as_text(tmp_path: Path) -> None:
    client = StubClient()
    journal = make_journal(tmp_path, client)
    client.collections["handoff_events"].add(
        documents=["not json"],
        metadatas=[{"task_id": "TASK-1", "event_type": "legacy", "sequence": 1}],
        ids=["TASK-1:legacy"],
    )

    [event] = journal.fetch_task_events("TASK-1")

    assert event.body == {"text": "not json"}
    assert event.event_type == "legacy"


def test_search_events_by_keyword_and_filters(tmp_path: Path) -> None:
    journal = make_journal(tmp_path)
    journal.record_event(
        task_id="TASK-1",
        event_type="task_blocked",
        body={"reason": "missing key"},
        user="bob",
        project_name="ops",
    )
    journal.record_event(
        task_id="TASK-2",
        event_type="task_created",
        body={"instruction": "key rotation"},
        user="alice",
        project_name="ops",
    )
    journal.record_event(
        task_id="TASK-3",
        event_type="task_blocked",
        body={"reason": "no access"},
        user="carol",
        project_name="web",
    )

    assert {event.task_id for event in journal.search_events("KEY")} == {"TASK-1", "TASK-2"}
    blocked = journal.search_events(event_type="task_blocked", project_name="ops")
    assert [event.task_id for event in blocked] == ["TASK-1"]
    assert [event.task_id for event in journal.search_events(event_type="task_blocked", limit=1)] == [
        "TASK-3"
    ]

    with pytest.raises(ValueError):
        journal.search_events(priority="high")


def test_unavailable_client_raises(tmp_path: Path) -> None:
    def factory():
        raise JournalUnavailableError("no chroma")

    journal = TaskJournal(tmp_path, client_factory=factory)

    with pytest.raises(JournalUnavailableError):
        journal.ping()


def test_queue_mirrors_lifecycle_to_journal(tmp_path: Path, backend, clock, alice, bob) -> None:
    journal = make_journal(tmp_path)
    queue = HandoffQueue(backend, journal=journal, clock=clock)

    task = queue.create_task(alice, "Translate the docs", project_name="docs")
    queue.claim_next(bob)
    queue.update_progress(bob, task.id, "half way")
    queue.update_task(alice, task.id, {"priority": "normal"})
    queue.complete_task(bob, task.id, output_summary="translated", output_location="drive")

    history = queue.task_history(task.id)

    assert [event.event_type for event in history] == [
        "task_created",
        "task_claimed",
        "task_progress",
        "task_completed",
    ]
    assert [event.sequence for event in history] == [1, 2, 3, 4]
    assert history[1].user == "bob"
    assert history[-1].status == "complete"
    assert history[-1].body["output_location"] == "drive"
    assert history[0].project_name == "docs"


def test_journal_failure_does_not_fail_operation(tmp_path: Path, backend, clock, alice) -> None:
    client = StubClient()
    client.collections["handoff_events"] = FailingCollection()
    queue = HandoffQueue(backend, journal=make_journal(tmp_path, client), clock=clock)

    task = queue.create_task(alice, "Still created")

    assert queue.get_task(task.id).instruction == "Still created"


def test_task_history_without_journal(queue, alice) -> None:
    task = queue.create_task(alice, "No journal")

    with pytest.raises(StoreUnavailable):
        queue.task_history(task.id)
