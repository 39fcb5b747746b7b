from __future__ import annotations

import sqlite3

import pytest

from handoff_queue.queue import (
    ClaimEngine,
    InvalidInput,
    InvalidTransition,
    LifecycleController,
    NotFound,
    OutputLocation,
    TaskStatus,
    TaskStore,
)


@pytest.fixture
def store(backend, clock) -> TaskStore:
    return TaskStore(backend, clock=clock)


@pytest.fixture
def engine(backend, store, clock) -> ClaimEngine:
    return ClaimEngine(backend, store, clock=clock)


@pytest.fixture
def lifecycle(backend, store, clock) -> LifecycleController:
    return LifecycleController(backend, store, clock=clock)


def test_progress_moves_claimed_task_to_in_progress(store, engine, lifecycle) -> None:
    task = store.create("Build the parser", created_by="alice")
    engine.claim_next("bob")

    updated = lifecycle.update_progress(task.id, "tokenizer done")
    updated = lifecycle.update_progress(task.id, "grammar half done")

    assert updated.status is TaskStatus.IN_PROGRESS
    assert [note.note for note in updated.progress_notes] == ["tokenizer done", "grammar half done"]
    first, second = updated.progress_notes
    assert first.timestamp < second.timestamp


def test_progress_on_pending_task_keeps_status(store, lifecycle) -> None:
    task = store.create("Not yet claimed", created_by="alice")

    updated = lifecycle.update_progress(task.id, "early note")

    assert updated.status is TaskStatus.PENDING
    assert len(updated.progress_notes) == 1


def test_progress_requires_note(store, lifecycle) -> None:
    task = store.create("Task", created_by="alice")

    with pytest.raises(InvalidInput):
        lifecycle.update_progress(task.id, "   ")


def test_progress_unknown_task(lifecycle) -> None:
    with pytest.raises(NotFound):
        lifecycle.update_progress("TASK-missing", "note")


def test_progress_ledger_is_append_only(store, lifecycle, backend) -> None:
    task = store.create("Task", created_by="alice")
    lifecycle.update_progress(task.id, "immutable")

    conn = sqlite3.connect(backend.db_path)
    try:
        with pytest.raises(sqlite3.DatabaseError):
            conn.execute("UPDATE handoff_progress SET note = 'rewritten'")
        with pytest.raises(sqlite3.DatabaseError):
            conn.execute("DELETE FROM handoff_progress")
    finally:
        conn.close()

    assert [note.note for note in store.get(task.id).progress_notes] == ["immutable"]


def test_complete_records_outputs(store, engine, lifecycle) -> None:
    task = store.create("Draft the report", created_by="alice")
    engine.claim_next("bob")
    lifecycle.update_progress(task.id, "outline ready")

    done = lifecycle.complete(
        task.id,
        output_summary="Report drafted",
        output_location="github",
        files_created=["report.md"],
        github_repo="acme/reports",
        github_paths=["docs/report.md"],
        worker_notes="needs review",
    )

    assert done.status is TaskStatus.COMPLETE
    assert done.output_location is OutputLocation.GITHUB
    assert done.files_created == ["report.md"]
    assert done.github_paths == ["docs/report.md"]
    assert done.claimed_by == "bob"
    assert done.completed_at is not None
    assert [note.note for note in done.progress_notes] == ["outline ready"]


def test_complete_is_allowed_from_pending(store, lifecycle) -> None:
    task = store.create("Quick fix", created_by="alice")

    done = lifecycle.complete(task.id, output_summary="fixed", output_location="local")

    assert done.status is TaskStatus.COMPLETE
    assert done.claimed_by is None


def test_complete_validates_inputs(store, lifecycle) -> None:
    task = store.create("Task", created_by="alice")

    with pytest.raises(InvalidInput):
        lifecycle.complete(task.id, output_summary="", output_location="local")
    with pytest.raises(InvalidInput):
        lifecycle.complete(task.id, output_summary="done", output_location="s3")
    assert store.get(task.id).status is TaskStatus.PENDING


def test_complete_twice_is_invalid(store, lifecycle) -> None:
    task = store.create("Task", created_by="alice")
    lifecycle.complete(task.id, output_summary="first", output_location="local")

    with pytest.raises(InvalidTransition):
        lifecycle.complete(task.id, output_summary="second", output_location="local")

    assert store.get(task.id).output_summary == "first"


def test_block_keeps_claimant(store, engine, lifecycle) -> None:
    task = store.create("Needs credentials", created_by="alice")
    engine.claim_next("bob")

    blocked = lifecycle.block(task.id, "waiting on API key")

    assert blocked.status is TaskStatus.BLOCKED
    assert blocked.blocked_reason == "waiting on API key"
    assert blocked.claimed_by == "bob"


def test_block_from_in_progress_keeps_claimant(store, engine, lifecycle) -> None:
    task = store.create("Migrate the schema", created_by="alice")
    claimed = engine.claim_next("bob")
    working = lifecycle.update_progress(task.id, "dumped old tables")
    assert working.status is TaskStatus.IN_PROGRESS

    blocked = lifecycle.block(task.id, "staging database is down")

    assert blocked.status is TaskStatus.BLOCKED
    assert blocked.claimed_by == "bob"
    assert blocked.claimed_at == claimed.claimed_at
    assert [note.note for note in blocked.progress_notes] == ["dumped old tables"]


def test_block_requires_reason(store, lifecycle) -> None:
    task = store.create("Task", created_by="alice")

    with pytest.raises(InvalidInput):
        lifecycle.block(task.id, "")


def test_blocked_task_cannot_complete_until_reopened(store, lifecycle) -> None:
    task = store.create("Task", created_by="alice")
    lifecycle.block(task.id, "stuck")

    with pytest.raises(InvalidTransition) as excinfo:
        lifecycle.complete(task.id, output_summary="done", output_location="local")
    assert excinfo.value.code == "invalid_transition"

    store.update(task.id, {"status": "in_progress"})
    done = lifecycle.complete(task.id, output_summary="done", output_location="local")
    assert done.status is TaskStatus.COMPLETE
