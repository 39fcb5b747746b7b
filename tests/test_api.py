from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from handoff_queue.api import create_app
from handoff_queue.config import HandoffSettings
from handoff_queue.queue import StoreUnavailable


@pytest.fixture
def settings(tmp_path: Path) -> HandoffSettings:
    return HandoffSettings(
        HANDOFF_DB_PATH=str(tmp_path / "handoff.sqlite3"),
        HANDOFF_DEFAULT_USER="dashboard",
        HANDOFF_TEAMMATES="bob",
        HANDOFF_JOURNAL_ENABLED=False,
    )


@pytest.fixture
def client(settings, queue) -> TestClient:
    return TestClient(create_app(settings, queue=queue))


def _create(client: TestClient, instruction: str, user: str = "alice", **fields) -> dict:
    response = client.post(
        "/api/handoff/tasks",
        json={"instruction": instruction, **fields},
        headers={"X-Handoff-User": user},
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_root_reports_version(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["name"] == "Handoff Queue"


def test_create_and_get_task(client: TestClient) -> None:
    task = _create(client, "Review the contract", priority="high", project_name="legal")

    assert task["created_by"] == "alice"
    assert task["status"] == "pending"

    fetched = client.get(f"/api/handoff/tasks/{task['id'][-6:]}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == task["id"]


def test_identity_falls_back_to_default_user(client: TestClient) -> None:
    response = client.post("/api/handoff/tasks", json={"instruction": "From the dashboard"})

    assert response.json()["created_by"] == "dashboard"


def test_queue_ordering_and_filters(client: TestClient) -> None:
    _create(client, "normal")
    _create(client, "urgent", priority="urgent")
    _create(client, "elsewhere", project_name="other")

    body = client.get("/api/handoff/queue").json()
    assert body["count"] == 3
    assert body["tasks"][0]["instruction"] == "urgent"

    scoped = client.get("/api/handoff/queue", params={"project": "other"}).json()
    assert [task["instruction"] for task in scoped["tasks"]] == ["elsewhere"]

    bad = client.get("/api/handoff/queue", params={"status": "finished"})
    assert bad.status_code == 422
    assert bad.json()["error"] == "invalid_input"


def test_claim_next_and_empty_queue(client: TestClient) -> None:
    task = _create(client, "only task")

    claimed = client.post("/api/handoff/claim", headers={"X-Handoff-User": "bob"})
    assert claimed.status_code == 200
    assert claimed.json()["result"] == "claimed"
    assert claimed.json()["task"]["id"] == task["id"]
    assert claimed.json()["task"]["claimed_by"] == "bob"

    empty = client.post(
        "/api/handoff/claim",
        json={"priority_filter": "urgent_only"},
        headers={"X-Handoff-User": "carol"},
    )
    assert empty.status_code == 200
    assert empty.json()["result"] == "no_tasks_available"
    assert empty.json()["task"] is None


def test_lifecycle_over_http(client: TestClient) -> None:
    task = _create(client, "Ship the build", project_name="release")
    task_id = task["id"]
    headers = {"X-Handoff-User": "bob"}

    claim = client.post(f"/api/handoff/tasks/{task_id}/claim", headers=headers)
    assert claim.json()["task"]["status"] == "claimed"

    progress = client.post(
        f"/api/handoff/tasks/{task_id}/progress",
        json={"note": "artifacts built"},
        headers=headers,
    )
    assert progress.json()["status"] == "in_progress"

    mine = client.get("/api/handoff/mine", headers=headers).json()
    assert [item["id"] for item in mine["tasks"]] == [task_id]

    team = client.get("/api/handoff/mine", params={"include_team": True}).json()
    assert team["count"] == 1

    done = client.post(
        f"/api/handoff/tasks/{task_id}/complete",
        json={
            "output_summary": "Build shipped",
            "output_location": "both",
            "github_repo": "acme/app",
            "drive_folder_id": "folder",
        },
        headers=headers,
    )
    assert done.status_code == 200
    assert done.json()["status"] == "complete"

    again = client.post(
        f"/api/handoff/tasks/{task_id}/block",
        json={"reason": "too late"},
        headers=headers,
    )
    assert again.status_code == 422
    assert again.json()["error"] == "invalid_transition"

    results = client.get("/api/handoff/results", params={"project": "release"}).json()
    assert results["tasks"][0]["output_summary"] == "Build shipped"

    projects = client.get("/api/handoff/projects").json()
    assert projects == [{"project_name": "release", "total": 1, "pending": 0, "complete": 1}]

    detail = client.get("/api/handoff/projects/release").json()
    assert detail["stats"]["buckets"][0]["percent"] == 100

    activity = client.get("/api/handoff/activity", params={"user": "bob"}).json()
    assert activity["items"][0]["type"] == "handoff_complete"


def test_update_task(client: TestClient) -> None:
    task = _create(client, "Edit me")

    unchanged = client.put(f"/api/handoff/tasks/{task['id']}", json={"instruction": "Edit me"})
    assert unchanged.status_code == 200
    assert unchanged.json()["result"] == "no_change"

    changed = client.put(f"/api/handoff/tasks/{task['id']}", json={"status": "blocked"})
    assert changed.json()["result"] == "updated"
    assert changed.json()["task"]["status"] == "blocked"


def test_error_status_codes(client: TestClient) -> None:
    _create(client, "one")
    _create(client, "two")

    missing = client.get("/api/handoff/tasks/TASK-missing")
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"

    ambiguous = client.get("/api/handoff/tasks/TASK-")
    assert ambiguous.status_code == 409
    assert len(ambiguous.json()["candidates"]) == 2

    blank = client.post("/api/handoff/tasks", json={"instruction": "  "})
    assert blank.status_code == 422

    bad_priority = client.post("/api/handoff/tasks", json={"instruction": "x", "priority": "meh"})
    assert bad_priority.status_code == 422


def test_store_unavailable_maps_to_503(settings, queue, monkeypatch) -> None:
    def broken(**_kwargs):
        raise StoreUnavailable("database is locked")

    monkeypatch.setattr(queue, "view_queue", broken)
    client = TestClient(create_app(settings, queue=queue))

    response = client.get("/api/handoff/queue")

    assert response.status_code == 503
    assert response.json() == {
        "ok": False,
        "error": "store_unavailable",
        "message": "database is locked",
    }
