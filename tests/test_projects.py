from __future__ import annotations

import pytest

from handoff_queue.queue import Identity, InvalidInput, TaskStatus
from handoff_queue.queue.projects import percent_half_up


def _seed_project(queue, identity, project: str, statuses: dict[str, int]) -> None:
    for status, count in statuses.items():
        for n in range(count):
            task = queue.create_task(identity, f"{status} {n}", project_name=project)
            if status != "pending":
                queue.update_task(identity, task.id, {"status": status})


def test_project_status_percentages(queue, alice) -> None:
    _seed_project(queue, alice, "website", {"pending": 6, "in_progress": 3, "complete": 1})

    status = queue.project_status("website")

    assert status.total == 10
    assert status.counts() == {"pending": 6, "in_progress": 3, "complete": 1}
    assert [(bucket.status, bucket.percent) for bucket in status.buckets] == [
        (TaskStatus.PENDING, 60),
        (TaskStatus.IN_PROGRESS, 30),
        (TaskStatus.COMPLETE, 10),
    ]


def test_project_status_counts_sum_to_total(queue, alice) -> None:
    _seed_project(queue, alice, "thirds", {"pending": 1, "claimed": 1, "blocked": 1})

    status = queue.project_status("thirds")

    assert sum(bucket.count for bucket in status.buckets) == status.total == 3
    assert {bucket.percent for bucket in status.buckets} == {33}


def test_project_status_for_unknown_project(queue) -> None:
    status = queue.project_status("nothing-here")

    assert status.total == 0
    assert status.buckets == []


def test_project_status_requires_name(queue) -> None:
    with pytest.raises(InvalidInput):
        queue.project_status(" ")


@pytest.mark.parametrize(
    ("count", "total", "expected"),
    [(1, 8, 13), (1, 3, 33), (2, 3, 67), (0, 5, 0), (5, 5, 100), (1, 200, 1), (0, 0, 0)],
)
def test_percent_rounds_half_up(count: int, total: int, expected: int) -> None:
    assert percent_half_up(count, total) == expected


def test_list_projects(queue, alice) -> None:
    _seed_project(queue, alice, "beta", {"pending": 2, "complete": 1})
    _seed_project(queue, alice, "alpha", {"complete": 2})
    queue.create_task(alice, "no project")

    summaries = queue.list_projects()

    assert [summary.project_name for summary in summaries] == ["alpha", "beta"]
    beta = summaries[1]
    assert (beta.total, beta.pending, beta.complete) == (3, 2, 1)


def test_project_detail(queue, alice) -> None:
    queue.create_task(alice, "later", project_name="docs")
    urgent = queue.create_task(alice, "first", project_name="docs", priority="urgent")

    detail = queue.project_detail("docs")

    assert detail["project"] == "docs"
    assert detail["tasks"][0].id == urgent.id
    assert detail["stats"].total == 2


def test_activity_feed(queue, alice, bob) -> None:
    created = queue.create_task(alice, "Write docs")
    claimed = queue.create_task(alice, "Fix bug")
    queue.claim_task(bob, claimed.id)
    queue.complete_task(bob, claimed.id, output_summary="Bug fixed", output_location="github")
    queue.block_task(bob, created.id, "unclear scope")
    queue.create_task(Identity(user_id="carol"), "Unrelated")

    feed = queue.activity(limit=10)
    types = [item.type for item in feed]
    assert types[0] == "handoff_created"
    assert "handoff_complete" in types
    assert "handoff_blocked" in types
    timestamps = [item.timestamp for item in feed]
    assert timestamps == sorted(timestamps, reverse=True)

    bobs = queue.activity(user_id="bob")
    assert {item.task_id for item in bobs} == {claimed.id}
    assert len(queue.activity(limit=2)) == 2



def test_launch_project_rollup(queue, alice) -> None:
    _seed_project(queue, alice, "Launch", {"complete": 6, "pending": 3, "blocked": 1})

    status = queue.project_status("Launch")

    assert {bucket.status.value: (bucket.count, bucket.percent) for bucket in status.buckets} == {
        "complete": (6, 60),
        "pending": (3, 30),
        "blocked": (1, 10),
    }
