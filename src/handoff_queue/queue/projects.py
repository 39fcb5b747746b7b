"""Project Aggregator: read-only rollups grouped by project."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .errors import InvalidInput
from .models import (
    ActivityItem,
    HandoffTask,
    ProjectStatus,
    ProjectSummary,
    StatusBucket,
    TaskStatus,
)

if TYPE_CHECKING:
    from ..storage.backend import TaskBackend


def percent_half_up(count: int, total: int) -> int:
    """Integer percentage of ``count`` in ``total``, rounding halves up."""

    if total <= 0:
        return 0
    return (count * 200 + total) // (total * 2)


def _require_project(project_name: str) -> str:
    name = (project_name or "").strip()
    if not name:
        raise InvalidInput("project_name is required")
    return name


def _excerpt(text: str | None, size: int = 60) -> str:
    text = text or ""
    return text if len(text) <= size else text[:size] + "..."


class ProjectAggregator:
    def __init__(self, backend: TaskBackend) -> None:
        self._backend = backend

    def project_status(self, project_name: str) -> ProjectStatus:
        """Count and percentage per status; counts always sum to the total."""

        name = _require_project(project_name)
        counts = self._backend.status_counts(name)
        total = sum(counts.values())
        buckets = [
            StatusBucket(
                status=status,
                count=counts[status],
                percent=percent_half_up(counts[status], total),
            )
            for status in TaskStatus
            if counts.get(status)
        ]
        return ProjectStatus(project_name=name, total=total, buckets=buckets)

    def list_projects(self) -> list[ProjectSummary]:
        return self._backend.project_summaries()

    def project_detail(self, project_name: str) -> dict[str, Any]:
        name = _require_project(project_name)
        tasks = self._backend.query_tasks(project_name=name, order="queue")
        return {"project": name, "tasks": tasks, "stats": self.project_status(name)}

    def activity(self, *, user_id: str | None = None, limit: int = 20) -> list[ActivityItem]:
        """Feed of created/claimed/completed/blocked events, newest first.

        Events are derived from the task timestamps, so a task contributes its
        creation plus its latest lifecycle milestone.
        """

        tasks = self._backend.query_tasks(involving=user_id, order="recent", limit=limit)
        items: list[ActivityItem] = []
        for task in tasks:
            items.extend(_task_events(task))
        items.sort(key=lambda item: item.timestamp, reverse=True)
        return items[:limit]


def _task_events(task: HandoffTask) -> list[ActivityItem]:
    events: list[ActivityItem] = []
    base = {"task_id": task.id, "project_name": task.project_name}

    if task.status is TaskStatus.COMPLETE and task.completed_at:
        events.append(
            ActivityItem(
                id=f"{task.id}-complete",
                type="handoff_complete",
                user=task.claimed_by,
                timestamp=task.completed_at,
                summary=_excerpt(task.output_summary) or f"Completed: {_excerpt(task.instruction)}",
                **base,
            )
        )
    elif task.status is TaskStatus.BLOCKED:
        events.append(
            ActivityItem(
                id=f"{task.id}-blocked",
                type="handoff_blocked",
                user=task.claimed_by or task.created_by,
                timestamp=task.claimed_at or task.created_at,
                summary=f"Blocked: {_excerpt(task.blocked_reason)}",
                **base,
            )
        )
    elif task.claimed_by and task.claimed_at:
        events.append(
            ActivityItem(
                id=f"{task.id}-claimed",
                type="handoff_claimed",
                user=task.claimed_by,
                timestamp=task.claimed_at,
                summary=f"Claimed: {_excerpt(task.instruction)}",
                **base,
            )
        )

    events.append(
        ActivityItem(
            id=f"{task.id}-created",
            type="handoff_created",
            user=task.created_by,
            timestamp=task.created_at,
            summary=f"Created: {_excerpt(task.instruction)}",
            **base,
        )
    )
    return events


__all__ = ["ProjectAggregator", "percent_half_up"]
