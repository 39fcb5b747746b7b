"""Storage protocol the queue components are written against."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Literal, Protocol

if TYPE_CHECKING:
    from ..queue.models import HandoffTask, Priority, ProjectSummary, TaskStatus

QueueOrder = Literal["queue", "completed_desc", "recent"]


class TaskBackend(Protocol):
    """Row-level operations over the handoff task table.

    ``claim_next_pending`` and ``claim_task`` are the atomic claim primitives:
    selection and transition must happen as one conditional write so that a
    pending task is handed to at most one caller. Every other write is an
    ordinary single-row update.
    """

    def insert_task(self, task: HandoffTask) -> bool:
        """Insert a new row; return False if the id is already taken."""
        ...

    def fetch_task(self, task_id: str) -> HandoffTask | None:
        ...

    def find_ids(self, fragment: str, *, limit: int = 10) -> list[str]:
        """Return ids containing ``fragment``."""
        ...

    def query_tasks(
        self,
        *,
        statuses: Iterable[TaskStatus] | None = None,
        priorities: Iterable[Priority] | None = None,
        project_name: str | None = None,
        claimants: Iterable[str] | None = None,
        involving: str | None = None,
        completed_since: str | None = None,
        task_ids: Iterable[str] | None = None,
        order: QueueOrder = "queue",
        limit: int | None = None,
    ) -> list[HandoffTask]:
        ...

    def update_fields(
        self,
        task_id: str,
        fields: dict[str, Any],
        *,
        allowed_statuses: Iterable[TaskStatus] | None = None,
    ) -> bool:
        """Apply ``fields`` to one row, optionally gated on its current status."""
        ...

    def claim_next_pending(
        self,
        *,
        priorities: Iterable[Priority],
        project_name: str | None,
        claimant_id: str,
        claimed_at: str,
    ) -> HandoffTask | None:
        ...

    def claim_task(
        self,
        task_id: str,
        *,
        claimant_id: str,
        claimed_at: str,
        allowed_statuses: Iterable[TaskStatus],
    ) -> bool:
        ...

    def append_progress(
        self,
        task_id: str,
        *,
        note: str,
        recorded_at: str,
        advance_from: TaskStatus | None = None,
        advance_to: TaskStatus | None = None,
    ) -> bool:
        ...

    def status_counts(self, project_name: str) -> dict[TaskStatus, int]:
        ...

    def project_summaries(self) -> list[ProjectSummary]:
        ...

    def count_tasks(self) -> int:
        ...


__all__ = ["QueueOrder", "TaskBackend"]
