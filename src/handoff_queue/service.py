"""Queue facade shared by the MCP tools, the REST API and the diag CLI."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from .batches import TaskBatch
from .config import HandoffSettings
from .queue import (
    ClaimEngine,
    HandoffTask,
    Identity,
    LifecycleController,
    ProjectAggregator,
    ProjectStatus,
    ProjectSummary,
    StoreUnavailable,
    TaskStore,
    UpdateResult,
)
from .queue.models import ActivityItem, Complexity, Priority, PriorityFilter, utc_now_iso
from .storage import JournalEvent, JournalUnavailableError, SqliteTaskBackend, TaskBackend, TaskJournal

logger = logging.getLogger(__name__)


class HandoffQueue:
    """Composes the store, claim engine, lifecycle and aggregator over one backend.

    The caller identity is passed explicitly to every operation that records
    who did something. When a journal is attached each mutation is mirrored to
    it; journal failures are logged and never fail the queue operation.
    """

    def __init__(
        self,
        backend: TaskBackend,
        *,
        journal: TaskJournal | None = None,
        clock: Callable[[], str] = utc_now_iso,
        default_limit: int = 20,
    ) -> None:
        self.backend = backend
        self.journal = journal
        self.journal_metadata: dict[str, Any] = {
            "available": journal is not None,
            "path": None,
            "collection": "handoff_events",
            "error": None,
        }
        self.store = TaskStore(backend, clock=clock, default_limit=default_limit)
        self.claims = ClaimEngine(backend, self.store, clock=clock)
        self.lifecycle = LifecycleController(backend, self.store, clock=clock)
        self.projects = ProjectAggregator(backend)

    @classmethod
    def from_settings(cls, settings: HandoffSettings) -> "HandoffQueue":
        backend = SqliteTaskBackend(settings.db_path, busy_timeout=settings.busy_timeout)

        journal: TaskJournal | None = None
        metadata: dict[str, Any] = {
            "available": False,
            "path": str(settings.chroma_persist_path),
            "collection": "handoff_events",
            "error": None,
        }
        if settings.journal_enabled:
            try:
                journal = TaskJournal(settings.chroma_persist_path)
                journal.ping()
                metadata["available"] = True
            except JournalUnavailableError as exc:
                logger.warning("Task journal disabled: %s", exc)
                metadata["error"] = str(exc)
                journal = None
        else:
            metadata["error"] = "disabled by HANDOFF_JOURNAL_ENABLED"

        queue = cls(backend, journal=journal, default_limit=settings.queue_limit)
        queue.journal_metadata = metadata
        return queue

    # ---- task store ----

    def create_task(
        self,
        identity: Identity,
        instruction: str,
        *,
        context: str | None = None,
        priority: Priority | str = Priority.NORMAL,
        project_name: str | None = None,
        estimated_complexity: Complexity | str | None = None,
        files_needed: Iterable[str] | None = None,
        parent_task_id: str | None = None,
    ) -> HandoffTask:
        task = self.store.create(
            instruction,
            created_by=identity.user_id,
            context=context,
            priority=priority,
            project_name=project_name,
            estimated_complexity=estimated_complexity,
            files_needed=files_needed,
            parent_task_id=parent_task_id,
        )
        self._record(task, "task_created", identity, task.summary())
        return task

    def get_task(self, reference: str) -> HandoffTask:
        return self.store.get(reference)

    def view_queue(
        self,
        *,
        status: str | None = None,
        project_name: str | None = None,
        priority: str | None = None,
        limit: int | None = None,
    ) -> list[HandoffTask]:
        return self.store.list_tasks(
            status=status,
            project_name=project_name,
            priority=priority,
            limit=limit,
        )

    def update_task(
        self,
        identity: Identity,
        reference: str,
        fields: Mapping[str, Any],
    ) -> UpdateResult:
        result = self.store.update(reference, fields)
        if result.changed:
            self._record(
                result.task,
                "task_updated",
                identity,
                {"changed_fields": list(result.changed_fields)},
            )
        return result

    def results(
        self,
        *,
        task_id: str | None = None,
        project_name: str | None = None,
        since: str | None = None,
        limit: int | None = None,
    ) -> list[HandoffTask]:
        return self.store.results(
            task_id=task_id,
            project_name=project_name,
            since=since,
            limit=limit,
        )

    def my_tasks(
        self,
        identity: Identity,
        *,
        include_team: bool = False,
        limit: int | None = None,
    ) -> list[HandoffTask]:
        also = identity.teammates if include_team else ()
        return self.store.mine(identity.user_id, also=also, limit=limit)

    # ---- claims ----

    def claim_next(
        self,
        identity: Identity,
        *,
        priority_filter: PriorityFilter | str = PriorityFilter.ANY,
        project_name: str | None = None,
    ) -> HandoffTask:
        task = self.claims.claim_next(
            identity.user_id,
            priority_filter=priority_filter,
            project_name=project_name,
        )
        self._record(task, "task_claimed", identity, {"claimed_at": task.claimed_at})
        return task

    def claim_task(self, identity: Identity, reference: str) -> HandoffTask:
        task = self.claims.claim_specific(reference, identity.user_id)
        self._record(
            task,
            "task_claimed",
            identity,
            {"claimed_at": task.claimed_at, "explicit": True},
        )
        return task

    # ---- lifecycle ----

    def update_progress(self, identity: Identity, reference: str, note: str) -> HandoffTask:
        task = self.lifecycle.update_progress(reference, note)
        self._record(task, "task_progress", identity, {"note": note.strip()})
        return task

    def complete_task(self, identity: Identity, reference: str, **outputs: Any) -> HandoffTask:
        task = self.lifecycle.complete(reference, **outputs)
        self._record(
            task,
            "task_completed",
            identity,
            {
                "output_summary": task.output_summary,
                "output_location": task.output_location,
                "files_created": task.files_created,
            },
        )
        return task

    def block_task(self, identity: Identity, reference: str, reason: str) -> HandoffTask:
        task = self.lifecycle.block(reference, reason)
        self._record(task, "task_blocked", identity, {"reason": task.blocked_reason})
        return task

    # ---- projects ----

    def project_status(self, project_name: str) -> ProjectStatus:
        return self.projects.project_status(project_name)

    def list_projects(self) -> list[ProjectSummary]:
        return self.projects.list_projects()

    def project_detail(self, project_name: str) -> dict[str, Any]:
        return self.projects.project_detail(project_name)

    def activity(self, *, user_id: str | None = None, limit: int = 20) -> list[ActivityItem]:
        return self.projects.activity(user_id=user_id, limit=limit)

    # ---- journal and batches ----

    def task_history(self, reference: str, *, limit: int | None = None) -> list[JournalEvent]:
        """Journal events for one task, oldest first."""

        if self.journal is None:
            raise StoreUnavailable("Task journal is not available")
        task_id = self.store.resolve(reference)
        return self.journal.fetch_task_events(task_id, limit=limit)

    def import_batch(self, identity: Identity, batch: TaskBatch) -> list[HandoffTask]:
        """Create the batch's parent task first, then its subtasks linked to it."""

        created: list[HandoffTask] = []
        parent_id: str | None = None
        if batch.parent is not None:
            parent = self.create_task(
                identity,
                **batch.parent.model_dump(),
                project_name=batch.project_name,
            )
            parent_id = parent.id
            created.append(parent)

        for spec in batch.subtasks:
            created.append(
                self.create_task(
                    identity,
                    **spec.model_dump(),
                    project_name=batch.project_name,
                    parent_task_id=parent_id,
                )
            )

        logger.info(
            "Batch imported id=%s tasks=%s project=%s by=%s",
            batch.id,
            len(created),
            batch.project_name,
            identity.user_id,
        )
        return created

    def status_snapshot(self) -> dict[str, Any]:
        db_path = getattr(self.backend, "db_path", None)
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "store": {
                "db_path": str(db_path) if db_path is not None else None,
                "task_count": self.backend.count_tasks(),
            },
            "journal": dict(self.journal_metadata),
            "projects": [summary.model_dump() for summary in self.list_projects()],
        }

    def _record(
        self,
        task: HandoffTask,
        event_type: str,
        identity: Identity,
        body: dict[str, Any],
    ) -> None:
        if self.journal is None:
            return
        try:
            self.journal.record_event(
                task_id=task.id,
                event_type=event_type,
                body=body,
                user=identity.user_id,
                status=task.status,
                priority=task.priority,
                project_name=task.project_name,
            )
        except Exception:
            logger.warning(
                "Journal write failed task=%s event=%s",
                task.id,
                event_type,
                exc_info=True,
            )


__all__ = ["HandoffQueue"]
