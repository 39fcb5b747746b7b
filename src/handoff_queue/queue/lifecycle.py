"""Lifecycle Controller: progress, completion and blocking.

State machine::

    pending -> claimed -> in_progress -> complete
    pending | claimed | in_progress -> blocked

``complete`` and ``blocked`` are terminal for these operations. The only way
back out is a manual status edit through ``TaskStore.update``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable

from .errors import InvalidInput, InvalidTransition, NotFound
from .models import ACTIVE_STATUSES, HandoffTask, OutputLocation, TaskStatus, utc_now_iso
from .store import TaskStore, coerce_enum

if TYPE_CHECKING:
    from ..storage.backend import TaskBackend

logger = logging.getLogger(__name__)


def _required(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidInput(f"{field} is required")
    return text


def _text_list(values: Iterable[str] | None) -> list[str]:
    return [str(value) for value in (values or [])]


class LifecycleController:
    def __init__(
        self,
        backend: TaskBackend,
        store: TaskStore,
        *,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._backend = backend
        self._store = store
        self._clock = clock

    def update_progress(self, reference: str, note: str) -> HandoffTask:
        """Append a note to the progress ledger; a claimed task becomes in_progress."""

        note = _required(note, "note")
        task_id = self._store.resolve(reference)
        appended = self._backend.append_progress(
            task_id,
            note=note,
            recorded_at=self._clock(),
            advance_from=TaskStatus.CLAIMED,
            advance_to=TaskStatus.IN_PROGRESS,
        )
        if not appended:
            raise NotFound(reference)
        task = self._store.get(task_id)
        logger.info(
            "Progress recorded id=%s status=%s entries=%s",
            task_id,
            task.status.value,
            len(task.progress_notes),
        )
        return task

    def complete(
        self,
        reference: str,
        *,
        output_summary: str,
        output_location: OutputLocation | str,
        files_created: Iterable[str] | None = None,
        github_repo: str | None = None,
        github_paths: Iterable[str] | None = None,
        drive_folder_id: str | None = None,
        drive_file_ids: Iterable[str] | None = None,
        worker_notes: str | None = None,
    ) -> HandoffTask:
        """Record completion outputs. Allowed from pending, claimed and in_progress."""

        fields: dict[str, Any] = {
            "status": TaskStatus.COMPLETE,
            "output_summary": _required(output_summary, "output_summary"),
            "output_location": coerce_enum(OutputLocation, output_location, "output_location"),
            "files_created": _text_list(files_created),
            "github_repo": github_repo or None,
            "github_paths": _text_list(github_paths),
            "drive_folder_id": drive_folder_id or None,
            "drive_file_ids": _text_list(drive_file_ids),
            "worker_notes": worker_notes or None,
            "completed_at": self._clock(),
        }
        task = self._transition(reference, fields, operation="complete")
        logger.info("Task completed id=%s location=%s", task.id, task.output_location.value)
        return task

    def block(self, reference: str, reason: str) -> HandoffTask:
        """Mark a non-terminal task blocked; the current claimant is kept."""

        fields = {
            "status": TaskStatus.BLOCKED,
            "blocked_reason": _required(reason, "reason"),
        }
        task = self._transition(reference, fields, operation="block")
        logger.info("Task blocked id=%s reason=%s", task.id, task.blocked_reason)
        return task

    def _transition(self, reference: str, fields: dict[str, Any], *, operation: str) -> HandoffTask:
        task_id = self._store.resolve(reference)
        updated = self._backend.update_fields(task_id, fields, allowed_statuses=ACTIVE_STATUSES)
        task = self._backend.fetch_task(task_id)
        if task is None:
            raise NotFound(reference)
        if not updated:
            raise InvalidTransition(task_id, task.status.value, operation)
        return task


__all__ = ["LifecycleController"]
