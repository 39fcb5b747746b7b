"""Task Store: creation, lookup, metadata updates and listings."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, TypeVar

from .errors import AmbiguousReference, InvalidInput, NotFound, StoreUnavailable
from .models import (
    UPDATABLE_FIELDS,
    Complexity,
    HandoffTask,
    Priority,
    TaskStatus,
    UpdateResult,
    generate_task_id,
    utc_now_iso,
)

if TYPE_CHECKING:
    from ..storage.backend import TaskBackend

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

# Fragment lookups fetch one more than this to detect ambiguity.
MAX_CANDIDATES = 10
_ID_ATTEMPTS = 5


def coerce_enum(enum_cls: type[E], value: Any, field: str) -> E:
    """Convert ``value`` to ``enum_cls`` or raise InvalidInput naming the field."""

    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidInput(f"Invalid {field} '{value}'. Must be one of: {allowed}") from exc


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class TaskStore:
    """Durable table of handoff tasks: identity, validation and lookup."""

    def __init__(
        self,
        backend: TaskBackend,
        *,
        clock: Callable[[], str] = utc_now_iso,
        default_limit: int = 20,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._default_limit = default_limit

    def create(
        self,
        instruction: str,
        *,
        created_by: str,
        context: str | None = None,
        priority: Priority | str = Priority.NORMAL,
        project_name: str | None = None,
        estimated_complexity: Complexity | str | None = None,
        files_needed: Iterable[str] | None = None,
        parent_task_id: str | None = None,
    ) -> HandoffTask:
        if not instruction or not instruction.strip():
            raise InvalidInput("instruction is required")

        fields: dict[str, Any] = {
            "instruction": instruction.strip(),
            "context": _optional_text(context),
            "priority": coerce_enum(Priority, priority, "priority"),
            "status": TaskStatus.PENDING,
            "project_name": _optional_text(project_name),
            "parent_task_id": _optional_text(parent_task_id),
            "estimated_complexity": (
                coerce_enum(Complexity, estimated_complexity, "estimated_complexity")
                if estimated_complexity
                else None
            ),
            "files_needed": [str(item) for item in (files_needed or [])],
            "created_by": created_by,
            "created_at": self._clock(),
        }

        for _ in range(_ID_ATTEMPTS):
            task = HandoffTask(id=generate_task_id(), **fields)
            if self._backend.insert_task(task):
                logger.info(
                    "Task created id=%s priority=%s project=%s by=%s",
                    task.id,
                    task.priority.value,
                    task.project_name,
                    created_by,
                )
                return task
            logger.warning("Task id collision on %s; regenerating", task.id)
        raise StoreUnavailable("Could not allocate a unique task id")

    def resolve(self, reference: str) -> str:
        """Resolve an exact id or a unique id fragment to a task id."""

        reference = (reference or "").strip()
        if not reference:
            raise InvalidInput("task_id is required")
        if self._backend.fetch_task(reference) is not None:
            return reference

        candidates = self._backend.find_ids(reference, limit=MAX_CANDIDATES + 1)
        if not candidates:
            raise NotFound(reference)
        if len(candidates) > MAX_CANDIDATES:
            raise AmbiguousReference(reference, candidates[:MAX_CANDIDATES], truncated=True)
        if len(candidates) > 1:
            raise AmbiguousReference(reference, candidates)
        return candidates[0]

    def get(self, reference: str) -> HandoffTask:
        task = self._backend.fetch_task((reference or "").strip())
        if task is not None:
            return task
        task_id = self.resolve(reference)
        task = self._backend.fetch_task(task_id)
        if task is None:
            raise NotFound(reference)
        return task

    def update(self, reference: str, fields: Mapping[str, Any]) -> UpdateResult:
        """Apply whitelisted metadata edits.

        Unknown keys and ``None`` values are ignored, as are values equal to the
        current ones. When nothing is left the task is returned untouched with
        an empty ``changed_fields``.
        """

        task = self.get(reference)
        changes: dict[str, Any] = {}

        for name in UPDATABLE_FIELDS:
            value = fields.get(name)
            if value is None:
                continue
            if name == "instruction":
                if not str(value).strip():
                    raise InvalidInput("instruction must not be empty")
                value = str(value).strip()
            elif name == "context":
                value = _optional_text(value)
            elif name == "priority":
                value = coerce_enum(Priority, value, "priority")
            elif name == "status":
                value = coerce_enum(TaskStatus, value, "status")
            if getattr(task, name) != value:
                changes[name] = value

        ignored = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if ignored:
            logger.debug("Ignoring non-updatable fields %s for task %s", ignored, task.id)

        if not changes:
            return UpdateResult(task=task)

        if not self._backend.update_fields(task.id, changes):
            raise NotFound(task.id)
        logger.info("Task updated id=%s fields=%s", task.id, sorted(changes))
        return UpdateResult(task=self.get(task.id), changed_fields=tuple(sorted(changes)))

    def list_tasks(
        self,
        *,
        status: TaskStatus | str | None = None,
        project_name: str | None = None,
        priority: Priority | str | None = None,
        limit: int | None = None,
    ) -> list[HandoffTask]:
        """Tasks ordered by priority rank, then oldest first."""

        return self._backend.query_tasks(
            statuses=[coerce_enum(TaskStatus, status, "status")] if status else None,
            priorities=[coerce_enum(Priority, priority, "priority")] if priority else None,
            project_name=_optional_text(project_name),
            order="queue",
            limit=self._limit(limit),
        )

    def results(
        self,
        *,
        task_id: str | None = None,
        project_name: str | None = None,
        since: str | None = None,
        limit: int | None = None,
    ) -> list[HandoffTask]:
        """Completed tasks, most recently completed first."""

        return self._backend.query_tasks(
            statuses=[TaskStatus.COMPLETE],
            task_ids=[self.resolve(task_id)] if task_id else None,
            project_name=_optional_text(project_name),
            completed_since=_optional_text(since),
            order="completed_desc",
            limit=self._limit(limit),
        )

    def mine(
        self,
        claimant_id: str,
        *,
        also: Iterable[str] = (),
        limit: int | None = None,
    ) -> list[HandoffTask]:
        """Claimed or in-progress tasks held by ``claimant_id`` (and ``also``)."""

        return self._backend.query_tasks(
            statuses=[TaskStatus.CLAIMED, TaskStatus.IN_PROGRESS],
            claimants=[claimant_id, *also],
            order="queue",
            limit=self._limit(limit),
        )

    def _limit(self, limit: int | None) -> int:
        if limit is None:
            return self._default_limit
        if limit < 1:
            raise InvalidInput("limit must be >= 1")
        return limit


__all__ = ["MAX_CANDIDATES", "TaskStore", "coerce_enum"]
