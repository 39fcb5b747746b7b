"""Claim Engine: exclusive assignment of pending tasks to claimants."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from .errors import InvalidInput, InvalidTransition, NoTasksAvailable, NotFound
from .models import ACTIVE_STATUSES, HandoffTask, PriorityFilter, utc_now_iso
from .store import TaskStore, coerce_enum

if TYPE_CHECKING:
    from ..storage.backend import TaskBackend

logger = logging.getLogger(__name__)


class ClaimEngine:
    """Hand pending tasks to exactly one claimant each.

    Both claim paths delegate the select-and-transition step to the backend's
    atomic claim primitives; the engine never reads a candidate and writes it
    in two separate steps, and it never waits or retries.
    """

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

    def claim_next(
        self,
        claimant_id: str,
        *,
        priority_filter: PriorityFilter | str = PriorityFilter.ANY,
        project_name: str | None = None,
    ) -> HandoffTask:
        """Claim the highest-priority, oldest eligible pending task."""

        claimant_id = _require_claimant(claimant_id)
        scope = coerce_enum(PriorityFilter, priority_filter or PriorityFilter.ANY, "priority_filter")
        task = self._backend.claim_next_pending(
            priorities=scope.priorities(),
            project_name=(project_name or "").strip() or None,
            claimant_id=claimant_id,
            claimed_at=self._clock(),
        )
        if task is None:
            logger.debug(
                "No eligible tasks claimant=%s filter=%s project=%s",
                claimant_id,
                scope.value,
                project_name,
            )
            raise NoTasksAvailable("No tasks available")
        logger.info("Task claimed id=%s by=%s", task.id, claimant_id)
        return task

    def claim_specific(self, reference: str, claimant_id: str) -> HandoffTask:
        """Take over a specific task regardless of its current claimant."""

        claimant_id = _require_claimant(claimant_id)
        task_id = self._store.resolve(reference)
        claimed = self._backend.claim_task(
            task_id,
            claimant_id=claimant_id,
            claimed_at=self._clock(),
            allowed_statuses=ACTIVE_STATUSES,
        )
        task = self._backend.fetch_task(task_id)
        if task is None:
            raise NotFound(reference)
        if not claimed:
            raise InvalidTransition(task_id, task.status.value, "claim")
        logger.info("Task reassigned id=%s to=%s", task_id, claimant_id)
        return task


def _require_claimant(claimant_id: str) -> str:
    claimant_id = (claimant_id or "").strip()
    if not claimant_id:
        raise InvalidInput("claimant_id is required")
    return claimant_id


__all__ = ["ClaimEngine"]
