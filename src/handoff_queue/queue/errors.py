"""Error taxonomy for handoff queue operations."""

from __future__ import annotations

from typing import Any, Iterable


class HandoffError(RuntimeError):
    """Base class for handoff queue errors.

    ``code`` is the stable machine-readable identifier surfaced by the tool
    and REST bindings.
    """

    code = "handoff_error"

    def to_payload(self) -> dict[str, Any]:
        return {"ok": False, "error": self.code, "message": str(self)}


class InvalidInput(HandoffError):
    """Raised when a required field is missing or a value is outside its enum."""

    code = "invalid_input"


class InvalidTransition(InvalidInput):
    """Raised when a lifecycle operation targets a task in a terminal state."""

    code = "invalid_transition"

    def __init__(self, task_id: str, status: str, operation: str) -> None:
        super().__init__(f"Task '{task_id}' is {status}; cannot {operation}")
        self.task_id = task_id
        self.status = status
        self.operation = operation


class NotFound(HandoffError):
    """Raised when no task matches an id or id fragment."""

    code = "not_found"

    def __init__(self, reference: str) -> None:
        super().__init__(f"Task '{reference}' not found")
        self.reference = reference


class AmbiguousReference(HandoffError):
    """Raised when an id fragment matches more than one task."""

    code = "ambiguous_reference"

    def __init__(
        self,
        reference: str,
        candidates: Iterable[str],
        *,
        truncated: bool = False,
    ) -> None:
        self.reference = reference
        self.candidates = sorted(candidates)
        self.truncated = truncated
        qualifier = "more than " if truncated else ""
        super().__init__(
            f"Task reference '{reference}' matches {qualifier}{len(self.candidates)} tasks: "
            + ", ".join(self.candidates)
        )

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["candidates"] = self.candidates
        payload["truncated"] = self.truncated
        return payload


class NoTasksAvailable(HandoffError):
    """Raised by claim_next when no pending task matches the filters."""

    code = "no_tasks_available"


class StoreUnavailable(HandoffError):
    """Raised when the backing store cannot complete an operation."""

    code = "store_unavailable"


__all__ = [
    "AmbiguousReference",
    "HandoffError",
    "InvalidInput",
    "InvalidTransition",
    "NoTasksAvailable",
    "NotFound",
    "StoreUnavailable",
]
