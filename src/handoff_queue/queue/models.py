"""Data models for handoff tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Queue ordinal; lower ranks are served first."""

        return PRIORITY_RANK[self]


PRIORITY_RANK: dict[Priority, int] = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.NORMAL: 2,
    Priority.LOW: 3,
}


class TaskStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    BLOCKED = "blocked"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETE, TaskStatus.BLOCKED})
ACTIVE_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.CLAIMED, TaskStatus.IN_PROGRESS})


class Complexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class OutputLocation(str, Enum):
    GITHUB = "github"
    DRIVE = "drive"
    BOTH = "both"
    LOCAL = "local"


class PriorityFilter(str, Enum):
    """Eligibility filter for claim_next."""

    ANY = "any"
    HIGH_OR_ABOVE = "high_or_above"
    URGENT_ONLY = "urgent_only"

    def priorities(self) -> tuple[Priority, ...]:
        if self is PriorityFilter.URGENT_ONLY:
            return (Priority.URGENT,)
        if self is PriorityFilter.HIGH_OR_ABOVE:
            return (Priority.URGENT, Priority.HIGH)
        return tuple(Priority)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string that sorts lexically."""

    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def generate_task_id() -> str:
    return f"TASK-{uuid4().hex[:10]}"


class ProgressNote(BaseModel):
    """One entry of the append-only progress ledger."""

    timestamp: str
    note: str


class HandoffTask(BaseModel):
    """A unit of work created by one party and claimed/completed by another."""

    id: str
    instruction: str
    context: str | None = None
    priority: Priority = Priority.NORMAL
    status: TaskStatus = TaskStatus.PENDING
    project_name: str | None = None
    parent_task_id: str | None = None
    estimated_complexity: Complexity | None = None
    files_needed: list[str] = Field(default_factory=list)
    created_by: str | None = None
    claimed_by: str | None = None
    output_summary: str | None = None
    output_location: OutputLocation | None = None
    files_created: list[str] = Field(default_factory=list)
    github_repo: str | None = None
    github_paths: list[str] = Field(default_factory=list)
    drive_folder_id: str | None = None
    drive_file_ids: list[str] = Field(default_factory=list)
    worker_notes: str | None = None
    blocked_reason: str | None = None
    progress_notes: list[ProgressNote] = Field(default_factory=list)
    created_at: str
    claimed_at: str | None = None
    completed_at: str | None = None

    @field_validator("instruction")
    @classmethod
    def _require_instruction(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("instruction must not be empty")
        return value

    def summary(self) -> dict[str, Any]:
        """Compact view used by queue listings."""

        return {
            "id": self.id,
            "status": self.status.value,
            "priority": self.priority.value,
            "instruction": self.instruction,
            "project_name": self.project_name,
            "claimed_by": self.claimed_by,
            "created_at": self.created_at,
        }


# Fields that update() is allowed to touch.
UPDATABLE_FIELDS = ("instruction", "context", "priority", "status")


@dataclass(slots=True)
class UpdateResult:
    """Outcome of a metadata update; an empty ``changed_fields`` means no change."""

    task: HandoffTask
    changed_fields: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.changed_fields)


@dataclass(frozen=True, slots=True)
class Identity:
    """Caller identity supplied by the session layer."""

    user_id: str
    teammates: tuple[str, ...] = field(default_factory=tuple)


class StatusBucket(BaseModel):
    status: TaskStatus
    count: int
    percent: int


class ProjectStatus(BaseModel):
    project_name: str
    total: int
    buckets: list[StatusBucket] = Field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {bucket.status.value: bucket.count for bucket in self.buckets}


class ProjectSummary(BaseModel):
    project_name: str
    total: int
    pending: int
    complete: int


class ActivityItem(BaseModel):
    id: str
    type: str
    user: str | None
    timestamp: str
    summary: str
    task_id: str
    project_name: str | None = None


__all__ = [
    "ACTIVE_STATUSES",
    "ActivityItem",
    "Complexity",
    "HandoffTask",
    "Identity",
    "OutputLocation",
    "PRIORITY_RANK",
    "Priority",
    "PriorityFilter",
    "ProgressNote",
    "ProjectStatus",
    "ProjectSummary",
    "StatusBucket",
    "TERMINAL_STATUSES",
    "TaskStatus",
    "UPDATABLE_FIELDS",
    "UpdateResult",
    "generate_task_id",
    "utc_now_iso",
]
