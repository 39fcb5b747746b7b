"""Models for YAML task batch files."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ..queue.models import Complexity, Priority


class TaskSpec(BaseModel):
    """One task to create from a batch file."""

    instruction: str = Field(..., description="Clear description of what needs to be done.")
    context: str | None = Field(default=None, description="Additional requirements or background.")
    priority: Priority = Field(default=Priority.NORMAL, description="Queue priority.")
    estimated_complexity: Complexity | None = Field(
        default=None,
        description="Informational size estimate.",
    )
    files_needed: list[str] = Field(
        default_factory=list,
        description="Ordered file references the worker will need.",
    )

    @field_validator("instruction")
    @classmethod
    def _normalize_instruction(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Task instruction must not be empty")
        return normalized

    @field_validator("files_needed", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("files_needed must be a sequence of strings")


class TaskBatch(BaseModel):
    """A parent task and the subtasks it breaks down into."""

    id: str = Field(..., description="Unique identifier for the batch file.")
    project_name: str | None = Field(
        default=None,
        description="Project applied to every task in the batch.",
    )
    parent: TaskSpec | None = Field(
        default=None,
        description="Umbrella task; subtasks link back to it through parent_task_id.",
    )
    subtasks: list[TaskSpec] = Field(default_factory=list, description="Tasks to enqueue.")

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Batch id must not be empty")
        return normalized

    @model_validator(mode="after")
    def _require_tasks(self) -> "TaskBatch":
        if self.parent is None and not self.subtasks:
            raise ValueError("Batch must define a parent task or at least one subtask")
        return self

    @property
    def task_count(self) -> int:
        return len(self.subtasks) + (1 if self.parent is not None else 0)


__all__ = ["TaskBatch", "TaskSpec"]
