"""Request and response models for the REST API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ..queue.models import (
    ActivityItem,
    Complexity,
    HandoffTask,
    OutputLocation,
    Priority,
    PriorityFilter,
    ProjectStatus,
    TaskStatus,
)


class CreateTaskRequest(BaseModel):
    instruction: str
    context: Optional[str] = None
    priority: Priority = Priority.NORMAL
    project_name: Optional[str] = None
    estimated_complexity: Optional[Complexity] = None
    files_needed: list[str] = Field(default_factory=list)
    parent_task_id: Optional[str] = None


class UpdateTaskRequest(BaseModel):
    instruction: Optional[str] = None
    context: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[TaskStatus] = None


class ClaimNextRequest(BaseModel):
    priority_filter: PriorityFilter = PriorityFilter.ANY
    project_name: Optional[str] = None


class CompleteTaskRequest(BaseModel):
    output_summary: str
    output_location: OutputLocation
    files_created: list[str] = Field(default_factory=list)
    github_repo: Optional[str] = None
    github_paths: list[str] = Field(default_factory=list)
    drive_folder_id: Optional[str] = None
    drive_file_ids: list[str] = Field(default_factory=list)
    worker_notes: Optional[str] = None


class BlockTaskRequest(BaseModel):
    reason: str


class ProgressRequest(BaseModel):
    note: str


class TaskList(BaseModel):
    count: int
    tasks: list[HandoffTask]


class ClaimResponse(BaseModel):
    result: str
    task: Optional[HandoffTask] = None
    message: Optional[str] = None


class UpdateResponse(BaseModel):
    result: str
    changed_fields: list[str] = Field(default_factory=list)
    task: HandoffTask


class ProjectDetail(BaseModel):
    project: str
    tasks: list[HandoffTask]
    stats: ProjectStatus


class ActivityFeed(BaseModel):
    items: list[ActivityItem]


__all__ = [
    "ActivityFeed",
    "BlockTaskRequest",
    "ClaimNextRequest",
    "ClaimResponse",
    "CompleteTaskRequest",
    "CreateTaskRequest",
    "ProgressRequest",
    "ProjectDetail",
    "TaskList",
    "UpdateResponse",
    "UpdateTaskRequest",
]
