"""Handoff task queue components."""

from .claims import ClaimEngine
from .errors import (
    AmbiguousReference,
    HandoffError,
    InvalidInput,
    InvalidTransition,
    NoTasksAvailable,
    NotFound,
    StoreUnavailable,
)
from .lifecycle import LifecycleController
from .models import (
    Complexity,
    HandoffTask,
    Identity,
    OutputLocation,
    Priority,
    PriorityFilter,
    ProgressNote,
    ProjectStatus,
    ProjectSummary,
    TaskStatus,
    UpdateResult,
)
from .projects import ProjectAggregator
from .store import TaskStore

__all__ = [
    "AmbiguousReference",
    "ClaimEngine",
    "Complexity",
    "HandoffError",
    "HandoffTask",
    "Identity",
    "InvalidInput",
    "InvalidTransition",
    "LifecycleController",
    "NoTasksAvailable",
    "NotFound",
    "OutputLocation",
    "Priority",
    "PriorityFilter",
    "ProgressNote",
    "ProjectAggregator",
    "ProjectStatus",
    "ProjectSummary",
    "StoreUnavailable",
    "TaskStatus",
    "TaskStore",
    "UpdateResult",
]
