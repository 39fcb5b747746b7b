"""Task batch models and loader exports."""

from .loader import BatchLoadError, BatchLoader, load_batch_file
from .models import TaskBatch, TaskSpec

__all__ = [
    "BatchLoadError",
    "BatchLoader",
    "TaskBatch",
    "TaskSpec",
    "load_batch_file",
]
