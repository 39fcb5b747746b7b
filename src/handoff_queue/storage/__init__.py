"""Storage abstractions for the handoff queue."""

from .backend import QueueOrder, TaskBackend
from .journal import JournalEvent, JournalUnavailableError, TaskJournal
from .sqlite import SqliteTaskBackend

__all__ = [
    "JournalEvent",
    "JournalUnavailableError",
    "QueueOrder",
    "SqliteTaskBackend",
    "TaskBackend",
    "TaskJournal",
]
