"""Chroma-backed journal of handoff lifecycle events.

Each queue mutation becomes one record: the event body is the JSON document,
and the attributes used for filtering (task, event type, actor, status,
project) are Chroma metadata. Events of one task carry a 1-based sequence
number in the order they were journaled.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

FILTER_KEYS = ("event_type", "user", "status", "project_name")


class JournalUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class CollectionProtocol(Protocol):
    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        where: dict[str, Any] | None = None,
        include: list[str] | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


@dataclass(slots=True)
class JournalEvent:
    """One journaled transition of a task."""

    id: str
    task_id: str
    event_type: str
    sequence: int
    recorded_at: datetime
    body: dict[str, Any] = field(default_factory=dict)
    user: str | None = None
    status: str | None = None
    priority: str | None = None
    project_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "event_type": self.event_type,
            "sequence": self.sequence,
            "recorded_at": self.recorded_at.isoformat(),
            "user": self.user,
            "status": self.status,
            "priority": self.priority,
            "project_name": self.project_name,
            "body": self.body,
        }


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def _where(clauses: dict[str, Any]) -> dict[str, Any] | None:
    # Chroma takes a single field match directly; several need an explicit $and.
    items = [{key: value} for key, value in clauses.items() if value is not None]
    if not items:
        return None
    if len(items) == 1:
        return items[0]
    return {"$and": items}


def _decode_event(event_id: str, document: str | None, metadata: dict[str, Any]) -> JournalEvent:
    try:
        body = json.loads(document) if document else {}
    except json.JSONDecodeError:
        body = {"text": document}
    if not isinstance(body, dict):
        body = {"value": body}

    recorded_raw = metadata.get("recorded_at")
    recorded_at = (
        datetime.fromisoformat(recorded_raw)
        if isinstance(recorded_raw, str)
        else datetime.fromtimestamp(0, timezone.utc)
    )
    return JournalEvent(
        id=event_id,
        task_id=str(metadata.get("task_id", "")),
        event_type=str(metadata.get("event_type", "")),
        sequence=int(metadata.get("sequence", 0)),
        recorded_at=recorded_at,
        body=body,
        user=metadata.get("user"),
        status=metadata.get("status"),
        priority=metadata.get("priority"),
        project_name=metadata.get("project_name"),
    )


def _matches(event: JournalEvent, needle: str) -> bool:
    haystack = [event.event_type, event.user or "", event.project_name or ""]
    haystack.extend(str(value) for value in event.body.values())
    return any(needle in text.lower() for text in haystack)


class TaskJournal:
    """Records and queries handoff lifecycle events in a ChromaDB collection.

    The client is created lazily on first use so that a queue can start
    without Chroma and only report the journal as unavailable.
    """

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = "handoff_events",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self.collection_name = collection_name
        self._client_factory = client_factory or self._persistent_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._collection: CollectionProtocol | None = None

    def _persistent_client(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise JournalUnavailableError(
                "chromadb package is not installed; install it to enable the task journal"
            ) from exc

        return chromadb.PersistentClient(path=str(self.path))

    @property
    def collection(self) -> CollectionProtocol:
        if self._collection is None:
            self._collection = self._client_factory().get_or_create_collection(
                self.collection_name
            )
        return self._collection

    def ping(self) -> bool:
        """Verify that the underlying collection can be obtained."""

        return self.collection is not None

    def _next_sequence(self, task_id: str) -> int:
        stored = self.collection.get(where={"task_id": task_id}, include=["metadatas"])
        last = max(
            (int(meta.get("sequence", 0)) for meta in stored.get("metadatas") or []),
            default=0,
        )
        return last + 1

    def record_event(
        self,
        *,
        task_id: str,
        event_type: str,
        body: dict[str, Any] | None = None,
        user: str | None = None,
        status: Any = None,
        priority: Any = None,
        project_name: str | None = None,
    ) -> JournalEvent:
        event = JournalEvent(
            id=f"{task_id}:{uuid.uuid4().hex}",
            task_id=task_id,
            event_type=event_type,
            sequence=self._next_sequence(task_id),
            recorded_at=self._clock(),
            body=dict(body or {}),
            user=user,
            status=_plain(status),
            priority=_plain(priority),
            project_name=project_name,
        )

        metadata = {
            "task_id": event.task_id,
            "event_type": event.event_type,
            "sequence": event.sequence,
            "recorded_at": event.recorded_at.isoformat(),
            "user": event.user,
            "status": event.status,
            "priority": event.priority,
            "project_name": event.project_name,
        }
        self.collection.add(
            documents=[json.dumps(event.body, default=str)],
            # Chroma rejects None metadata values.
            metadatas=[{key: value for key, value in metadata.items() if value is not None}],
            ids=[event.id],
        )
        return event

    def _load(self, where: dict[str, Any] | None) -> list[JournalEvent]:
        result = self.collection.get(where=where, include=["documents", "metadatas"])
        return [
            _decode_event(event_id, document, metadata or {})
            for event_id, document, metadata in zip(
                result.get("ids") or [],
                result.get("documents") or [],
                result.get("metadatas") or [],
            )
        ]

    def fetch_task_events(self, task_id: str, *, limit: int | None = None) -> list[JournalEvent]:
        """Events of one task in sequence order, optionally only the first ``limit``."""

        events = sorted(self._load({"task_id": task_id}), key=lambda event: event.sequence)
        return events[:limit] if limit else events

    def search_events(
        self,
        query: str | None = None,
        *,
        limit: int | None = None,
        **filters: Any,
    ) -> list[JournalEvent]:
        """Events across tasks, oldest first; ``limit`` keeps the most recent ones.

        ``filters`` match metadata exactly (event_type, user, status,
        project_name); ``query`` is a case-insensitive keyword match over the
        event body and its actor and project.
        """

        unknown = set(filters) - set(FILTER_KEYS)
        if unknown:
            raise ValueError(f"Unknown journal filters: {sorted(unknown)}")

        events = self._load(_where({key: _plain(value) for key, value in filters.items()}))
        if query:
            needle = query.lower()
            events = [event for event in events if _matches(event, needle)]
        events.sort(key=lambda event: (event.recorded_at, event.task_id, event.sequence))
        return events[-limit:] if limit else events


__all__ = ["JournalEvent", "JournalUnavailableError", "TaskJournal"]
