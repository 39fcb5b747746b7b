"""SQLite-backed handoff task table."""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Iterable

from ..queue.errors import StoreUnavailable
from ..queue.models import (
    PRIORITY_RANK,
    HandoffTask,
    Priority,
    ProgressNote,
    ProjectSummary,
    TaskStatus,
)
from .backend import QueueOrder

logger = logging.getLogger(__name__)

_LIST_COLUMNS = ("files_needed", "files_created", "github_paths", "drive_file_ids")

_TASK_COLUMNS = (
    "id",
    "instruction",
    "context",
    "priority",
    "status",
    "project_name",
    "parent_task_id",
    "estimated_complexity",
    "files_needed",
    "created_by",
    "claimed_by",
    "output_summary",
    "output_location",
    "files_created",
    "github_repo",
    "github_paths",
    "drive_folder_id",
    "drive_file_ids",
    "worker_notes",
    "blocked_reason",
    "created_at",
    "claimed_at",
    "completed_at",
)

_RANK_SQL = (
    "CASE priority "
    + " ".join(f"WHEN '{priority.value}' THEN {rank}" for priority, rank in PRIORITY_RANK.items())
    + " ELSE 9 END"
)

_ORDER_SQL: dict[str, str] = {
    "queue": f"{_RANK_SQL} ASC, created_at ASC, seq ASC",
    "completed_desc": "completed_at DESC, seq DESC",
    "recent": "COALESCE(completed_at, claimed_at, created_at) DESC, seq DESC",
}


def _in_clause(values: list[str]) -> str:
    return ",".join("?" for _ in values)


def _escape_like(fragment: str) -> str:
    return fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqliteTaskBackend:
    """
    SQLite implementation of the handoff task table.

    Schema:
    - handoff_tasks: one row per task, list fields stored as JSON arrays
    - handoff_progress: append-only ledger keyed by task id, guarded by triggers

    Thread-safety:
    - each method opens its own connection
    - claims run inside BEGIN IMMEDIATE so selection and transition are one
      write-locked unit
    """

    def __init__(self, db_path: str | Path, *, busy_timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("Handoff store ready db=%s total=%s", self._db_path, self.count_tasks())

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(
                str(self._db_path), timeout=self._busy_timeout, isolation_level=None
            )
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open handoff store at {self._db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            logger.error("Handoff store operation failed: %s", exc)
            raise StoreUnavailable(f"Handoff store operation failed: {exc}") from exc
        finally:
            conn.close()

    @staticmethod
    @contextlib.contextmanager
    def _transaction(conn: sqlite3.Connection, *, immediate: bool = False) -> Iterator[None]:
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        try:
            yield
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("PRAGMA journal_mode=WAL")

            statuses = ",".join(f"'{status.value}'" for status in TaskStatus)
            priorities = ",".join(f"'{priority.value}'" for priority in Priority)
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS handoff_tasks (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    instruction TEXT NOT NULL,
                    context TEXT,
                    priority TEXT NOT NULL DEFAULT 'normal' CHECK (priority IN ({priorities})),
                    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ({statuses})),
                    project_name TEXT,
                    parent_task_id TEXT,
                    estimated_complexity TEXT,
                    files_needed TEXT NOT NULL DEFAULT '[]',
                    created_by TEXT,
                    claimed_by TEXT,
                    output_summary TEXT,
                    output_location TEXT,
                    files_created TEXT NOT NULL DEFAULT '[]',
                    worker_notes TEXT,
                    blocked_reason TEXT,
                    created_at TEXT NOT NULL,
                    claimed_at TEXT,
                    completed_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS handoff_progress (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL,
                    recorded_at TEXT NOT NULL,
                    note TEXT NOT NULL
                )
                """
            )

            # Migrations (safe): completion outputs added after the first schema.
            cols = {row["name"] for row in conn.execute("PRAGMA table_info(handoff_tasks)")}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                conn.execute(f"ALTER TABLE handoff_tasks ADD COLUMN {name} {decl}")
                logger.info("Handoff store migration: added column %s", name)

            add_col("github_repo", "TEXT")
            add_col("github_paths", "TEXT NOT NULL DEFAULT '[]'")
            add_col("drive_folder_id", "TEXT")
            add_col("drive_file_ids", "TEXT NOT NULL DEFAULT '[]'")

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_handoff_queue ON handoff_tasks(status, priority, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_handoff_project ON handoff_tasks(project_name, status)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_handoff_claimant ON handoff_tasks(claimed_by)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_handoff_progress_task ON handoff_progress(task_id, seq)"
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS handoff_progress_no_update
                BEFORE UPDATE ON handoff_progress
                BEGIN
                    SELECT RAISE(ABORT, 'handoff_progress is append-only');
                END
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS handoff_progress_no_delete
                BEFORE DELETE ON handoff_progress
                BEGIN
                    SELECT RAISE(ABORT, 'handoff_progress is append-only');
                END
                """
            )

    @staticmethod
    def _encode_list(values: list[str] | None) -> str:
        return json.dumps(list(values or []), ensure_ascii=False)

    @staticmethod
    def _decode_list(raw: str | None) -> list[str]:
        if not raw:
            return []
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed list column value %r", raw[:80])
            return []
        return [str(item) for item in value] if isinstance(value, list) else []

    def _encode_value(self, column: str, value: Any) -> Any:
        if column in _LIST_COLUMNS:
            return self._encode_list(value)
        if hasattr(value, "value"):
            return value.value
        return value

    def _row_to_task(self, row: sqlite3.Row, notes: list[ProgressNote]) -> HandoffTask:
        data = {column: row[column] for column in _TASK_COLUMNS}
        for column in _LIST_COLUMNS:
            data[column] = self._decode_list(data[column])
        data["progress_notes"] = notes
        return HandoffTask.model_validate(data)

    def _load_notes(
        self, conn: sqlite3.Connection, task_ids: list[str]
    ) -> dict[str, list[ProgressNote]]:
        notes: dict[str, list[ProgressNote]] = {task_id: [] for task_id in task_ids}
        if not task_ids:
            return notes
        rows = conn.execute(
            f"""
            SELECT task_id, recorded_at, note
            FROM handoff_progress
            WHERE task_id IN ({_in_clause(task_ids)})
            ORDER BY seq ASC
            """,
            task_ids,
        )
        for row in rows:
            notes[row["task_id"]].append(ProgressNote(timestamp=row["recorded_at"], note=row["note"]))
        return notes

    def _rows_to_tasks(self, conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[HandoffTask]:
        notes = self._load_notes(conn, [row["id"] for row in rows])
        return [self._row_to_task(row, notes[row["id"]]) for row in rows]

    def _select_one(self, conn: sqlite3.Connection, task_id: str) -> HandoffTask | None:
        row = conn.execute("SELECT * FROM handoff_tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._rows_to_tasks(conn, [row])[0]

    # ---- public API ----

    def count_tasks(self) -> int:
        with self._connect() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM handoff_tasks").fetchone()
            return int(n)

    def insert_task(self, task: HandoffTask) -> bool:
        columns = list(_TASK_COLUMNS)
        values = [self._encode_value(column, getattr(task, column)) for column in columns]
        with self._connect() as conn:
            try:
                conn.execute(
                    f"INSERT INTO handoff_tasks({', '.join(columns)}) VALUES ({_in_clause(columns)})",
                    values,
                )
            except sqlite3.IntegrityError as exc:
                if "handoff_tasks.id" in str(exc):
                    return False
                raise
        logger.debug(
            "Task inserted id=%s priority=%s project=%s",
            task.id,
            task.priority.value,
            task.project_name,
        )
        return True

    def fetch_task(self, task_id: str) -> HandoffTask | None:
        with self._connect() as conn, self._transaction(conn):
            return self._select_one(conn, task_id)

    def find_ids(self, fragment: str, *, limit: int = 10) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id FROM handoff_tasks WHERE id LIKE ? ESCAPE '\\' ORDER BY seq LIMIT ?",
                (f"%{_escape_like(fragment)}%", int(limit)),
            )
            return [row["id"] for row in rows]

    def query_tasks(
        self,
        *,
        statuses: Iterable[TaskStatus] | None = None,
        priorities: Iterable[Priority] | None = None,
        project_name: str | None = None,
        claimants: Iterable[str] | None = None,
        involving: str | None = None,
        completed_since: str | None = None,
        task_ids: Iterable[str] | None = None,
        order: QueueOrder = "queue",
        limit: int | None = None,
    ) -> list[HandoffTask]:
        clauses: list[str] = []
        params: list[Any] = []

        if statuses is not None:
            values = [status.value for status in statuses]
            if not values:
                return []
            clauses.append(f"status IN ({_in_clause(values)})")
            params.extend(values)
        if priorities is not None:
            values = [priority.value for priority in priorities]
            if not values:
                return []
            clauses.append(f"priority IN ({_in_clause(values)})")
            params.extend(values)
        if project_name is not None:
            clauses.append("project_name = ?")
            params.append(project_name)
        if claimants is not None:
            names = list(claimants)
            if not names:
                return []
            clauses.append(f"claimed_by IN ({_in_clause(names)})")
            params.extend(names)
        if involving is not None:
            clauses.append("(created_by = ? OR claimed_by = ?)")
            params.extend([involving, involving])
        if completed_since is not None:
            clauses.append("completed_at >= ?")
            params.append(completed_since)
        if task_ids is not None:
            ids = list(task_ids)
            if not ids:
                return []
            clauses.append(f"id IN ({_in_clause(ids)})")
            params.extend(ids)

        sql = "SELECT * FROM handoff_tasks"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {_ORDER_SQL[order]}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._connect() as conn, self._transaction(conn):
            rows = conn.execute(sql, params).fetchall()
            return self._rows_to_tasks(conn, rows)

    def update_fields(
        self,
        task_id: str,
        fields: dict[str, Any],
        *,
        allowed_statuses: Iterable[TaskStatus] | None = None,
    ) -> bool:
        if not fields:
            return False
        unknown = set(fields) - set(_TASK_COLUMNS[1:])
        if unknown:
            raise ValueError(f"Unknown task columns: {sorted(unknown)}")

        assignments = [f"{column} = ?" for column in fields]
        params: list[Any] = [self._encode_value(column, value) for column, value in fields.items()]
        sql = f"UPDATE handoff_tasks SET {', '.join(assignments)} WHERE id = ?"
        params.append(task_id)
        if allowed_statuses is not None:
            values = [status.value for status in allowed_statuses]
            sql += f" AND status IN ({_in_clause(values)})"
            params.extend(values)

        with self._connect() as conn:
            cur = conn.execute(sql, params)
            return cur.rowcount == 1

    def claim_next_pending(
        self,
        *,
        priorities: Iterable[Priority],
        project_name: str | None,
        claimant_id: str,
        claimed_at: str,
    ) -> HandoffTask | None:
        values = [priority.value for priority in priorities]
        if not values:
            return None
        sql = (
            "SELECT id FROM handoff_tasks WHERE status = 'pending' "
            f"AND priority IN ({_in_clause(values)})"
        )
        params: list[Any] = list(values)
        if project_name is not None:
            sql += " AND project_name = ?"
            params.append(project_name)
        sql += f" ORDER BY {_ORDER_SQL['queue']} LIMIT 1"

        with self._connect() as conn, self._transaction(conn, immediate=True):
            row = conn.execute(sql, params).fetchone()
            if row is None:
                return None
            cur = conn.execute(
                """
                UPDATE handoff_tasks
                SET status = 'claimed', claimed_by = ?, claimed_at = ?
                WHERE id = ?
                  AND status = 'pending'
                """,
                (claimant_id, claimed_at, row["id"]),
            )
            if cur.rowcount != 1:
                return None
            return self._select_one(conn, row["id"])

    def claim_task(
        self,
        task_id: str,
        *,
        claimant_id: str,
        claimed_at: str,
        allowed_statuses: Iterable[TaskStatus],
    ) -> bool:
        values = [status.value for status in allowed_statuses]
        with self._connect() as conn:
            cur = conn.execute(
                f"""
                UPDATE handoff_tasks
                SET status = 'claimed', claimed_by = ?, claimed_at = ?
                WHERE id = ?
                  AND status IN ({_in_clause(values)})
                """,
                (claimant_id, claimed_at, task_id, *values),
            )
            return cur.rowcount == 1

    def append_progress(
        self,
        task_id: str,
        *,
        note: str,
        recorded_at: str,
        advance_from: TaskStatus | None = None,
        advance_to: TaskStatus | None = None,
    ) -> bool:
        with self._connect() as conn, self._transaction(conn, immediate=True):
            exists = conn.execute("SELECT 1 FROM handoff_tasks WHERE id = ?", (task_id,)).fetchone()
            if exists is None:
                return False
            conn.execute(
                "INSERT INTO handoff_progress(task_id, recorded_at, note) VALUES (?, ?, ?)",
                (task_id, recorded_at, note),
            )
            if advance_from is not None and advance_to is not None:
                conn.execute(
                    "UPDATE handoff_tasks SET status = ? WHERE id = ? AND status = ?",
                    (advance_to.value, task_id, advance_from.value),
                )
            return True

    def status_counts(self, project_name: str) -> dict[TaskStatus, int]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT status, COUNT(*) AS count
                FROM handoff_tasks
                WHERE project_name = ?
                GROUP BY status
                """,
                (project_name,),
            )
            return {TaskStatus(row["status"]): int(row["count"]) for row in rows}

    def project_summaries(self) -> list[ProjectSummary]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT project_name,
                       COUNT(*) AS total,
                       SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) AS pending,
                       SUM(CASE WHEN status = 'complete' THEN 1 ELSE 0 END) AS complete
                FROM handoff_tasks
                WHERE project_name IS NOT NULL
                GROUP BY project_name
                ORDER BY project_name ASC
                """
            )
            return [
                ProjectSummary(
                    project_name=row["project_name"],
                    total=int(row["total"]),
                    pending=int(row["pending"] or 0),
                    complete=int(row["complete"] or 0),
                )
                for row in rows
            ]


__all__ = ["SqliteTaskBackend"]
