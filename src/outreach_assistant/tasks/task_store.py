# src/outreach_assistant/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .task_models import MessagingTask, TargetData, TargetStatus, TaskStatus, TaskTarget

logger = logging.getLogger(__name__)

TASKS_TABLE = "assistant_tasks"
TARGETS_TABLE = "assistant_task_targets"


class StoreError(Exception):
    """Persistence failure with a machine-readable code (not_found, invalid, db_error)."""

    def __init__(self, message: str, code: str = "db_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return f"{self.message} (code={self.code})"


class _Unset:
    pass


UNSET: Any = _Unset()


@dataclass(slots=True, frozen=True)
class NewTarget:
    task_id: str
    owner_user_id: str
    target_user_id: str
    conversation_id: str
    status: TargetStatus
    data: TargetData


class TaskStore:
    """
    SQLite store for assistant tasks and their targets.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextlib.contextmanager
    def _conn(self, context: str) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(f"{context}: {exc}", "db_error") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._conn("ensure_schema") as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {TASKS_TABLE} (
                    id TEXT PRIMARY KEY,
                    owner_user_id TEXT NOT NULL,
                    assistant_user_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    prompt TEXT,
                    payload TEXT NOT NULL DEFAULT '{{}}',
                    result TEXT NOT NULL DEFAULT '{{}}',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    completed_at REAL
                )
                """
            )
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {TARGETS_TABLE} (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    owner_user_id TEXT NOT NULL,
                    target_user_id TEXT NOT NULL,
                    conversation_id TEXT NOT NULL,
                    message_id TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    last_response_message_id TEXT,
                    last_response_at REAL,
                    data TEXT NOT NULL DEFAULT '{{}}',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute(f"PRAGMA table_info({TARGETS_TABLE})")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE {TARGETS_TABLE} ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s.%s", TARGETS_TABLE, name)

            add_col("message_id", "TEXT")
            add_col("last_response_message_id", "TEXT")
            add_col("last_response_at", "REAL")
            add_col("data", "TEXT NOT NULL DEFAULT '{}'")

            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_tasks_owner_status ON {TASKS_TABLE}(owner_user_id, status)"
            )
            cur.execute(f"CREATE INDEX IF NOT EXISTS idx_targets_task ON {TARGETS_TABLE}(task_id)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_targets_conversation "
                f"ON {TARGETS_TABLE}(owner_user_id, conversation_id, status)"
            )
            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_targets_stale ON {TARGETS_TABLE}(status, updated_at)"
            )

    @staticmethod
    def _dict_to_str(value: dict[str, Any] | None) -> str:
        if not value:
            return "{}"
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"value is not JSON-serializable: {exc}", "invalid") from exc

    @staticmethod
    def _str_to_dict(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
        except ValueError:
            logger.warning("Dropping malformed JSON column value")
            return {}
        return val if isinstance(val, dict) else {}

    def _row_to_task(self, row: sqlite3.Row) -> MessagingTask:
        return MessagingTask(
            id=str(row["id"]),
            owner_user_id=str(row["owner_user_id"]),
            assistant_user_id=str(row["assistant_user_id"]),
            kind=str(row["kind"] or "assistant_broadcast"),
            status=TaskStatus.from_db(row["status"]),
            prompt=row["prompt"],
            payload=self._str_to_dict(row["payload"]),
            result=self._str_to_dict(row["result"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
        )

    def _row_to_target(self, row: sqlite3.Row) -> TaskTarget:
        return TaskTarget(
            id=str(row["id"]),
            task_id=str(row["task_id"]),
            owner_user_id=str(row["owner_user_id"]),
            target_user_id=str(row["target_user_id"]),
            conversation_id=str(row["conversation_id"]),
            status=TargetStatus.from_db(row["status"]),
            data=TargetData.from_raw(self._str_to_dict(row["data"])),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            message_id=row["message_id"],
            last_response_message_id=row["last_response_message_id"],
            last_response_at=(
                float(row["last_response_at"]) if row["last_response_at"] is not None else None
            ),
        )

    # ---- tasks ----

    def count_tasks(self) -> int:
        with self._conn("assistant_tasks.count") as conn:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM {TASKS_TABLE}").fetchone()
            return int(n)

    def insert_task(
        self,
        *,
        owner_user_id: str,
        assistant_user_id: str,
        kind: str,
        status: TaskStatus = TaskStatus.PENDING,
        prompt: str | None = None,
        payload: dict[str, Any] | None = None,
        now_ts: float | None = None,
    ) -> MessagingTask:
        if not owner_user_id:
            raise StoreError("assistant_tasks.insert: owner_user_id is required", "invalid")
        if not kind or not kind.strip():
            raise StoreError("assistant_tasks.insert: kind is required", "invalid")

        now = time.time() if now_ts is None else float(now_ts)
        task_id = uuid.uuid4().hex
        with self._conn("assistant_tasks.insert") as conn:
            conn.execute(
                f"""
                INSERT INTO {TASKS_TABLE}(
                    id, owner_user_id, assistant_user_id, kind, status,
                    prompt, payload, result, created_at, updated_at, completed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, '{{}}', ?, ?, NULL)
                """,
                (
                    task_id,
                    owner_user_id,
                    assistant_user_id,
                    kind.strip(),
                    status.value,
                    prompt,
                    self._dict_to_str(payload),
                    now,
                    now,
                ),
            )
        logger.debug("Task inserted id=%s owner=%s kind=%s status=%s", task_id, owner_user_id, kind, status.value)
        return self.require_task(task_id)

    def get_task(self, task_id: str) -> MessagingTask | None:
        with self._conn("assistant_tasks.get") as conn:
            row = conn.execute(f"SELECT * FROM {TASKS_TABLE} WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None

    def require_task(self, task_id: str) -> MessagingTask:
        task = self.get_task(task_id)
        if task is None:
            raise StoreError(f"assistant_tasks: task {task_id} not found", "not_found")
        return task

    def update_task(
        self,
        task_id: str,
        *,
        status: TaskStatus | None = None,
        result: dict[str, Any] | None = None,
        completed_at: float | None | _Unset = UNSET,
        now_ts: float | None = None,
    ) -> MessagingTask:
        fields: list[str] = []
        params: list[Any] = []

        if status is not None:
            fields.append("status = ?")
            params.append(status.value)

        if result is not None:
            fields.append("result = ?")
            params.append(self._dict_to_str(result))

        if not isinstance(completed_at, _Unset):
            fields.append("completed_at = ?")
            params.append(completed_at)

        if fields:
            fields.append("updated_at = ?")
            params.append(time.time() if now_ts is None else float(now_ts))
            params.append(task_id)
            with self._conn("assistant_tasks.update") as conn:
                cur = conn.execute(
                    f"UPDATE {TASKS_TABLE} SET {', '.join(fields)} WHERE id = ?", params
                )
                if cur.rowcount == 0:
                    raise StoreError(f"assistant_tasks.update: task {task_id} not found", "not_found")

        return self.require_task(task_id)

    def list_tasks_for_owner(
        self,
        owner_user_id: str,
        *,
        statuses: Iterable[TaskStatus] | None = None,
        limit: int = 50,
    ) -> list[MessagingTask]:
        """Newest first."""
        sql = f"SELECT * FROM {TASKS_TABLE} WHERE owner_user_id = ?"
        params: list[Any] = [owner_user_id]
        if statuses is not None:
            values = [s.value for s in statuses]
            if not values:
                return []
            sql += f" AND status IN ({','.join('?' for _ in values)})"
            params.extend(values)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(int(limit))
        with self._conn("assistant_tasks.list_for_owner") as conn:
            return [self._row_to_task(r) for r in conn.execute(sql, params).fetchall()]

    def delete_task(self, task_id: str) -> int:
        with self._conn("assistant_tasks.delete") as conn:
            cur = conn.execute(f"DELETE FROM {TASKS_TABLE} WHERE id = ?", (task_id,))
            return int(cur.rowcount)

    # ---- targets ----

    def insert_targets(self, rows: list[NewTarget], *, now_ts: float | None = None) -> list[TaskTarget]:
        if not rows:
            return []
        now = time.time() if now_ts is None else float(now_ts)
        ids: list[str] = []
        with self._conn("assistant_task_targets.insert") as conn:
            for row in rows:
                target_id = uuid.uuid4().hex
                ids.append(target_id)
                conn.execute(
                    f"""
                    INSERT INTO {TARGETS_TABLE}(
                        id, task_id, owner_user_id, target_user_id, conversation_id,
                        message_id, status, last_response_message_id, last_response_at,
                        data, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, NULL, ?, NULL, NULL, ?, ?, ?)
                    """,
                    (
                        target_id,
                        row.task_id,
                        row.owner_user_id,
                        row.target_user_id,
                        row.conversation_id,
                        row.status.value,
                        self._dict_to_str(row.data.to_raw()),
                        now,
                        now,
                    ),
                )
        return [self.require_target(target_id) for target_id in ids]

    def get_target(self, target_id: str) -> TaskTarget | None:
        with self._conn("assistant_task_targets.get") as conn:
            row = conn.execute(f"SELECT * FROM {TARGETS_TABLE} WHERE id = ?", (target_id,)).fetchone()
            return self._row_to_target(row) if row else None

    def require_target(self, target_id: str) -> TaskTarget:
        target = self.get_target(target_id)
        if target is None:
            raise StoreError(f"assistant_task_targets: target {target_id} not found", "not_found")
        return target

    def update_target(
        self,
        target_id: str,
        *,
        status: TargetStatus | None = None,
        message_id: str | None = None,
        last_response_message_id: str | None = None,
        last_response_at: float | None = None,
        data: TargetData | None = None,
        now_ts: float | None = None,
    ) -> TaskTarget:
        fields: list[str] = []
        params: list[Any] = []

        if status is not None:
            fields.append("status = ?")
            params.append(status.value)
        if message_id is not None:
            fields.append("message_id = ?")
            params.append(message_id)
        if last_response_message_id is not None:
            fields.append("last_response_message_id = ?")
            params.append(last_response_message_id)
        if last_response_at is not None:
            fields.append("last_response_at = ?")
            params.append(float(last_response_at))
        if data is not None:
            fields.append("data = ?")
            params.append(self._dict_to_str(data.to_raw()))

        if fields:
            fields.append("updated_at = ?")
            params.append(time.time() if now_ts is None else float(now_ts))
            params.append(target_id)
            with self._conn("assistant_task_targets.update") as conn:
                cur = conn.execute(
                    f"UPDATE {TARGETS_TABLE} SET {', '.join(fields)} WHERE id = ?", params
                )
                if cur.rowcount == 0:
                    raise StoreError(
                        f"assistant_task_targets.update: target {target_id} not found", "not_found"
                    )

        return self.require_target(target_id)

    def list_targets_by_task(self, task_id: str) -> list[TaskTarget]:
        with self._conn("assistant_task_targets.list_by_task") as conn:
            rows = conn.execute(
                f"SELECT * FROM {TARGETS_TABLE} WHERE task_id = ? ORDER BY created_at ASC, rowid ASC",
                (task_id,),
            ).fetchall()
            return [self._row_to_target(r) for r in rows]

    def list_targets_by_conversation(
        self,
        *,
        owner_user_id: str,
        conversation_id: str,
        statuses: Iterable[TargetStatus] | None = None,
    ) -> list[TaskTarget]:
        sql = f"SELECT * FROM {TARGETS_TABLE} WHERE owner_user_id = ? AND conversation_id = ?"
        params: list[Any] = [owner_user_id, conversation_id]
        if statuses is not None:
            values = [s.value for s in statuses]
            if not values:
                return []
            sql += f" AND status IN ({','.join('?' for _ in values)})"
            params.extend(values)
        sql += " ORDER BY created_at ASC, rowid ASC"
        with self._conn("assistant_task_targets.list_by_conversation") as conn:
            return [self._row_to_target(r) for r in conn.execute(sql, params).fetchall()]

    def list_stale_targets(
        self,
        *,
        status: TargetStatus,
        updated_before: float,
        limit: int = 50,
    ) -> list[TaskTarget]:
        """Targets in `status` not touched since `updated_before`, oldest first."""
        with self._conn("assistant_task_targets.list_stale") as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM {TARGETS_TABLE}
                WHERE status = ?
                  AND updated_at < ?
                ORDER BY updated_at ASC
                    LIMIT ?
                """,
                (status.value, float(updated_before), int(limit)),
            ).fetchall()
            return [self._row_to_target(r) for r in rows]

    def delete_targets_for_task(self, task_id: str) -> int:
        with self._conn("assistant_task_targets.delete") as conn:
            cur = conn.execute(f"DELETE FROM {TARGETS_TABLE} WHERE task_id = ?", (task_id,))
            return int(cur.rowcount)
