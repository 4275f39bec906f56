# src/donelist/tasks/task_store.py

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.errors import OperationError, StaleWriteError
from ..core.ports import ErrorCallback, SnapshotCallback, Unsubscribe
from .task_models import Attachment, Task, newest_first

logger = logging.getLogger(__name__)

# Task field -> column. id/owner_id/created_at are written once on insert.
_MUTABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "deadline": "deadline",
    "is_important": "is_important",
    "is_completed": "is_completed",
    "completed_at": "completed_at",
    "is_archived": "is_archived",
    "archived_at": "archived_at",
    "attachment": "attachment",
    "updated_at": "updated_at",
}
_IMMUTABLE_FIELDS = {"id", "owner_id", "created_at"}


@dataclass(slots=True)
class _Listener:
    owner_id: str
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback


class SqliteTaskStore:
    """
    SQLite implementation of the TaskSyncAdapter port.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    - blocking work runs in asyncio.to_thread; listeners are called back on the
      event loop thread that issued the mutation
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._listeners: dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        self._read_seq = itertools.count(1)
        self._delivered_seq: dict[str, int] = {}
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("SqliteTaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        self._listeners.clear()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    deadline TEXT,
                    is_important INTEGER NOT NULL DEFAULT 0,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    completed_at REAL,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    archived_at REAL,
                    attachment TEXT,
                    created_at REAL,
                    updated_at REAL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("SqliteTaskStore migration: added column %s", name)

            add_col("is_important", "INTEGER NOT NULL DEFAULT 0")
            add_col("is_archived", "INTEGER NOT NULL DEFAULT 0")
            add_col("archived_at", "REAL")
            add_col("attachment", "TEXT")
            add_col("updated_at", "REAL")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id, created_at)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _attachment_to_str(attachment: Attachment | None) -> str | None:
        if attachment is None:
            return None
        return json.dumps(attachment.to_dict(), ensure_ascii=False)

    @staticmethod
    def _str_to_attachment(s: str | None) -> Attachment | None:
        if not s:
            return None
        try:
            val = json.loads(s)
        except ValueError:
            logger.warning("Unreadable attachment JSON; ignoring it.")
            return None
        return Attachment.from_dict(val) if isinstance(val, dict) else None

    @staticmethod
    def _deadline_to_str(deadline: datetime | None) -> str | None:
        return deadline.isoformat(timespec="minutes") if deadline is not None else None

    @staticmethod
    def _str_to_deadline(s: str | None) -> datetime | None:
        if not s:
            return None
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            logger.warning("Unreadable deadline %r; treating as none.", s)
            return None

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            deadline=self._str_to_deadline(row["deadline"]),
            is_important=bool(row["is_important"]),
            is_completed=bool(row["is_completed"]),
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
            is_archived=bool(row["is_archived"]),
            archived_at=float(row["archived_at"]) if row["archived_at"] is not None else None,
            attachment=self._str_to_attachment(row["attachment"]),
            created_at=float(row["created_at"]) if row["created_at"] is not None else None,
            updated_at=float(row["updated_at"]) if row["updated_at"] is not None else None,
        )

    def _encode(self, field: str, value: Any) -> Any:
        if field == "deadline":
            return self._deadline_to_str(value)
        if field == "attachment":
            return self._attachment_to_str(value)
        if field in ("is_important", "is_completed", "is_archived"):
            return int(bool(value))
        return value

    # ---- sync API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def list_tasks(self, owner_id: str) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE owner_id = ?", (owner_id,))
            return newest_first(self._row_to_task(r) for r in cur.fetchall())
        finally:
            conn.close()

    def get_task(self, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def _insert(self, task: Task) -> str:
        task_id = uuid.uuid4().hex
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(
                    id, owner_id, title, description, deadline,
                    is_important, is_completed, completed_at, is_archived, archived_at,
                    attachment, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    task.owner_id,
                    task.title,
                    task.description,
                    self._deadline_to_str(task.deadline),
                    int(task.is_important),
                    int(task.is_completed),
                    task.completed_at,
                    int(task.is_archived),
                    task.archived_at,
                    self._attachment_to_str(task.attachment),
                    task.created_at,
                    task.updated_at,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Task added id=%s owner=%s", task_id, task.owner_id)
        return task_id

    def _update(self, task_id: str, patch: dict[str, Any], expected: dict[str, Any] | None = None) -> str:
        """
        Apply patch; returns the owner id for listener fan-out.

        With expected, the UPDATE is conditional on those columns (compare and
        set, in the same statement), and StaleWriteError is raised if it
        matched no row.
        """
        bad = sorted((set(patch) | set(expected or {})) & _IMMUTABLE_FIELDS)
        if bad:
            raise OperationError("update", f"immutable field(s): {', '.join(bad)}", task_id=task_id)
        unknown = sorted((set(patch) | set(expected or {})) - set(_MUTABLE_FIELDS))
        if unknown:
            raise OperationError("update", f"unknown field(s): {', '.join(unknown)}", task_id=task_id)

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT owner_id FROM tasks WHERE id = ?", (task_id,))
            row = cur.fetchone()
            if row is None:
                raise OperationError("update", "no such task", task_id=task_id)

            if patch:
                fields = [f"{_MUTABLE_FIELDS[k]} = ?" for k in patch]
                params = [self._encode(k, v) for k, v in patch.items()]
                where = ["id = ?"]
                params.append(task_id)
                for k, v in (expected or {}).items():
                    if v is None:
                        where.append(f"{_MUTABLE_FIELDS[k]} IS NULL")
                    else:
                        where.append(f"{_MUTABLE_FIELDS[k]} = ?")
                        params.append(self._encode(k, v))

                cur.execute(
                    f"UPDATE tasks SET {', '.join(fields)} WHERE {' AND '.join(where)}",
                    params,
                )
                conn.commit()
                if expected and cur.rowcount == 0:
                    raise StaleWriteError("update", "task changed since it was read", task_id=task_id)
            return str(row["owner_id"])
        finally:
            conn.close()

    def _delete(self, task_id: str) -> str | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT owner_id FROM tasks WHERE id = ?", (task_id,))
            row = cur.fetchone()
            if row is None:
                return None
            cur.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
            return str(row["owner_id"])
        finally:
            conn.close()

    # ---- TaskSyncAdapter ----

    def subscribe(
        self,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        token = next(self._listener_ids)
        listener = _Listener(owner_id=owner_id, on_snapshot=on_snapshot, on_error=on_error)
        self._listeners[token] = listener
        logger.debug("Subscribed owner=%s token=%s", owner_id, token)

        try:
            tasks = self.list_tasks(owner_id)
        except sqlite3.Error as e:
            listener.on_error(OperationError("subscribe", str(e)))
        else:
            self._deliver(listener, tasks)

        def unsubscribe() -> None:
            if self._listeners.pop(token, None) is not None:
                logger.debug("Unsubscribed owner=%s token=%s", owner_id, token)

        return unsubscribe

    async def create(self, task: Task) -> str:
        try:
            task_id = await asyncio.to_thread(self._insert, task)
        except sqlite3.Error as e:
            raise OperationError("create", str(e)) from e
        await self._notify(task.owner_id)
        return task_id

    async def update(
        self,
        task_id: str,
        patch: dict[str, Any],
        *,
        expected: dict[str, Any] | None = None,
    ) -> None:
        try:
            owner_id = await asyncio.to_thread(
                self._update, task_id, dict(patch), dict(expected) if expected else None
            )
        except sqlite3.Error as e:
            raise OperationError("update", str(e), task_id=task_id) from e
        await self._notify(owner_id)

    async def delete(self, task_id: str) -> None:
        try:
            owner_id = await asyncio.to_thread(self._delete, task_id)
        except sqlite3.Error as e:
            raise OperationError("delete", str(e), task_id=task_id) from e
        if owner_id is not None:
            await self._notify(owner_id)

    # ---- listener fan-out ----

    def _deliver(self, listener: _Listener, tasks: list[Task]) -> None:
        try:
            listener.on_snapshot(list(tasks))
        except Exception:
            logger.exception("Snapshot listener crashed owner=%s", listener.owner_id)

    async def _notify(self, owner_id: str) -> None:
        listeners = [lst for lst in self._listeners.values() if lst.owner_id == owner_id]
        if not listeners:
            return

        # The snapshot read stays off the event loop, like the write before it.
        seq = next(self._read_seq)
        try:
            tasks = await asyncio.to_thread(self.list_tasks, owner_id)
        except sqlite3.Error as e:
            for listener in listeners:
                listener.on_error(OperationError("subscribe", str(e)))
            return

        # Reads run concurrently; never let an older one overwrite a newer one.
        if seq < self._delivered_seq.get(owner_id, 0):
            return
        self._delivered_seq[owner_id] = seq

        for listener in listeners:
            self._deliver(listener, tasks)
