# src/taskminder/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from .task_models import Task, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

# Sentinel for "leave this column alone" where None is a meaningful value (deadline cleared).
_UNSET: Any = object()

_PRIORITY_ORDER_SQL = "CASE priority WHEN 'high' THEN 2 WHEN 'medium' THEN 1 ELSE 0 END"


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

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
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    status TEXT NOT NULL DEFAULT 'pending',
                    deadline REAL,
                    estimated_minutes INTEGER,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("description", "TEXT")
            add_col("priority", "TEXT NOT NULL DEFAULT 'medium'")
            add_col("estimated_minutes", "INTEGER")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id, status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_deadline ON tasks(status, deadline)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        est = row["estimated_minutes"]
        return Task(
            id=int(row["id"]),
            owner_id=str(row["owner_id"]),
            title=str(row["title"] or ""),
            description=row["description"],
            priority=TaskPriority.from_db(row["priority"]),
            status=TaskStatus.from_db(row["status"]),
            deadline=float(row["deadline"]) if row["deadline"] is not None else None,
            estimated_minutes=int(est) if est is not None else None,
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(
        self,
        *,
        owner_id: str,
        title: str,
        description: str | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        deadline: float | None = None,
        estimated_minutes: int | None = None,
        status: TaskStatus = TaskStatus.PENDING,
    ) -> int:
        if not owner_id or not owner_id.strip():
            raise ValueError("owner_id is required")
        if not title or not title.strip():
            raise ValueError("title is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    owner_id, title, description, priority, status,
                    deadline, estimated_minutes, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    owner_id.strip(),
                    title.strip(),
                    (description or "").strip() or None,
                    priority.value,
                    status.value,
                    float(deadline) if deadline is not None else None,
                    estimated_minutes,
                    now,
                    now,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
            logger.debug("Task added id=%s owner=%s deadline=%s", task_id, owner_id, deadline)
            return task_id
        finally:
            conn.close()

    def find_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def update_task_fields(
        self,
        task_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
        priority: TaskPriority | None = None,
        status: TaskStatus | None = None,
        deadline: float | None = _UNSET,
        estimated_minutes: int | None = None,
    ) -> bool:
        """
        Partial update. `deadline=None` clears the deadline; omit it to keep the current one.
        Returns True if the row exists.
        """
        fields: list[str] = []
        params: list[Any] = []

        if title is not None:
            fields.append("title = ?")
            params.append(title.strip())

        if description is not None:
            fields.append("description = ?")
            params.append(description.strip() or None)

        if priority is not None:
            fields.append("priority = ?")
            params.append(priority.value)

        if status is not None:
            fields.append("status = ?")
            params.append(status.value)

        if deadline is not _UNSET:
            fields.append("deadline = ?")
            params.append(float(deadline) if deadline is not None else None)

        if estimated_minutes is not None:
            fields.append("estimated_minutes = ?")
            params.append(int(estimated_minutes))

        if not fields:
            return self.find_task(task_id) is not None

        fields.append("updated_at = ?")
        params.append(time.time())
        params.append(int(task_id))

        sql = f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?"

        conn = self._get_conn()
        try:
            cur = conn.execute(sql, params)
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def update_task_status(self, task_id: int, new_status: TaskStatus) -> bool:
        return self.update_task_fields(task_id, status=new_status)

    def delete_task(self, task_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def list_tasks_for_owner(self, owner_id: str, limit: int = 50) -> list[Task]:
        """Owner's tasks: priority desc, deadline asc (no deadline last), newest first."""
        if not owner_id:
            return []

        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"""
                SELECT *
                FROM tasks
                WHERE owner_id = ?
                ORDER BY {_PRIORITY_ORDER_SQL} DESC,
                         deadline IS NULL ASC,
                         deadline ASC,
                         created_at DESC
                    LIMIT ?
                """,
                (owner_id, int(limit)),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def list_upcoming_tasks(self, owner_id: str, *, now_ts: float, limit: int = 50) -> list[Task]:
        """Pending tasks whose deadline is still ahead, soonest first."""
        if not owner_id:
            return []

        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE owner_id = ?
                  AND status = 'pending'
                  AND deadline IS NOT NULL
                  AND deadline >= ?
                ORDER BY deadline ASC
                    LIMIT ?
                """,
                (owner_id, float(now_ts), int(limit)),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()
