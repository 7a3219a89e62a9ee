# src/taskminder/reminders/reminder_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
import uuid
from pathlib import Path

from .models import Reminder

logger = logging.getLogger(__name__)


class ReminderStore:
    """
    SQLite store for Reminder bookkeeping.

    Keyed by its own generated id; task_id is a plain indexed column, never a
    foreign key, so deleting a task can leave reminders behind (the orphan
    reconciler cleans those up).
    """

    def __init__(self, db_path: str | Path = "reminders.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("ReminderStore ready db=%s total=%s", self._db_path, self.count_reminders())

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reminders (
                    id TEXT PRIMARY KEY,
                    task_id INTEGER NOT NULL,
                    remind_at REAL NOT NULL,
                    is_sent INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    sent_at REAL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_reminders_task ON reminders(task_id)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=str(row["id"]),
            task_id=int(row["task_id"]),
            remind_at=float(row["remind_at"]),
            is_sent=bool(row["is_sent"]),
            created_at=float(row["created_at"] or 0.0),
            sent_at=float(row["sent_at"]) if row["sent_at"] is not None else None,
        )

    def count_reminders(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM reminders").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_reminder(self, *, task_id: int, remind_at: float) -> Reminder:
        reminder = Reminder(
            id=uuid.uuid4().hex,
            task_id=int(task_id),
            remind_at=float(remind_at),
            is_sent=False,
            created_at=time.time(),
        )
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO reminders(id, task_id, remind_at, is_sent, created_at, sent_at)
                VALUES (?, ?, ?, 0, ?, NULL)
                """,
                (reminder.id, reminder.task_id, reminder.remind_at, reminder.created_at),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Reminder added id=%s task_id=%s remind_at=%s", reminder.id, task_id, remind_at)
        return reminder

    def list_reminders(self) -> list[Reminder]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM reminders ORDER BY remind_at ASC").fetchall()
            return [self._row_to_reminder(r) for r in rows]
        finally:
            conn.close()

    def list_for_task(self, task_id: int) -> list[Reminder]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM reminders WHERE task_id = ? ORDER BY created_at ASC",
                (int(task_id),),
            ).fetchall()
            return [self._row_to_reminder(r) for r in rows]
        finally:
            conn.close()

    def find_unsent_for_task(self, task_id: int) -> Reminder | None:
        """Latest unsent reminder for the task (the one matching the current deadline)."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT *
                FROM reminders
                WHERE task_id = ? AND is_sent = 0
                ORDER BY created_at DESC
                    LIMIT 1
                """,
                (int(task_id),),
            ).fetchone()
            return self._row_to_reminder(row) if row else None
        finally:
            conn.close()

    def mark_sent(self, reminder_id: str, *, sent_at: float | None = None) -> bool:
        """Flip is_sent false -> true. Returns False if already sent or missing."""
        ts = time.time() if sent_at is None else float(sent_at)
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE reminders SET is_sent = 1, sent_at = ? WHERE id = ? AND is_sent = 0",
                (ts, reminder_id),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def delete_reminder(self, reminder_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def delete_for_task(self, task_id: int, *, unsent_only: bool = False) -> int:
        sql = "DELETE FROM reminders WHERE task_id = ?"
        if unsent_only:
            sql += " AND is_sent = 0"
        conn = self._get_conn()
        try:
            cur = conn.execute(sql, (int(task_id),))
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()
