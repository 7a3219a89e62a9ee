# src/taskminder/reminders/job_queue.py

from __future__ import annotations

"""
SQLite-backed delayed job queue + polling worker.

The local broker used when no Redis is around (and by the test-suite). It keeps
the same job lifecycle as the rq backend:

    delayed/waiting -> active -> completed
                       active -> delayed   (failure, attempts left; exponential backoff)
                       active -> failed    (attempts exhausted; terminal, alerted)

Jobs survive restarts because they live in the database. A job left `active`
by a crashed worker goes back to `delayed` once its claim is older than the
stale threshold; run_job_worker sweeps for those periodically (requeue_stale).
"""

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Awaitable, Callable, Iterable, Iterator
from pathlib import Path
from typing import Any

from ..errors import QueueUnavailable
from ..logging_setup import ALERT_LOGGER_NAME
from .models import REMINDER_JOB_NAME, JobState, ReminderPayload, RetryPolicy, ScheduledJob

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger(ALERT_LOGGER_NAME)

JobHandler = Callable[[ScheduledJob], Awaitable[Any]]


class SqliteJobQueue:
    """
    Named delayed-job queue stored in SQLite.

    Thread-safety:
    - each method opens its own SQLite connection
    - claiming is a conditional UPDATE, so two workers never run the same attempt
    """

    def __init__(
        self,
        db_path: str | Path = "jobs.sqlite3",
        *,
        name: str = "reminders",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._ensure_schema()
        logger.info("SqliteJobQueue ready db=%s queue=%s counts=%s", self._db_path, name, self.get_job_counts())

    # ---- low-level helpers ----

    @contextlib.contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise QueueUnavailable(f"cannot open job store {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        except sqlite3.OperationalError as e:
            raise QueueUnavailable(f"job store error: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    queue TEXT NOT NULL,
                    name TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    state TEXT NOT NULL,
                    delay_ms INTEGER NOT NULL DEFAULT 0,
                    max_attempts INTEGER NOT NULL DEFAULT 1,
                    backoff_type TEXT NOT NULL DEFAULT 'exponential',
                    backoff_delay_ms INTEGER NOT NULL DEFAULT 0,
                    attempts_made INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    run_at REAL NOT NULL,
                    claimed_at REAL,
                    finished_at REAL,
                    last_error TEXT
                )
                """
            )

            cols = {row["name"] for row in conn.execute("PRAGMA table_info(jobs)").fetchall()}
            if "claimed_at" not in cols:
                conn.execute("ALTER TABLE jobs ADD COLUMN claimed_at REAL")
                logger.info("SqliteJobQueue migration: added column claimed_at")

            conn.execute("CREATE INDEX IF NOT EXISTS idx_jobs_due ON jobs(queue, state, run_at)")
            conn.commit()

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> ScheduledJob:
        return ScheduledJob(
            id=str(row["id"]),
            name=str(row["name"]),
            payload=ReminderPayload.from_dict(json.loads(row["payload"])),
            state=JobState(row["state"]),
            delay_ms=int(row["delay_ms"]),
            retry=RetryPolicy(
                max_attempts=int(row["max_attempts"]),
                base_delay_ms=int(row["backoff_delay_ms"]),
                backoff=str(row["backoff_type"]),
            ),
            attempts_made=int(row["attempts_made"]),
            created_at=float(row["created_at"]),
            run_at=float(row["run_at"]),
            finished_at=float(row["finished_at"]) if row["finished_at"] is not None else None,
            last_error=row["last_error"],
        )

    # ---- producer API (DelayedJobQueue) ----

    def add(
        self,
        name: str,
        payload: ReminderPayload,
        *,
        delay_ms: int,
        retry: RetryPolicy,
    ) -> ScheduledJob:
        now = self._clock()
        delay_ms = max(0, int(delay_ms))
        job = ScheduledJob(
            id=uuid.uuid4().hex,
            name=name,
            payload=payload,
            state=JobState.DELAYED if delay_ms > 0 else JobState.WAITING,
            delay_ms=delay_ms,
            retry=retry,
            attempts_made=0,
            created_at=now,
            run_at=now + delay_ms / 1000.0,
        )
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO jobs(
                    id, queue, name, payload, state, delay_ms,
                    max_attempts, backoff_type, backoff_delay_ms,
                    attempts_made, created_at, run_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    job.id,
                    self.name,
                    name,
                    json.dumps(payload.to_dict()),
                    job.state.value,
                    delay_ms,
                    retry.max_attempts,
                    retry.backoff,
                    retry.base_delay_ms,
                    job.created_at,
                    job.run_at,
                ),
            )
            conn.commit()
        logger.debug("Job added id=%s name=%s delay_ms=%s", job.id, name, delay_ms)
        return job

    def get_job(self, job_id: str) -> ScheduledJob | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM jobs WHERE id = ? AND queue = ?", (job_id, self.name)
            ).fetchone()
            return self._row_to_job(row) if row else None

    def get_jobs(self, states: Iterable[JobState]) -> list[ScheduledJob]:
        wanted = [JobState(s).value for s in states]
        if not wanted:
            return []
        placeholders = ",".join("?" for _ in wanted)
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM jobs
                WHERE queue = ? AND state IN ({placeholders})
                ORDER BY run_at ASC, created_at ASC
                """,
                (self.name, *wanted),
            ).fetchall()
            return [self._row_to_job(r) for r in rows]

    def remove(self, job_id: str) -> bool:
        """Delete a job unless a worker is currently running it."""
        with self._conn() as conn:
            cur = conn.execute(
                "DELETE FROM jobs WHERE id = ? AND queue = ? AND state != 'active'",
                (job_id, self.name),
            )
            conn.commit()
            return cur.rowcount == 1

    def get_job_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in JobState}
        with self._conn() as conn:
            for row in conn.execute(
                "SELECT state, COUNT(*) AS n FROM jobs WHERE queue = ? GROUP BY state", (self.name,)
            ):
                counts[str(row["state"])] = int(row["n"])
        return counts

    # ---- consumer API (worker) ----

    def claim_due(self, *, now_ts: float | None = None, limit: int = 32) -> list[ScheduledJob]:
        """
        Move due waiting/delayed jobs to `active` and return them.

        Each claim is a conditional UPDATE; a job claimed by another worker in
        between is silently skipped.
        """
        now = self._clock() if now_ts is None else float(now_ts)
        claimed: list[ScheduledJob] = []
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT id
                FROM jobs
                WHERE queue = ?
                  AND state IN ('waiting','delayed')
                  AND run_at <= ?
                ORDER BY run_at ASC, created_at ASC
                    LIMIT ?
                """,
                (self.name, now, int(limit)),
            ).fetchall()

            for row in rows:
                cur = conn.execute(
                    """
                    UPDATE jobs
                    SET state = 'active', attempts_made = attempts_made + 1, claimed_at = ?
                    WHERE id = ? AND state IN ('waiting','delayed')
                    """,
                    (now, row["id"]),
                )
                conn.commit()
                if cur.rowcount != 1:
                    continue
                fresh = conn.execute("SELECT * FROM jobs WHERE id = ?", (row["id"],)).fetchone()
                if fresh is not None:
                    claimed.append(self._row_to_job(fresh))
        return claimed

    def complete(self, job_id: str, *, now_ts: float | None = None) -> None:
        now = self._clock() if now_ts is None else float(now_ts)
        with self._conn() as conn:
            conn.execute(
                "UPDATE jobs SET state = 'completed', finished_at = ?, last_error = NULL WHERE id = ?",
                (now, job_id),
            )
            conn.commit()

    def fail(self, job_id: str, error: str, *, now_ts: float | None = None) -> JobState:
        """
        Record a failed attempt.

        Attempts left -> back to `delayed` after the backoff; otherwise `failed` for good.
        """
        now = self._clock() if now_ts is None else float(now_ts)
        job = self.get_job(job_id)
        if job is None:
            logger.warning("fail() on unknown job id=%s", job_id)
            return JobState.FAILED

        with self._conn() as conn:
            if job.attempts_made >= job.retry.max_attempts:
                conn.execute(
                    "UPDATE jobs SET state = 'failed', finished_at = ?, last_error = ? WHERE id = ?",
                    (now, error, job_id),
                )
                conn.commit()
                return JobState.FAILED

            run_at = now + job.retry.backoff_ms(job.attempts_made) / 1000.0
            conn.execute(
                "UPDATE jobs SET state = 'delayed', run_at = ?, last_error = ? WHERE id = ?",
                (run_at, error, job_id),
            )
            conn.commit()
            return JobState.DELAYED

    def requeue_stale(self, *, older_than_seconds: float = 600.0, now_ts: float | None = None) -> int:
        """
        Put `active` jobs claimed longer than the threshold ago back to `delayed`
        (the worker running them crashed). Rows from before claimed_at existed
        fall back to run_at.
        """
        now = self._clock() if now_ts is None else float(now_ts)
        with self._conn() as conn:
            cur = conn.execute(
                """
                UPDATE jobs
                SET state = 'delayed', run_at = ?, claimed_at = NULL
                WHERE queue = ? AND state = 'active' AND COALESCE(claimed_at, run_at) <= ?
                """,
                (now, self.name, now - float(older_than_seconds)),
            )
            conn.commit()
            if cur.rowcount:
                logger.warning("Requeued %d stale active job(s)", cur.rowcount)
            return int(cur.rowcount)


async def process_due_jobs(
        queue: SqliteJobQueue,
        handler: JobHandler,
        *,
        now_ts: float | None = None,
        limit: int = 32,
) -> int:
    """
    Single worker pass: claim due jobs, run the handler, record the outcome.

    Returns the number of jobs attempted.
    """
    jobs = await asyncio.to_thread(queue.claim_due, now_ts=now_ts, limit=limit)

    for job in jobs:
        try:
            await handler(job)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            state = queue.fail(job.id, error, now_ts=now_ts)

            if state == JobState.FAILED:
                alert_logger.error(
                    "Reminder job failed permanently job_id=%s task_id=%s attempts=%s error=%s",
                    job.id,
                    job.payload.task_id,
                    job.attempts_made,
                    error,
                )
            else:
                logger.warning(
                    "Job attempt failed job_id=%s task_id=%s attempt=%s/%s; retrying in %.1fs",
                    job.id,
                    job.payload.task_id,
                    job.attempts_made,
                    job.retry.max_attempts,
                    job.retry.backoff_ms(job.attempts_made) / 1000.0,
                )
            continue

        queue.complete(job.id, now_ts=now_ts)
        logger.info("Job completed job_id=%s task_id=%s", job.id, job.payload.task_id)

    return len(jobs)


async def run_job_worker(
        queue: SqliteJobQueue,
        handler: JobHandler,
        *,
        interval_seconds: float = 1.0,
        batch_limit: int = 32,
        stale_after_seconds: float = 600.0,
        stale_check_seconds: float = 60.0,
) -> None:
    """
    Polling worker. To stop it, cancel the coroutine/task.

    Delivery precision is bounded by interval_seconds (best-effort, seconds not ms).
    Every stale_check_seconds (and on the first pass) jobs claimed more than
    stale_after_seconds ago are requeued.
    """
    sleep_s = max(0.05, float(interval_seconds))
    next_stale_check = 0.0

    while True:
        try:
            if time.monotonic() >= next_stale_check:
                await asyncio.to_thread(queue.requeue_stale, older_than_seconds=float(stale_after_seconds))
                next_stale_check = time.monotonic() + float(stale_check_seconds)
            await process_due_jobs(queue, handler, limit=int(batch_limit))
        except Exception:
            logger.exception("Job worker pass failed")

        await asyncio.sleep(sleep_s)


def reminder_job_handler(dispatch: Callable[[ReminderPayload], Awaitable[Any]]) -> JobHandler:
    """Adapt a dispatcher's dispatch(payload) to the worker's job handler signature."""

    async def handle(job: ScheduledJob) -> None:
        if job.name != REMINDER_JOB_NAME:
            raise ValueError(f"unexpected job kind {job.name!r} on reminder queue")
        await dispatch(job.payload)

    return handle
