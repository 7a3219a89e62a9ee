# src/taskminder/reminders/rq_queue.py

from __future__ import annotations

"""
Redis/rq-backed delayed job queue.

Jobs are enqueued with Queue.enqueue_in and carry an rq Retry built from the
RetryPolicy, so an rq worker started with the scheduler enabled promotes them
when due and retries failed attempts with the exponential intervals.

The job function lives in taskminder.cli.worker (it needs the composition root).
"""

import logging
import math
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry
from rq.job import Job

from ..errors import QueueUnavailable
from .models import JobState, ReminderPayload, RetryPolicy, ScheduledJob

logger = logging.getLogger(__name__)

REMINDER_JOB_FUNC = "taskminder.cli.worker.send_reminder_job"


def build_rq_retry(retry: RetryPolicy) -> Retry | None:
    """rq counts retries, not attempts: max_attempts=3 -> Retry(max=2, interval=[5, 10])."""
    retries = retry.max_attempts - 1
    if retries < 1:
        return None
    intervals = [int(math.ceil(s)) for s in retry.retry_intervals_seconds()]
    return Retry(max=retries, interval=intervals)


class RQJobQueue:
    def __init__(
        self,
        connection: Redis,
        *,
        name: str = "reminders",
        job_func: str = REMINDER_JOB_FUNC,
    ) -> None:
        self.name = name
        self._connection = connection
        self._job_func = job_func
        self._queue = Queue(name, connection=connection)

    def _registry_ids(self, state: JobState) -> list[str]:
        if state == JobState.WAITING:
            return list(self._queue.get_job_ids())
        if state == JobState.DELAYED:
            return list(self._queue.scheduled_job_registry.get_job_ids())
        if state == JobState.ACTIVE:
            return list(self._queue.started_job_registry.get_job_ids())
        if state == JobState.COMPLETED:
            return list(self._queue.finished_job_registry.get_job_ids())
        return list(self._queue.failed_job_registry.get_job_ids())

    @staticmethod
    def _to_scheduled(job: Job, state: JobState) -> ScheduledJob | None:
        meta: dict[str, Any] = job.meta or {}
        kwargs = job.kwargs or {}
        try:
            payload = ReminderPayload(task_id=int(kwargs["task_id"]), owner_id=str(kwargs["owner_id"]))
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping foreign job id=%s on reminder queue", job.id)
            return None

        retry = RetryPolicy(
            max_attempts=int(meta.get("maxAttempts", 1)),
            base_delay_ms=int(meta.get("backoffDelayMs", 0)),
        )
        retries_left = job.retries_left if job.retries_left is not None else retry.max_attempts - 1
        attempts_made = max(0, retry.max_attempts - 1 - int(retries_left))
        created = job.created_at.timestamp() if job.created_at else 0.0

        return ScheduledJob(
            id=job.id,
            name=str(meta.get("name", "")),
            payload=payload,
            state=state,
            delay_ms=int(meta.get("delayMs", 0)),
            retry=retry,
            attempts_made=attempts_made,
            created_at=created,
            run_at=created + int(meta.get("delayMs", 0)) / 1000.0,
            finished_at=job.ended_at.timestamp() if job.ended_at else None,
            last_error=job.exc_info,
        )

    def add(
        self,
        name: str,
        payload: ReminderPayload,
        *,
        delay_ms: int,
        retry: RetryPolicy,
    ) -> ScheduledJob:
        delay_ms = max(0, int(delay_ms))
        meta = {
            "name": name,
            "delayMs": delay_ms,
            "maxAttempts": retry.max_attempts,
            "backoffDelayMs": retry.base_delay_ms,
        }
        try:
            job = self._queue.enqueue_in(
                timedelta(milliseconds=delay_ms),
                self._job_func,
                task_id=payload.task_id,
                owner_id=payload.owner_id,
                retry=build_rq_retry(retry),
                meta=meta,
                description=f"{name} task_id={payload.task_id}",
            )
        except RedisError as e:
            raise QueueUnavailable(f"redis unavailable: {e}", details={"queue": self.name}) from e

        scheduled = self._to_scheduled(job, JobState.DELAYED)
        if scheduled is None:
            raise RuntimeError(f"rq returned a job without reminder kwargs: {job.id}")
        return scheduled

    def get_jobs(self, states: Iterable[JobState]) -> list[ScheduledJob]:
        out: list[ScheduledJob] = []
        try:
            for state in states:
                state = JobState(state)
                ids = self._registry_ids(state)
                if not ids:
                    continue
                for job in Job.fetch_many(ids, connection=self._connection):
                    if job is None:
                        continue
                    scheduled = self._to_scheduled(job, state)
                    if scheduled is not None:
                        out.append(scheduled)
        except RedisError as e:
            raise QueueUnavailable(f"redis unavailable: {e}", details={"queue": self.name}) from e
        return out

    def remove(self, job_id: str) -> bool:
        try:
            job = self._queue.fetch_job(job_id)
            if job is None:
                return False
            if job.get_status() == "started":
                return False
            job.delete()
            return True
        except RedisError as e:
            raise QueueUnavailable(f"redis unavailable: {e}", details={"queue": self.name}) from e

    def get_job_counts(self) -> dict[str, int]:
        try:
            return {
                JobState.WAITING.value: self._queue.count,
                JobState.DELAYED.value: self._queue.scheduled_job_registry.count,
                JobState.ACTIVE.value: self._queue.started_job_registry.count,
                JobState.COMPLETED.value: self._queue.finished_job_registry.count,
                JobState.FAILED.value: self._queue.failed_job_registry.count,
            }
        except RedisError as e:
            raise QueueUnavailable(f"redis unavailable: {e}", details={"queue": self.name}) from e
