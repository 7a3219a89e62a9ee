# src/taskminder/reminders/scheduler.py

"""
Reminder scheduler: the write side of the reminder core.

Turns a task deadline into exactly one delayed `sendReminder` job and removes
that job when the deadline changes or the task goes away. There is no
reschedule primitive: callers schedule the new job, then cancel the others
with keep_job_id.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.ports import DelayedJobQueue
from ..errors import QueueUnavailable, SchedulingRejected
from .models import REMINDER_JOB_NAME, JobState, ReminderPayload, RetryPolicy, ScheduledJob

logger = logging.getLogger(__name__)

_CANCELLABLE_STATES = (JobState.WAITING, JobState.DELAYED)


class ReminderScheduler:
    def __init__(
        self,
        queue: DelayedJobQueue,
        *,
        retry: RetryPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._queue = queue
        self._retry = retry or RetryPolicy()
        self._clock = clock

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def delay_until(self, deadline: float) -> int:
        """Milliseconds from now until `deadline`; rejects anything not strictly in the future."""
        delay_ms = int(round((float(deadline) - self._clock()) * 1000))
        if delay_ms <= 0:
            raise SchedulingRejected(
                "deadline is not in the future",
                details={"deadline": deadline, "delay_ms": delay_ms},
            )
        return delay_ms

    def schedule(self, deadline: float, payload: ReminderPayload) -> ScheduledJob | None:
        """
        Enqueue one reminder job due at `deadline`.

        A deadline in the past is a no-op (warning, returns None), not a failure.
        Broker failures propagate as QueueUnavailable.
        """
        try:
            delay_ms = self.delay_until(deadline)
        except SchedulingRejected as e:
            logger.warning(
                "Attempted to schedule reminder in the past task_id=%s deadline=%s delay_ms=%s",
                payload.task_id,
                deadline,
                (e.details or {}).get("delay_ms"),
            )
            return None

        try:
            job = self._queue.add(REMINDER_JOB_NAME, payload, delay_ms=delay_ms, retry=self._retry)
        except QueueUnavailable:
            logger.error("Failed to schedule reminder task_id=%s (queue unavailable)", payload.task_id)
            raise

        logger.info(
            "Reminder scheduled task_id=%s job_id=%s delay_ms=%s",
            payload.task_id,
            job.id,
            delay_ms,
        )
        return job

    def cancel(self, task_id: int, *, keep_job_id: str | None = None) -> bool:
        """
        Remove the pending (waiting/delayed) jobs for this task, except keep_job_id.

        Idempotent: returns False when nothing was removed. Jobs already running
        are left alone; the dispatcher's task re-check covers that window.
        """
        try:
            matches = [
                j
                for j in self._queue.get_jobs(_CANCELLABLE_STATES)
                if j.payload.task_id == int(task_id) and j.id != keep_job_id
            ]
            if not matches:
                logger.debug("No pending reminder to cancel task_id=%s", task_id)
                return False
            removed = [j.id for j in matches if self._queue.remove(j.id)]
        except QueueUnavailable:
            logger.error("Failed to cancel reminder task_id=%s (queue unavailable)", task_id)
            raise

        if removed:
            logger.info("Reminder cancelled task_id=%s job_id=%s", task_id, ",".join(removed))
        return bool(removed)

    def discard(self, job: ScheduledJob) -> bool:
        """Remove one specific job (one this process just enqueued)."""
        try:
            removed = self._queue.remove(job.id)
        except QueueUnavailable:
            logger.error("Failed to discard job_id=%s task_id=%s (queue unavailable)", job.id, job.payload.task_id)
            raise
        logger.info("Reminder job discarded task_id=%s job_id=%s removed=%s", job.payload.task_id, job.id, removed)
        return removed

    def pending_jobs_for(self, task_id: int) -> list[ScheduledJob]:
        return [j for j in self._queue.get_jobs(_CANCELLABLE_STATES) if j.payload.task_id == int(task_id)]
