# src/taskminder/reminders/hooks.py

from __future__ import annotations

import logging
import sqlite3

from ..core.ports import ReminderRepo
from ..tasks.task_models import Task
from .models import Reminder, ReminderPayload, ScheduledJob
from .scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


class DeadlineHooks:
    """
    Task mutation hooks the task layer must call.

    Each hook maps onto scheduler calls plus Reminder bookkeeping. Queue errors
    (QueueUnavailable) and reminder store errors (sqlite3.Error) propagate: the
    caller decides whether to roll back.
    """

    def __init__(self, scheduler: ReminderScheduler, reminders: ReminderRepo) -> None:
        self._scheduler = scheduler
        self._reminders = reminders

    def _record(self, job: ScheduledJob, remind_at: float) -> Reminder:
        task_id = job.payload.task_id
        try:
            return self._reminders.add_reminder(task_id=task_id, remind_at=remind_at)
        except sqlite3.Error:
            # Never leave a job without its Reminder row.
            logger.error("Reminder record not written task_id=%s, discarding job_id=%s", task_id, job.id)
            self._scheduler.discard(job)
            raise

    def on_task_created(self, task: Task) -> Reminder | None:
        if task.deadline is None:
            return None
        job = self._scheduler.schedule(task.deadline, ReminderPayload(task_id=task.id, owner_id=task.owner_id))
        if job is None:
            return None
        return self._record(job, task.deadline)

    def on_deadline_changed(self, task_id: int, owner_id: str, new_deadline: float | None) -> Reminder | None:
        """
        Swap the task's job for one due at new_deadline (None just cancels).

        The replacement is enqueued before the old job is removed, so a broker
        failure on enqueue leaves the previous trigger untouched.
        """
        job = None
        if new_deadline is not None:
            job = self._scheduler.schedule(new_deadline, ReminderPayload(task_id=task_id, owner_id=owner_id))
        self._scheduler.cancel(task_id, keep_job_id=job.id if job is not None else None)

        stale = self._reminders.delete_for_task(task_id, unsent_only=True)
        if stale:
            logger.debug("Dropped %d stale reminder(s) for task_id=%s", stale, task_id)

        if job is None:
            return None
        return self._record(job, new_deadline)

    def on_task_deleted(self, task_id: int) -> None:
        self._scheduler.cancel(task_id)
        removed = self._reminders.delete_for_task(task_id)
        logger.debug("Task %s deleted: %d reminder record(s) removed", task_id, removed)
