# src/taskminder/reminders/reconciler.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..core.ports import ReminderRepo, TaskRepo

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ReconcileReport:
    checked: int
    deleted: int
    failed: int


def reconcile_orphans(reminders: ReminderRepo, tasks: TaskRepo) -> ReconcileReport:
    """
    One sweep: delete every Reminder whose task no longer exists.

    Recovers from lost cancellations (e.g. a crash between deleting a task and
    cleaning up its reminders). Per-record failures are logged and skipped.
    """
    checked = deleted = failed = 0

    for reminder in reminders.list_reminders():
        checked += 1
        try:
            if tasks.find_task(reminder.task_id) is not None:
                continue
            if reminders.delete_reminder(reminder.id):
                deleted += 1
                logger.info("Orphaned reminder removed id=%s task_id=%s", reminder.id, reminder.task_id)
        except Exception:
            failed += 1
            logger.exception("Failed to reconcile reminder id=%s task_id=%s", reminder.id, reminder.task_id)

    report = ReconcileReport(checked=checked, deleted=deleted, failed=failed)
    logger.info("Orphan sweep done checked=%s deleted=%s failed=%s", checked, deleted, failed)
    return report


async def run_orphan_reconciler(
        reminders: ReminderRepo,
        tasks: TaskRepo,
        *,
        interval_seconds: float = 3600.0,
) -> None:
    """
    Periodic orphan sweep on its own cadence.

    To stop it, cancel the coroutine/task.
    """
    sleep_s = max(1.0, float(interval_seconds))

    while True:
        try:
            # Stores are synchronous SQLite; keep the event loop free.
            await asyncio.to_thread(reconcile_orphans, reminders, tasks)
        except Exception:
            logger.exception("Orphan sweep crashed")

        await asyncio.sleep(sleep_s)
