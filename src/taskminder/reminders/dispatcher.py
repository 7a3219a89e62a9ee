# src/taskminder/reminders/dispatcher.py

from __future__ import annotations

"""
Reminder dispatcher (job consumer).

Called by the queue worker when a reminder job becomes due, possibly more than
once for the same job (at-least-once). Idempotency comes from re-reading the
task right before side effects, not from locks:
- task gone      -> nothing to do (cancellation lost the race)
- task done      -> nothing to do (a reminder would be noise)
- otherwise      -> deliver, then mark the reminder sent

Delivery errors propagate so the queue's retry policy applies.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.ports import IdentityResolver, NotificationChannel, PassthroughIdentityResolver, ReminderRepo, TaskRepo
from ..errors import DeliveryFailed, TaskVanished
from ..tasks.task_models import Task, TaskPriority, TaskStatus
from .models import ReminderPayload

logger = logging.getLogger(__name__)

_PRIORITY_LABELS = {
    TaskPriority.HIGH: "🔴 high",
    TaskPriority.MEDIUM: "🟡 medium",
    TaskPriority.LOW: "🟢 low",
}


class DispatchOutcome(str, Enum):
    DELIVERED = "delivered"
    SKIPPED_DONE = "skipped_done"
    TASK_MISSING = "task_missing"


def resolve_zone(tz_name: str | None) -> timezone | ZoneInfo:
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", tz_name)
        return timezone.utc


def format_deadline(ts: float, tz_name: str | None = None) -> str:
    zone = resolve_zone(tz_name)
    dt = datetime.fromtimestamp(float(ts), tz=zone)
    return f"{dt.strftime('%Y-%m-%d %H:%M')} ({tz_name or 'UTC'})"


def build_reminder_text(task: Task, *, tz_name: str | None = None) -> str:
    lines = ["⏰ Reminder!", f"Task: {task.title}"]
    if task.description:
        lines.append(f"Details: {task.description}")
    lines.append(f"Priority: {_PRIORITY_LABELS.get(task.priority, task.priority.value)}")
    if task.deadline is not None:
        lines.append(f"Deadline: {format_deadline(task.deadline, tz_name)}")
    lines.append("")
    lines.append(f"Reply with /done {task.id} to mark it as completed")
    return "\n".join(lines)


class ReminderDispatcher:
    def __init__(
        self,
        tasks: TaskRepo,
        reminders: ReminderRepo,
        channel: NotificationChannel,
        *,
        identities: IdentityResolver | None = None,
        tz_name: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tasks = tasks
        self._reminders = reminders
        self._channel = channel
        self._identities = identities or PassthroughIdentityResolver()
        self._tz_name = tz_name
        self._clock = clock

    def _load_task(self, payload: ReminderPayload) -> Task:
        task = self._tasks.find_task(payload.task_id)
        if task is None:
            raise TaskVanished(
                f"task {payload.task_id} no longer exists",
                details={"task_id": payload.task_id, "owner_id": payload.owner_id},
            )
        return task

    async def dispatch(self, payload: ReminderPayload) -> DispatchOutcome:
        try:
            task = self._load_task(payload)
        except TaskVanished as e:
            logger.warning("Reminder job for a vanished task, treating as resolved: %s", e)
            return DispatchOutcome.TASK_MISSING

        if task.status == TaskStatus.DONE:
            logger.info("Task %s already done; reminder skipped", task.id)
            return DispatchOutcome.SKIPPED_DONE

        destination = self._identities.resolve_destination(task.owner_id)
        if not destination:
            raise DeliveryFailed(
                f"no destination for owner {task.owner_id!r}",
                details={"task_id": task.id},
            )

        text = build_reminder_text(task, tz_name=self._tz_name)

        try:
            await self._channel.deliver(destination, text)
        except DeliveryFailed:
            logger.warning("Reminder delivery failed task_id=%s destination=%s", task.id, destination)
            raise
        except Exception as e:
            logger.warning("Reminder delivery failed task_id=%s destination=%s: %r", task.id, destination, e)
            raise DeliveryFailed(str(e) or e.__class__.__name__, details={"task_id": task.id}) from e

        logger.info("Reminder sent task_id=%s owner=%s", task.id, task.owner_id)
        self._mark_sent(task.id)
        return DispatchOutcome.DELIVERED

    def _mark_sent(self, task_id: int) -> None:
        # Bookkeeping only: a failure here must not make the queue resend the message.
        try:
            reminder = self._reminders.find_unsent_for_task(task_id)
            if reminder is None:
                logger.info("No unsent reminder record for task_id=%s (nothing to mark)", task_id)
                return
            if not self._reminders.mark_sent(reminder.id, sent_at=self._clock()):
                logger.info("Reminder %s for task_id=%s was already marked sent", reminder.id, task_id)
        except Exception:
            logger.exception("Failed to mark reminder sent task_id=%s", task_id)
