# src/taskminder/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the reminder core.

The core depends on Protocols instead of concrete implementations.
This keeps the broker, the storage and the chat transport swappable and makes
testing easier (see tests/fakes.py).
"""

from typing import Awaitable, Iterable, Protocol

from ..reminders.models import JobState, Reminder, ReminderPayload, RetryPolicy, ScheduledJob
from ..tasks.task_models import Task


class TaskRepo(Protocol):
    """Read side of the external task store: the only call the core makes on it."""

    def find_task(self, task_id: int) -> Task | None: ...


class ReminderRepo(Protocol):
    def add_reminder(self, *, task_id: int, remind_at: float) -> Reminder: ...
    def list_reminders(self) -> list[Reminder]: ...
    def find_unsent_for_task(self, task_id: int) -> Reminder | None: ...
    def mark_sent(self, reminder_id: str, *, sent_at: float | None = None) -> bool: ...
    def delete_reminder(self, reminder_id: str) -> bool: ...
    def delete_for_task(self, task_id: int, *, unsent_only: bool = False) -> int: ...


class DelayedJobQueue(Protocol):
    """
    Durable delayed-execution broker.

    Implementations raise QueueUnavailable when the broker cannot be reached.
    """

    name: str

    def add(
            self,
            name: str,
            payload: ReminderPayload,
            *,
            delay_ms: int,
            retry: RetryPolicy,
    ) -> ScheduledJob: ...

    def get_jobs(self, states: Iterable[JobState]) -> list[ScheduledJob]: ...

    def remove(self, job_id: str) -> bool: ...

    def get_job_counts(self) -> dict[str, int]: ...


class NotificationChannel(Protocol):
    """
    Transport-side port: deliver a text to an owner's destination.

    Raises on failure (the queue retry policy decides what happens next).
    """

    def deliver(self, destination: str, text: str) -> Awaitable[None]: ...


class IdentityResolver(Protocol):
    """Map a task owner id onto a transport destination (e.g. a Matrix user or room)."""

    def resolve_destination(self, owner_id: str) -> str | None: ...


class PassthroughIdentityResolver:
    """Owner ids are already transport addresses (console name, Matrix user id)."""

    def resolve_destination(self, owner_id: str) -> str | None:
        owner_id = (owner_id or "").strip()
        return owner_id or None

