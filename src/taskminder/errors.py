# src/taskminder/errors.py

"""
Error taxonomy of the reminder subsystem.

Only QueueUnavailable and exhausted DeliveryFailed are actionable; the rest are
steady-state conditions that get logged rather than alerted.
"""

from __future__ import annotations

from typing import Any


class TaskminderError(Exception):
    """Base error: a message plus an optional machine-readable code and details."""

    code = "taskminder_error"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def __str__(self) -> str:
        return self.message


class SchedulingRejected(TaskminderError):
    """Deadline is not in the future; no job was created."""

    code = "scheduling_rejected"


class QueueUnavailable(TaskminderError):
    """The delayed job broker could not be reached during schedule/cancel."""

    code = "queue_unavailable"


class TaskVanished(TaskminderError):
    """A due job refers to a task that no longer exists."""

    code = "task_vanished"


class DeliveryFailed(TaskminderError):
    """The notification channel failed; the queue retry policy applies."""

    code = "delivery_failed"


class TaskNotFound(TaskminderError):
    """Task does not exist or belongs to another owner."""

    code = "task_not_found"
