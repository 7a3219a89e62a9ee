# src/taskminder/reminders/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

REMINDER_JOB_NAME = "sendReminder"


class JobState(StrEnum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_pending(self) -> bool:
        """Not yet picked up by a worker (still cancellable)."""
        return self in (JobState.WAITING, JobState.DELAYED)

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


@dataclass(slots=True, frozen=True)
class ReminderPayload:
    """What travels through the queue. Only identifiers: the task is re-read at dispatch time."""

    task_id: int
    owner_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"taskId": self.task_id, "ownerId": self.owner_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReminderPayload:
        return cls(task_id=int(data["taskId"]), owner_id=str(data["ownerId"]))


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """
    Exponential backoff: the wait before retry n (1-based) is base_delay_ms * 2 ** (n - 1).

    With max_attempts=3 a job runs at most three times, waiting 5s and 10s in between.
    """

    max_attempts: int = 3
    base_delay_ms: int = 5000
    backoff: str = "exponential"

    def backoff_ms(self, retry_number: int) -> int:
        n = max(1, int(retry_number))
        if self.backoff == "fixed":
            return self.base_delay_ms
        return self.base_delay_ms * 2 ** (n - 1)

    def retry_intervals_seconds(self) -> list[float]:
        """Waits between consecutive attempts, in seconds (len == max_attempts - 1)."""
        return [self.backoff_ms(n) / 1000.0 for n in range(1, self.max_attempts)]

    def to_options(self) -> dict[str, Any]:
        return {
            "attempts": self.max_attempts,
            "backoff": {"type": self.backoff, "delay_ms": self.base_delay_ms},
        }


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass(slots=True)
class ScheduledJob:
    id: str
    name: str
    payload: ReminderPayload
    state: JobState
    delay_ms: int
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    attempts_made: int = 0
    created_at: float = 0.0
    run_at: float = 0.0
    finished_at: float | None = None
    last_error: str | None = None


@dataclass(slots=True)
class Reminder:
    """
    Delivery bookkeeping for one task deadline.

    task_id is a lookup key into the task store, not an owning reference:
    the task may be gone by the time anyone resolves it.
    """

    id: str
    task_id: int
    remind_at: float
    is_sent: bool = False
    created_at: float = 0.0
    sent_at: float | None = None
