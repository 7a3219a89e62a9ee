# tests/fakes.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from taskminder.errors import QueueUnavailable
from taskminder.reminders.models import JobState, ReminderPayload, RetryPolicy, ScheduledJob


class FakeClock:
    """Manually advanced clock shared by scheduler, queue and dispatcher."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += float(seconds)
        return self.now


@dataclass(slots=True)
class Delivery:
    destination: str
    text: str


@dataclass(slots=True)
class FakeNotifier:
    """
    Fake NotificationChannel.

    Fails the first `fail_times` deliveries with `error`, then records every call.
    """

    sent: list[Delivery] = field(default_factory=list)
    fail_times: int = 0
    error: Exception = field(default_factory=lambda: ConnectionError("channel down"))
    attempts: int = 0

    async def deliver(self, destination: str, text: str) -> None:
        self.attempts += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error
        self.sent.append(Delivery(destination=destination, text=text))


class BrokenQueue:
    """DelayedJobQueue whose broker is always down."""

    name = "broken"

    def add(self, name: str, payload: ReminderPayload, *, delay_ms: int, retry: RetryPolicy) -> ScheduledJob:
        raise QueueUnavailable("broker down")

    def get_jobs(self, states: Iterable[JobState]) -> list[ScheduledJob]:
        raise QueueUnavailable("broker down")

    def remove(self, job_id: str) -> bool:
        raise QueueUnavailable("broker down")

    def get_job_counts(self) -> dict[str, int]:
        raise QueueUnavailable("broker down")
