# tests/test_dispatcher.py

from __future__ import annotations

import pytest

from taskminder.errors import DeliveryFailed
from taskminder.reminders.dispatcher import DispatchOutcome, ReminderDispatcher, build_reminder_text, format_deadline
from taskminder.reminders.models import ReminderPayload
from taskminder.tasks.task_models import Task, TaskPriority, TaskStatus

from .fakes import FakeNotifier


class NoDestination:
    def resolve_destination(self, owner_id: str) -> str | None:
        return None


@pytest.fixture()
def make_dispatcher(task_store, reminder_store, clock):
    def factory(notifier, **kwargs) -> ReminderDispatcher:
        return ReminderDispatcher(task_store, reminder_store, notifier, tz_name="UTC", clock=clock, **kwargs)

    return factory


def _task_with_reminder(task_store, reminder_store, clock, **fields) -> int:
    deadline = clock.now + 60
    task_id = task_store.add_task(owner_id="alice", title="Pay rent", deadline=deadline, **fields)
    reminder_store.add_reminder(task_id=task_id, remind_at=deadline)
    return task_id


def test_reminder_text_mentions_task_and_done_command() -> None:
    task = Task(
        id=12,
        owner_id="alice",
        title="Submit report",
        status=TaskStatus.PENDING,
        priority=TaskPriority.HIGH,
        created_at=0.0,
        updated_at=0.0,
        deadline=0.0,
        description="Q3 numbers",
    )

    text = build_reminder_text(task, tz_name="UTC")

    assert text.startswith("⏰ Reminder!")
    assert "Task: Submit report" in text
    assert "Details: Q3 numbers" in text
    assert "high" in text
    assert "Deadline: 1970-01-01 00:00 (UTC)" in text
    assert text.endswith("/done 12 to mark it as completed")


def test_format_deadline_unknown_timezone_falls_back_to_utc() -> None:
    assert format_deadline(0.0, "Mars/Olympus_Mons").startswith("1970-01-01 00:00")


@pytest.mark.asyncio
async def test_dispatch_delivers_and_marks_reminder_sent(make_dispatcher, task_store, reminder_store, clock) -> None:
    task_id = _task_with_reminder(task_store, reminder_store, clock)
    notifier = FakeNotifier()

    outcome = await make_dispatcher(notifier).dispatch(ReminderPayload(task_id=task_id, owner_id="alice"))

    assert outcome == DispatchOutcome.DELIVERED
    assert len(notifier.sent) == 1
    assert notifier.sent[0].destination == "alice"
    assert "Pay rent" in notifier.sent[0].text

    (reminder,) = reminder_store.list_for_task(task_id)
    assert reminder.is_sent is True
    assert reminder.sent_at == clock.now


@pytest.mark.asyncio
async def test_dispatch_skips_done_task(make_dispatcher, task_store, reminder_store, clock) -> None:
    task_id = _task_with_reminder(task_store, reminder_store, clock, status=TaskStatus.DONE)
    notifier = FakeNotifier()

    outcome = await make_dispatcher(notifier).dispatch(ReminderPayload(task_id=task_id, owner_id="alice"))

    assert outcome == DispatchOutcome.SKIPPED_DONE
    assert notifier.attempts == 0
    assert reminder_store.list_for_task(task_id)[0].is_sent is False


@pytest.mark.asyncio
async def test_dispatch_missing_task_is_resolved_without_delivery(make_dispatcher) -> None:
    notifier = FakeNotifier()

    outcome = await make_dispatcher(notifier).dispatch(ReminderPayload(task_id=404, owner_id="alice"))

    assert outcome == DispatchOutcome.TASK_MISSING
    assert notifier.attempts == 0


@pytest.mark.asyncio
async def test_channel_error_raises_delivery_failed(make_dispatcher, task_store, reminder_store, clock) -> None:
    task_id = _task_with_reminder(task_store, reminder_store, clock)
    notifier = FakeNotifier(fail_times=1)

    with pytest.raises(DeliveryFailed, match="channel down"):
        await make_dispatcher(notifier).dispatch(ReminderPayload(task_id=task_id, owner_id="alice"))

    assert reminder_store.list_for_task(task_id)[0].is_sent is False


@pytest.mark.asyncio
async def test_unresolvable_owner_raises_delivery_failed(make_dispatcher, task_store, reminder_store, clock) -> None:
    task_id = _task_with_reminder(task_store, reminder_store, clock)
    notifier = FakeNotifier()

    with pytest.raises(DeliveryFailed):
        await make_dispatcher(notifier, identities=NoDestination()).dispatch(
            ReminderPayload(task_id=task_id, owner_id="alice")
        )
    assert notifier.attempts == 0


@pytest.mark.asyncio
async def test_redelivery_does_not_fail_on_already_sent_reminder(
    make_dispatcher, task_store, reminder_store, clock
) -> None:
    task_id = _task_with_reminder(task_store, reminder_store, clock)
    notifier = FakeNotifier()
    dispatcher = make_dispatcher(notifier)
    payload = ReminderPayload(task_id=task_id, owner_id="alice")

    assert await dispatcher.dispatch(payload) == DispatchOutcome.DELIVERED
    # At-least-once: a duplicate run delivers again but bookkeeping stays consistent.
    assert await dispatcher.dispatch(payload) == DispatchOutcome.DELIVERED

    assert len(notifier.sent) == 2
    assert [r.is_sent for r in reminder_store.list_for_task(task_id)] == [True]
