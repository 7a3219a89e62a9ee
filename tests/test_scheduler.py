# tests/test_scheduler.py

from __future__ import annotations

import logging

import pytest

from taskminder.errors import QueueUnavailable, SchedulingRejected
from taskminder.reminders.hooks import DeadlineHooks
from taskminder.reminders.models import REMINDER_JOB_NAME, JobState, ReminderPayload, RetryPolicy
from taskminder.reminders.scheduler import ReminderScheduler

from .fakes import BrokenQueue


def _pending(job_queue):
    return job_queue.get_jobs([JobState.WAITING, JobState.DELAYED])


def test_schedule_enqueues_delayed_job_with_retry_policy(job_queue, clock) -> None:
    scheduler = ReminderScheduler(job_queue, clock=clock)

    job = scheduler.schedule(clock.now + 2.0, ReminderPayload(task_id=7, owner_id="alice"))

    assert job is not None
    assert job.name == REMINDER_JOB_NAME
    assert job.state == JobState.DELAYED
    assert job.delay_ms == 2000
    assert job.run_at == pytest.approx(clock.now + 2.0)
    assert job.retry == RetryPolicy(max_attempts=3, base_delay_ms=5000)

    stored = _pending(job_queue)
    assert [j.payload for j in stored] == [ReminderPayload(task_id=7, owner_id="alice")]


@pytest.mark.parametrize("offset", [0.0, -1.0, -3600.0])
def test_schedule_in_the_past_is_a_noop(job_queue, clock, caplog, offset) -> None:
    scheduler = ReminderScheduler(job_queue, clock=clock)

    with caplog.at_level(logging.WARNING, logger="taskminder.reminders.scheduler"):
        job = scheduler.schedule(clock.now + offset, ReminderPayload(task_id=1, owner_id="alice"))

    assert job is None
    assert _pending(job_queue) == []
    assert "in the past" in caplog.text


def test_delay_until_rejects_non_future_deadline(job_queue, clock) -> None:
    scheduler = ReminderScheduler(job_queue, clock=clock)

    assert scheduler.delay_until(clock.now + 0.5) == 500
    with pytest.raises(SchedulingRejected):
        scheduler.delay_until(clock.now)


def test_cancel_is_idempotent(job_queue, clock) -> None:
    scheduler = ReminderScheduler(job_queue, clock=clock)
    scheduler.schedule(clock.now + 60, ReminderPayload(task_id=3, owner_id="alice"))
    scheduler.schedule(clock.now + 60, ReminderPayload(task_id=4, owner_id="alice"))

    assert scheduler.cancel(3) is True
    assert scheduler.cancel(3) is False
    assert scheduler.cancel(999) is False

    # Other tasks' jobs are untouched.
    assert [j.payload.task_id for j in _pending(job_queue)] == [4]


def test_cancel_leaves_active_job_alone(job_queue, clock) -> None:
    scheduler = ReminderScheduler(job_queue, clock=clock)
    scheduler.schedule(clock.now + 1, ReminderPayload(task_id=5, owner_id="alice"))

    claimed = job_queue.claim_due(now_ts=clock.now + 1)
    assert len(claimed) == 1

    assert scheduler.cancel(5) is False
    assert job_queue.get_job(claimed[0].id).state == JobState.ACTIVE


def test_cancel_can_keep_the_replacement_job(job_queue, clock) -> None:
    scheduler = ReminderScheduler(job_queue, clock=clock)
    scheduler.schedule(clock.now + 60, ReminderPayload(task_id=7, owner_id="alice"))
    new = scheduler.schedule(clock.now + 120, ReminderPayload(task_id=7, owner_id="alice"))

    assert scheduler.cancel(7, keep_job_id=new.id) is True
    assert [j.id for j in _pending(job_queue)] == [new.id]


def test_reschedule_keeps_exactly_one_pending_job(job_queue, reminder_store, clock) -> None:
    hooks = DeadlineHooks(ReminderScheduler(job_queue, clock=clock), reminder_store)

    hooks.on_deadline_changed(9, "alice", clock.now + 60)
    hooks.on_deadline_changed(9, "alice", clock.now + 120)
    hooks.on_deadline_changed(9, "alice", clock.now + 30)

    pending = _pending(job_queue)
    assert len(pending) == 1
    assert pending[0].run_at == pytest.approx(clock.now + 30)

    reminders = reminder_store.list_for_task(9)
    assert len(reminders) == 1
    assert reminders[0].remind_at == pytest.approx(clock.now + 30)


def test_clearing_deadline_cancels_job(job_queue, reminder_store, clock) -> None:
    hooks = DeadlineHooks(ReminderScheduler(job_queue, clock=clock), reminder_store)

    hooks.on_deadline_changed(9, "alice", clock.now + 60)
    assert hooks.on_deadline_changed(9, "alice", None) is None

    assert _pending(job_queue) == []
    assert reminder_store.list_for_task(9) == []


def test_queue_failures_propagate(clock) -> None:
    scheduler = ReminderScheduler(BrokenQueue(), clock=clock)

    with pytest.raises(QueueUnavailable):
        scheduler.schedule(clock.now + 60, ReminderPayload(task_id=1, owner_id="alice"))
    with pytest.raises(QueueUnavailable):
        scheduler.cancel(1)


def test_past_deadline_does_not_touch_broken_queue(clock) -> None:
    scheduler = ReminderScheduler(BrokenQueue(), clock=clock)
    assert scheduler.schedule(clock.now - 5, ReminderPayload(task_id=1, owner_id="alice")) is None
