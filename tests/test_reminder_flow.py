# tests/test_reminder_flow.py

from __future__ import annotations

import pytest

from taskminder.reminders.job_queue import process_due_jobs, reminder_job_handler
from taskminder.reminders.models import JobState


async def _tick(state, at: float) -> int:
    return await process_due_jobs(state.queue, reminder_job_handler(state.dispatcher.dispatch), now_ts=at)


@pytest.mark.asyncio
async def test_reminder_delivered_once_at_deadline(state, notifier, clock) -> None:
    start = clock.now
    task = state.tasks.create_task("alice", "Call the bank", deadline=start + 2)

    assert await _tick(state, start + 1) == 0
    assert notifier.sent == []

    clock.now = start + 2
    assert await _tick(state, start + 2) == 1
    assert len(notifier.sent) == 1
    assert "Call the bank" in notifier.sent[0].text

    assert await _tick(state, start + 60) == 0
    assert len(notifier.sent) == 1

    (reminder,) = state.reminder_store.list_for_task(task.id)
    assert reminder.is_sent is True


@pytest.mark.asyncio
async def test_deleted_task_is_never_reminded(state, notifier, clock) -> None:
    start = clock.now
    task = state.tasks.create_task("alice", "Water plants", deadline=start + 2)

    clock.now = start + 1
    state.tasks.delete_task(task.id, "alice")

    await _tick(state, start + 2)
    assert notifier.attempts == 0
    assert state.queue.get_jobs(list(JobState)) == []
    assert state.reminder_store.list_for_task(task.id) == []


@pytest.mark.asyncio
async def test_done_task_is_not_reminded(state, notifier, clock) -> None:
    start = clock.now
    task = state.tasks.create_task("alice", "Renew passport", deadline=start + 2)

    clock.now = start + 1
    state.tasks.complete_task(task.id, "alice")

    assert await _tick(state, start + 2) == 1
    assert notifier.attempts == 0

    (job,) = state.queue.get_jobs([JobState.COMPLETED])
    assert job.payload.task_id == task.id
    assert state.reminder_store.list_for_task(task.id)[0].is_sent is False


@pytest.mark.asyncio
async def test_flaky_channel_is_retried_with_backoff(state, notifier, clock) -> None:
    notifier.fail_times = 2
    start = clock.now
    state.tasks.create_task("alice", "Book flights", deadline=start + 2)

    await _tick(state, start + 2)
    assert notifier.sent == []
    (job,) = state.queue.get_jobs([JobState.DELAYED])
    assert job.run_at == pytest.approx(start + 7)

    await _tick(state, start + 7)
    (job,) = state.queue.get_jobs([JobState.DELAYED])
    assert job.run_at == pytest.approx(start + 17)

    await _tick(state, start + 17)
    assert notifier.attempts == 3
    assert len(notifier.sent) == 1
    assert state.queue.get_job_counts()["completed"] == 1


@pytest.mark.asyncio
async def test_moved_deadline_reminds_at_new_time_only(state, notifier, clock) -> None:
    start = clock.now
    task = state.tasks.create_task("alice", "Dentist", deadline=start + 2)

    state.tasks.set_deadline(task.id, "alice", start + 60)

    assert await _tick(state, start + 2) == 0
    assert notifier.sent == []

    assert await _tick(state, start + 60) == 1
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_task_without_deadline_has_no_job(state, notifier, clock) -> None:
    task = state.tasks.create_task("alice", "Someday: learn Rust")

    assert state.queue.get_jobs(list(JobState)) == []
    assert state.reminder_store.list_for_task(task.id) == []
