# tests/test_commands.py

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from taskminder.cli.bootstrap import create_initial_state
from taskminder.cli.commands import CommandRegistry, parse_when, registry
from taskminder.reminders.models import JobState
from taskminder.tasks.task_models import TaskPriority, TaskStatus

from .fakes import BrokenQueue


def test_command_registry_routes_and_aliases(state) -> None:
    reg = CommandRegistry()
    called: list[tuple[list[str], str]] = []

    def handler(state, args, user_id):
        called.append((args, user_id))
        return "ok"

    reg.register("a", handler, "a", aliases=["aa"])

    assert reg.handle(state, "/a x y", "u") == "ok"
    assert reg.handle(state, "/AA", "u") == "ok"
    assert called == [(["x", "y"], "u"), ([], "u")]


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello", "u") is None
    assert "Unknown command" in (reg.handle(state, "/nope", "u") or "")
    assert "Empty command" in (reg.handle(state, "/", "u") or "")


@pytest.mark.parametrize(
    ("token", "expected"),
    [("90s", 1090.0), ("30m", 2800.0), ("+2h", 8200.0), ("1d", 87400.0), ("-", None), ("none", None)],
)
def test_parse_when_relative(token, expected) -> None:
    assert parse_when(token, now_ts=1000.0) == expected


def test_parse_when_iso_uses_timezone_for_naive_values() -> None:
    utc = parse_when("2030-01-01T12:00", now_ts=0.0, tz_name="UTC")
    assert utc == datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc).timestamp()

    explicit = parse_when("2030-01-01T12:00+02:00", now_ts=0.0, tz_name="UTC")
    assert explicit == utc - 2 * 3600

    with pytest.raises(ValueError):
        parse_when("tomorrow-ish", now_ts=0.0)


def test_add_list_done_delete_flow(state) -> None:
    reply = registry.handle(state, "/add 30m !high Call the bank", "alice")
    assert reply is not None and reply.startswith("Added #")
    assert "Reminder at" in reply

    (task,) = state.tasks.list_tasks("alice")
    assert task.title == "Call the bank"
    assert task.priority == TaskPriority.HIGH
    assert len(state.queue.get_jobs([JobState.DELAYED])) == 1

    listing = registry.handle(state, "/tasks", "alice") or ""
    assert f"#{task.id} Call the bank" in listing

    assert registry.handle(state, f"/done {task.id}", "alice") == f"Marked #{task.id} as done."
    assert state.task_store.find_task(task.id).status == TaskStatus.DONE

    assert registry.handle(state, f"/delete #{task.id}", "alice") == f"Deleted #{task.id}."
    assert state.tasks.list_tasks("alice") == []
    assert state.queue.get_jobs([JobState.DELAYED]) == []


def test_add_without_deadline_and_bad_input(state) -> None:
    assert "no deadline" in (registry.handle(state, "/add - Read a book", "alice") or "")
    assert "Unknown priority" in (registry.handle(state, "/add 1h !urgent Fix it", "alice") or "")
    assert "cannot parse time" in (registry.handle(state, "/add soonish Fix it", "alice") or "")
    assert (registry.handle(state, "/add 1h", "alice") or "").startswith("Usage:")


def test_deadline_change_and_clear(state) -> None:
    registry.handle(state, "/add 1h Write report", "alice")
    (task,) = state.tasks.list_tasks("alice")

    assert "set to" in (registry.handle(state, f"/deadline {task.id} 2h", "alice") or "")
    assert len(state.queue.get_jobs([JobState.DELAYED])) == 1

    assert "cleared" in (registry.handle(state, f"/deadline {task.id} none", "alice") or "")
    assert state.queue.get_jobs([JobState.DELAYED]) == []


def test_foreign_or_missing_task_is_not_found(state) -> None:
    registry.handle(state, "/add 1h Secret", "alice")
    (task,) = state.tasks.list_tasks("alice")

    assert registry.handle(state, f"/done {task.id}", "bob") == f"Task {task.id} not found."
    assert registry.handle(state, "/delete 999", "alice") == "Task 999 not found."


def test_queue_outage_is_reported_not_raised(settings, notifier, clock) -> None:
    broken = create_initial_state(settings=settings, notifier=notifier, queue=BrokenQueue(), clock=clock)

    reply = registry.handle(broken, "/add 1h Doomed", "alice") or ""

    assert "queue is unavailable" in reply
    assert broken.tasks.list_tasks("alice") == []


def test_jobs_and_reconcile_commands(state) -> None:
    registry.handle(state, "/add 1h Stretch", "alice")
    state.reminder_store.add_reminder(task_id=4040, remind_at=0.0)

    jobs = registry.handle(state, "/jobs", "alice") or ""
    assert "delayed=1" in jobs
    assert "task #" in jobs

    assert registry.handle(state, "/reconcile", "alice") == (
        "Reconciled 2 reminder(s): 1 orphan(s) removed, 0 failed."
    )


def test_help_lists_commands(state) -> None:
    text = registry.handle(state, "/help", "alice") or ""
    for name in ("/add", "/deadline", "/done", "/delete", "/tasks", "/jobs", "/reconcile"):
        assert name in text
