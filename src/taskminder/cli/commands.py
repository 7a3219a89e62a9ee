# src/taskminder/cli/commands.py

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from datetime import datetime

from ..core.state import AppState
from ..errors import QueueUnavailable, TaskNotFound
from ..reminders.dispatcher import format_deadline, resolve_zone
from ..reminders.models import JobState
from ..reminders.reconciler import reconcile_orphans
from ..tasks.task_models import Task, TaskPriority, TaskStatus

CommandHandler = Callable[[AppState, list[str], str], str]

logger = logging.getLogger(__name__)

_RELATIVE_RE = re.compile(r"^\+?(\d+)([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
_NO_DEADLINE = ("-", "none", "off", "clear")


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, user_id: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, args, user_id)
        except TaskNotFound as e:
            return f"{e}.".capitalize()
        except QueueUnavailable:
            logger.error("Command /%s aborted: reminder queue unavailable", name)
            return "Reminder queue is unavailable, nothing was changed. Try again later."

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def parse_when(token: str, *, now_ts: float, tz_name: str | None = None) -> float | None:
    """
    Parse a deadline token.

    Accepts relative offsets ("90s", "30m", "+2h", "1d"), ISO datetimes
    ("2026-10-20T18:00", naive ones are read in tz_name) and "-"/"none" for no
    deadline. Raises ValueError on anything else.
    """
    raw = token.strip()
    low = raw.lower()
    if low in _NO_DEADLINE:
        return None

    m = _RELATIVE_RE.match(low)
    if m:
        return float(now_ts) + int(m.group(1)) * _UNIT_SECONDS[m.group(2)]

    try:
        dt = datetime.fromisoformat(raw)
    except ValueError as e:
        raise ValueError(f"cannot parse time {raw!r}") from e

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=resolve_zone(tz_name))
    return dt.timestamp()


def _parse_task_id(args: list[str]) -> int | None:
    if not args:
        return None
    try:
        return int(args[0].lstrip("#"))
    except ValueError:
        return None


def _format_task(task: Task, tz_name: str | None) -> str:
    mark = "x" if task.status == TaskStatus.DONE else " "
    due = f" (due {format_deadline(task.deadline, tz_name)})" if task.deadline is not None else ""
    return f"[{mark}] #{task.id} {task.title} [{task.priority.value}]{due}"


def cmd_help(state: AppState, args: list[str], user_id: str) -> str:
    return registry.build_help()


def cmd_add(state: AppState, args: list[str], user_id: str) -> str:
    """
    /add <when|-> [!low|!medium|!high] <title...>
    """
    if len(args) < 2:
        return "Usage: /add <when|-> [!priority] <title>. Example: /add 30m !high Call the bank"

    tz_name = state.settings.timezone
    try:
        deadline = parse_when(args[0], now_ts=time.time(), tz_name=tz_name)
    except ValueError as e:
        return str(e)

    rest = args[1:]
    priority = TaskPriority.MEDIUM
    if rest and rest[0].startswith("!"):
        try:
            priority = TaskPriority(rest[0][1:].lower())
        except ValueError:
            return f"Unknown priority {rest[0]!r}. Use !low, !medium or !high."
        rest = rest[1:]

    title = " ".join(rest).strip()
    if not title:
        return "Task title is empty."

    task = state.tasks.create_task(user_id, title, priority=priority, deadline=deadline)
    if task.deadline is None:
        return f"Added #{task.id}: {task.title} (no deadline)."
    if task.deadline <= time.time():
        return f"Added #{task.id}: {task.title}. The deadline is already past, no reminder scheduled."
    return f"Added #{task.id}: {task.title}. Reminder at {format_deadline(task.deadline, tz_name)}."


def cmd_deadline(state: AppState, args: list[str], user_id: str) -> str:
    """
    /deadline <id> <when|none>
    """
    task_id = _parse_task_id(args)
    if task_id is None or len(args) < 2:
        return "Usage: /deadline <id> <when|none>"

    tz_name = state.settings.timezone
    try:
        deadline = parse_when(args[1], now_ts=time.time(), tz_name=tz_name)
    except ValueError as e:
        return str(e)

    task = state.tasks.set_deadline(task_id, user_id, deadline)
    if task.deadline is None:
        return f"Deadline cleared for #{task.id}; its reminder was cancelled."
    return f"Deadline for #{task.id} set to {format_deadline(task.deadline, tz_name)}."


def cmd_done(state: AppState, args: list[str], user_id: str) -> str:
    task_id = _parse_task_id(args)
    if task_id is None:
        return "Usage: /done <id>"
    task = state.tasks.complete_task(task_id, user_id)
    return f"Marked #{task.id} as done."


def cmd_delete(state: AppState, args: list[str], user_id: str) -> str:
    task_id = _parse_task_id(args)
    if task_id is None:
        return "Usage: /delete <id>"
    state.tasks.delete_task(task_id, user_id)
    return f"Deleted #{task_id}."


def cmd_tasks(state: AppState, args: list[str], user_id: str) -> str:
    tasks = state.tasks.list_tasks(user_id)
    if not tasks:
        return "No tasks yet. Use /add to create one."
    tz_name = state.settings.timezone
    return "\n".join(["Your tasks:", *(f"  {_format_task(t, tz_name)}" for t in tasks)])


def cmd_upcoming(state: AppState, args: list[str], user_id: str) -> str:
    tasks = state.tasks.list_upcoming(user_id)
    if not tasks:
        return "Nothing due."
    tz_name = state.settings.timezone
    return "\n".join(["Upcoming deadlines:", *(f"  {_format_task(t, tz_name)}" for t in tasks)])


def cmd_jobs(state: AppState, args: list[str], user_id: str) -> str:
    """
    /jobs -> queue counts + pending reminder jobs
    """
    counts = state.queue.get_job_counts()
    lines = [
        f"Queue {state.queue.name!r}: " + ", ".join(f"{k}={v}" for k, v in counts.items()),
    ]

    tz_name = state.settings.timezone
    pending = state.queue.get_jobs([JobState.WAITING, JobState.DELAYED])
    for job in pending:
        lines.append(f"  {job.id} task #{job.payload.task_id} -> {format_deadline(job.run_at, tz_name)} [{job.state.value}]")
    return "\n".join(lines)


def cmd_reconcile(state: AppState, args: list[str], user_id: str) -> str:
    report = reconcile_orphans(state.reminder_store, state.task_store)
    return f"Reconciled {report.checked} reminder(s): {report.deleted} orphan(s) removed, {report.failed} failed."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("add", cmd_add, help_text="Add a task: /add <30m|2h|ISO|-> [!high] <title>.")
registry.register("deadline", cmd_deadline, help_text="Change a deadline: /deadline <id> <when|none>.")
registry.register("done", cmd_done, help_text="Mark a task as done: /done <id>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("tasks", cmd_tasks, help_text="List your tasks.", aliases=["ls"])
registry.register("upcoming", cmd_upcoming, help_text="List pending tasks with a future deadline.")
registry.register("jobs", cmd_jobs, help_text="Show reminder queue state.")
registry.register("reconcile", cmd_reconcile, help_text="Remove reminders whose task no longer exists.")
