# src/taskminder/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires stores, the delayed job queue, the notifier, scheduler and dispatcher
  into AppState.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from redis import Redis

from ..config import get_settings
from ..connectors.console_notifier import ConsoleNotifier
from ..connectors.matrix_notifier import MatrixNotifier
from ..core.ports import DelayedJobQueue, NotificationChannel
from ..core.state import AppState
from ..reminders.dispatcher import ReminderDispatcher
from ..reminders.hooks import DeadlineHooks
from ..reminders.job_queue import SqliteJobQueue
from ..reminders.models import RetryPolicy
from ..reminders.reminder_store import ReminderStore
from ..reminders.rq_queue import RQJobQueue
from ..reminders.scheduler import ReminderScheduler
from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.reminders_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.jobs_db_path.parent.mkdir(parents=True, exist_ok=True)


def build_retry_policy(settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=int(settings.reminder_attempts),
        base_delay_ms=int(settings.reminder_backoff_ms),
    )


def build_queue(settings, *, clock: Callable[[], float] = time.time) -> DelayedJobQueue:
    if settings.queue_backend == "rq":
        logger.info("Using rq queue %r at %s", settings.queue_name, settings.redis_url)
        return RQJobQueue(Redis.from_url(settings.redis_url), name=settings.queue_name)

    logger.info("Using SQLite queue %r at %s", settings.queue_name, settings.jobs_db_path)
    return SqliteJobQueue(settings.jobs_db_path, name=settings.queue_name, clock=clock)


def build_notifier(settings) -> NotificationChannel:
    if settings.notifier == "matrix":
        return MatrixNotifier(settings)
    return ConsoleNotifier()


def build_dispatcher(
    settings,
    *,
    task_store: TaskStore,
    reminder_store: ReminderStore,
    notifier: NotificationChannel,
    clock: Callable[[], float] = time.time,
) -> ReminderDispatcher:
    return ReminderDispatcher(
        task_store,
        reminder_store,
        notifier,
        tz_name=settings.timezone,
        clock=clock,
    )


def create_initial_state(
    *,
    settings=None,
    notifier: NotificationChannel | None = None,
    queue: DelayedJobQueue | None = None,
    clock: Callable[[], float] = time.time,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the notifier/queue) injectable makes the app easier to
    test and avoids hidden global config reads. If settings is None, falls back
    to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_db_path)
    reminder_store = ReminderStore(settings.reminders_db_path)
    queue = queue if queue is not None else build_queue(settings, clock=clock)
    notifier = notifier if notifier is not None else build_notifier(settings)

    scheduler = ReminderScheduler(queue, retry=build_retry_policy(settings), clock=clock)
    hooks = DeadlineHooks(scheduler, reminder_store)

    dispatcher = build_dispatcher(
        settings,
        task_store=task_store,
        reminder_store=reminder_store,
        notifier=notifier,
        clock=clock,
    )

    return AppState(
        settings=settings,
        task_store=task_store,
        reminder_store=reminder_store,
        queue=queue,
        scheduler=scheduler,
        dispatcher=dispatcher,
        tasks=TaskService(task_store, hooks),
        notifier=notifier,
    )
