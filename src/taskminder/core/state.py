# src/taskminder/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..reminders.dispatcher import ReminderDispatcher
from ..reminders.reminder_store import ReminderStore
from ..reminders.scheduler import ReminderScheduler
from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore
from .ports import DelayedJobQueue, NotificationChannel


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    task_store: TaskStore
    reminder_store: ReminderStore
    queue: DelayedJobQueue
    scheduler: ReminderScheduler
    dispatcher: ReminderDispatcher
    tasks: TaskService
    notifier: NotificationChannel

    # Console REPL and background worker share the stores.
    lock: threading.Lock = field(default_factory=threading.Lock)
