# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskminder.cli.bootstrap import create_initial_state
from taskminder.core.state import AppState
from taskminder.reminders.job_queue import SqliteJobQueue
from taskminder.reminders.reminder_store import ReminderStore
from taskminder.tasks.task_store import TaskStore

from .fakes import FakeClock, FakeNotifier


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's .env.
    """
    return SimpleNamespace(
        app_name="taskminder-test",
        timezone="UTC",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        reminders_db_path=tmp_path / "reminders.sqlite3",
        jobs_db_path=tmp_path / "jobs.sqlite3",
        queue_backend="sqlite",
        queue_name="reminders",
        redis_url="redis://localhost:6379/0",
        reminder_attempts=3,
        reminder_backoff_ms=5000,
        worker_interval_seconds=0.05,
        worker_batch_limit=32,
        reconcile_interval_seconds=3600.0,
        notifier="console",
        console_owner_id="alice",
    )


@pytest.fixture()
def task_store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3")


@pytest.fixture()
def reminder_store(tmp_path: Path) -> ReminderStore:
    return ReminderStore(tmp_path / "reminders.sqlite3")


@pytest.fixture()
def job_queue(tmp_path: Path, clock: FakeClock) -> SqliteJobQueue:
    return SqliteJobQueue(tmp_path / "jobs.sqlite3", name="reminders", clock=clock)


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def state(settings: SimpleNamespace, notifier: FakeNotifier, clock: FakeClock) -> AppState:
    """
    AppState wired through the real composition root.

    NOTE: We keep real SQLite stores and the SQLite job queue here because
    their interplay is part of what we want to test; only the channel and
    the clock are fakes.
    """
    return create_initial_state(settings=settings, notifier=notifier, clock=clock)
