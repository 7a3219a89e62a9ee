# tests/test_config.py

from __future__ import annotations

import os
from pathlib import Path

import pytest

from taskminder.config import Settings


@pytest.fixture()
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("TASKMINDER_") or key.startswith("REDIS_") or key.startswith("MATRIX_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(clean_env) -> None:
    s = Settings.from_env()

    assert s.queue_backend == "sqlite"
    assert s.queue_name == "reminders"
    assert s.redis_url == "redis://localhost:6379/0"
    assert s.reminder_attempts == 3
    assert s.reminder_backoff_ms == 5000
    assert s.notifier == "console"
    assert s.timezone == "UTC"
    assert s.jobs_db_path == Path(".local/taskminder") / "jobs.sqlite3"


def test_overrides_and_fallbacks(clean_env) -> None:
    clean_env.setenv("TASKMINDER_DATA_DIR", "/tmp/tm")
    clean_env.setenv("TASKMINDER_QUEUE_BACKEND", "RQ")
    clean_env.setenv("REDIS_HOST", "cache")
    clean_env.setenv("REDIS_PORT", "6380")
    clean_env.setenv("TASKMINDER_REMINDER_ATTEMPTS", "0")
    clean_env.setenv("TASKMINDER_WORKER_BATCH_LIMIT", "lots")
    clean_env.setenv("TASKMINDER_NOTIFIER", "carrier-pigeon")

    s = Settings.from_env()

    assert s.tasks_db_path == Path("/tmp/tm/tasks.sqlite3")
    assert s.queue_backend == "rq"
    assert s.redis_url == "redis://cache:6380/0"
    assert s.reminder_attempts == 1
    assert s.worker_batch_limit == 32
    assert s.notifier == "console"


def test_explicit_redis_url_wins(clean_env) -> None:
    clean_env.setenv("REDIS_HOST", "cache")
    clean_env.setenv("TASKMINDER_REDIS_URL", "redis://queue:6379/3")

    assert Settings.from_env().redis_url == "redis://queue:6379/3"
