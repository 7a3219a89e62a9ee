# src/taskminder/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (Matrix credentials are only read when the
  Matrix notifier is selected).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKMINDER"

QUEUE_BACKENDS = ("sqlite", "rq")
NOTIFIERS = ("console", "matrix")

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    raw = (os.getenv(name) or "").strip().lower()
    return raw if raw in choices else default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    timezone: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    reminders_db_path: Path
    jobs_db_path: Path

    # ---- Delayed job queue ----
    queue_backend: str
    queue_name: str
    redis_url: str

    # ---- Reminder delivery policy ----
    reminder_attempts: int
    reminder_backoff_ms: int
    worker_interval_seconds: float
    worker_batch_limit: int
    reconcile_interval_seconds: float

    # ---- Notification channel ----
    notifier: str
    console_owner_id: str

    # ---- Matrix ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_store_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskminder")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        timezone = _env(_k("TIMEZONE"), "UTC")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskminder"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        reminders_db_path = _env_path(_k("REMINDERS_DB_PATH"), data_dir / "reminders.sqlite3")
        jobs_db_path = _env_path(_k("JOBS_DB_PATH"), data_dir / "jobs.sqlite3")

        queue_backend = _env_choice(_k("QUEUE_BACKEND"), QUEUE_BACKENDS, "sqlite")
        queue_name = _env(_k("QUEUE_NAME"), "reminders")

        # Either a full URL or host/port (the latter mirrors REDIS_HOST/REDIS_PORT deployments).
        redis_host = _first_env(_k("REDIS_HOST"), "REDIS_HOST", default="localhost") or "localhost"
        redis_port = _env_int(_k("REDIS_PORT"), _env_int("REDIS_PORT", 6379))
        redis_url = _first_env(
            _k("REDIS_URL"),
            "REDIS_URL",
            default=f"redis://{redis_host}:{redis_port}/0",
        ) or f"redis://{redis_host}:{redis_port}/0"

        reminder_attempts = max(1, _env_int(_k("REMINDER_ATTEMPTS"), 3))
        reminder_backoff_ms = max(0, _env_int(_k("REMINDER_BACKOFF_MS"), 5000))
        worker_interval_seconds = _env_float(_k("WORKER_INTERVAL_SECONDS"), 1.0)
        worker_batch_limit = _env_int(_k("WORKER_BATCH_LIMIT"), 32)
        reconcile_interval_seconds = _env_float(_k("RECONCILE_INTERVAL_SECONDS"), 3600.0)

        notifier = _env_choice(_k("NOTIFIER"), NOTIFIERS, "console")
        console_owner_id = _env(_k("CONSOLE_OWNER_ID"), "console")

        matrix_homeserver = (_first_env(_k("MATRIX_HOMESERVER"), "MATRIX_HOMESERVER", default="") or "").strip()
        matrix_user_id = (_first_env(_k("MATRIX_USER_ID"), "MATRIX_USER_ID", default="") or "").strip()
        matrix_password = (_first_env(_k("MATRIX_PASSWORD"), "MATRIX_PASSWORD", default="") or "").strip()
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            timezone=timezone,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            reminders_db_path=reminders_db_path,
            jobs_db_path=jobs_db_path,
            queue_backend=queue_backend,
            queue_name=queue_name,
            redis_url=redis_url,
            reminder_attempts=reminder_attempts,
            reminder_backoff_ms=reminder_backoff_ms,
            worker_interval_seconds=worker_interval_seconds,
            worker_batch_limit=worker_batch_limit,
            reconcile_interval_seconds=reconcile_interval_seconds,
            notifier=notifier,
            console_owner_id=console_owner_id,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_store_path=matrix_store_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
