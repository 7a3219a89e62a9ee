# src/taskminder/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

ALERT_LOGGER_NAME = "taskminder.alerts"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Make interactive console usable:
    - allow taskminder logs
    - but keep the background worker quiet unless WARNING+
    - suppress third-party noise (rq, redis, nio) unless ERROR+
    - suppress Python warnings (captured as 'py.warnings') unless ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("taskminder."):
            # Polling worker runs every second; its INFO lines drown the REPL.
            if name == "taskminder.reminders.job_queue":
                return record.levelno >= logging.WARNING
            return True

        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        # Any other 3rd party: only errors to console.
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskminder",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - Console handler: readable + filtered for interactive use
    - File handler: full logs for debugging

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "taskminder.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    # Alerts (permanently failed reminders) also get their own file for whoever is on call.
    ah = logging.FileHandler(str(log_dir / "alerts.log"), encoding="utf-8")
    ah.setLevel(logging.ERROR)
    ah.setFormatter(fmt)
    alert_logger = logging.getLogger(ALERT_LOGGER_NAME)
    for h in list(alert_logger.handlers):
        alert_logger.removeHandler(h)
    alert_logger.addHandler(ah)

    logging.captureWarnings(True)

    logging.getLogger("rq").setLevel(logging.INFO)
    logging.getLogger("nio").setLevel(logging.WARNING)
