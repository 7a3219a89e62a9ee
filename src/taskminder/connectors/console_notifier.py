# src/taskminder/connectors/console_notifier.py

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import TextIO

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


class ConsoleNotifier:
    """Notification channel for local runs: reminders are printed to the terminal."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    async def deliver(self, destination: str, text: str) -> None:
        stream = self._stream or sys.stdout
        body = text.replace("\n", "\n    ")
        stream.write(f"\n[{_ts_local()}] 🔔 to {destination}:\n    {body}\n")
        stream.flush()
        logger.debug("Console reminder delivered to %s", destination)
