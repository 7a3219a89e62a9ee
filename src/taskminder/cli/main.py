# src/taskminder/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- reminder services (queue worker + orphan reconciler) in a background thread,
- the console REPL in the main thread.
"""

from __future__ import annotations

import logging

from ..cli.background import start_services_in_background
from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (queue=%s, notifier=%s)...", settings.app_name, settings.queue_backend, settings.notifier)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    runner = start_services_in_background(state)
    try:
        run_console_loop(state)
    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
