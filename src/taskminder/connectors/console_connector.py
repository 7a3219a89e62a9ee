# src/taskminder/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)

PROMPT = ">>> "
EXIT_COMMANDS = frozenset({"/exit", "/quit"})

# Cursor up one line, then clear it.
_ERASE_PREV_LINE = "\033[1A\033[2K\r"


def _stamp(text: str) -> str:
    return f"[{datetime.now().astimezone():%Y-%m-%d %H:%M:%S}] {text}"


def _read_command() -> str | None:
    """
    Read one line; None means the user is leaving (EOF / Ctrl-C).

    On a TTY the raw prompt line is replaced by a timestamped echo so the
    transcript lines up with reminder output printed from the worker thread.
    """
    try:
        line = input(PROMPT).strip()
    except EOFError:
        logger.info("Console EOF received, exiting.")
        return None
    except KeyboardInterrupt:
        logger.info("Console KeyboardInterrupt, exiting.")
        print()
        return None

    echo = _stamp(PROMPT + line)
    if sys.stdout.isatty():
        sys.stdout.write(_ERASE_PREV_LINE + echo + "\n")
        sys.stdout.flush()
    else:
        print(echo)
    return line


def _answer(state: AppState, line: str, owner_id: str) -> str:
    try:
        # Handlers mutate stores the background worker reads too.
        with state.lock:
            reply = command_registry.handle(state, line, owner_id)
    except Exception:
        logger.exception("Command handler crashed for %r.", line)
        return "Internal error while handling a command."
    return reply if reply is not None else "Only slash commands are understood here. Use /help."


def run_console_loop(state: AppState) -> None:
    owner_id = str(getattr(state.settings, "console_owner_id", "console"))
    logger.info("Console connector started (owner=%s).", owner_id)
    print(_stamp("Manage tasks with slash commands: /help lists them, /exit quits.\n"))

    while (line := _read_command()) is not None:
        if not line:
            continue
        if line.lower() in EXIT_COMMANDS:
            logger.info("Console exit command received.")
            break
        print(_stamp(_answer(state, line, owner_id)))

    logger.info("Console connector finished.")
