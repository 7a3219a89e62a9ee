# src/taskminder/cli/worker.py

"""
Headless reminder worker (`taskminder-worker`).

- rq backend: an rq SimpleWorker consumes the reminder queue (with the rq
  scheduler enabled so delayed jobs and retries get promoted); the orphan
  reconciler runs in a background thread.
- SQLite backend: the same background services the interactive CLI starts,
  without the console.

SimpleWorker runs jobs in this process, so the notifier (and its Matrix session)
and the event loop below survive across jobs.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from dataclasses import dataclass

from redis import Redis
from rq import Queue, SimpleWorker, get_current_job

from ..cli.background import start_services_in_background
from ..cli.bootstrap import build_dispatcher, build_notifier, create_initial_state
from ..config import get_settings
from ..logging_setup import ALERT_LOGGER_NAME, setup_logging
from ..reminders.dispatcher import DispatchOutcome, ReminderDispatcher
from ..reminders.models import ReminderPayload
from ..reminders.reminder_store import ReminderStore
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger(ALERT_LOGGER_NAME)


@dataclass
class _JobContext:
    loop: asyncio.AbstractEventLoop
    dispatcher: ReminderDispatcher


_context: _JobContext | None = None
_context_lock = threading.Lock()


def _get_context() -> _JobContext:
    global _context
    with _context_lock:
        if _context is None:
            settings = get_settings()
            notifier = build_notifier(settings)
            dispatcher = build_dispatcher(
                settings,
                task_store=TaskStore(settings.tasks_db_path),
                reminder_store=ReminderStore(settings.reminders_db_path),
                notifier=notifier,
            )
            _context = _JobContext(loop=asyncio.new_event_loop(), dispatcher=dispatcher)
        return _context


def send_reminder_job(task_id: int, owner_id: str) -> str:
    """
    rq entrypoint for one reminder job.

    Exceptions propagate to rq, which applies the job's Retry policy. The last
    failing attempt is reported on the alerts logger.
    """
    ctx = _get_context()
    payload = ReminderPayload(task_id=int(task_id), owner_id=str(owner_id))

    try:
        outcome = ctx.loop.run_until_complete(ctx.dispatcher.dispatch(payload))
    except Exception as e:
        job = get_current_job()
        retries_left = job.retries_left if job is not None else None
        if not retries_left:
            alert_logger.error(
                "Reminder job failed permanently job_id=%s task_id=%s error=%s",
                job.id if job is not None else "?",
                task_id,
                e,
            )
        else:
            logger.warning("Reminder attempt failed task_id=%s (%s retries left): %s", task_id, retries_left, e)
        raise

    if outcome != DispatchOutcome.DELIVERED:
        logger.info("Reminder job task_id=%s finished without delivery: %s", task_id, outcome.value)
    return outcome.value


def _wait_for_signal() -> None:
    stop = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    stop.wait()


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    setup_logging(log_dir=settings.data_dir, console_level=getattr(logging, level_name, logging.INFO))

    logger.info("Starting %s worker (queue=%s)...", settings.app_name, settings.queue_backend)

    state = create_initial_state(settings=settings)
    runner = start_services_in_background(state)

    try:
        if settings.queue_backend == "rq":
            redis = Redis.from_url(settings.redis_url)
            queue = Queue(settings.queue_name, connection=redis)
            worker = SimpleWorker([queue], connection=redis)
            worker.work(with_scheduler=True)
        else:
            _wait_for_signal()
    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)
        logger.info("Worker stopped.")


if __name__ == "__main__":
    main()
