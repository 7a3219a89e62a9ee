# src/taskminder/cli/background.py

"""
Background reminder services for the interactive CLI.

The console REPL blocks on input(), so the async side (queue worker and orphan
reconciler) gets its own thread with its own event loop:
- SQLite backend: an in-process worker consumes due jobs,
- rq backend: jobs are consumed by `taskminder-worker`, only the reconciler runs here.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from ..reminders.job_queue import SqliteJobQueue, reminder_job_handler, run_job_worker
from ..reminders.reconciler import run_orphan_reconciler

logger = logging.getLogger(__name__)


async def _run_services(state: AppState, stop_event: asyncio.Event) -> None:
    settings = state.settings
    jobs: list[asyncio.Task] = []

    if isinstance(state.queue, SqliteJobQueue):
        # The worker also requeues jobs left active by a crashed process.
        jobs.append(
            asyncio.create_task(
                run_job_worker(
                    state.queue,
                    reminder_job_handler(state.dispatcher.dispatch),
                    interval_seconds=float(settings.worker_interval_seconds),
                    batch_limit=int(settings.worker_batch_limit),
                ),
                name="reminder-worker",
            )
        )
    else:
        logger.info("Queue backend is %r: run `taskminder-worker` to deliver reminders.", settings.queue_backend)

    jobs.append(
        asyncio.create_task(
            run_orphan_reconciler(
                state.reminder_store,
                state.task_store,
                interval_seconds=float(settings.reconcile_interval_seconds),
            ),
            name="orphan-reconciler",
        )
    )

    try:
        await stop_event.wait()
    finally:
        for job in jobs:
            job.cancel()
        await asyncio.gather(*jobs, return_exceptions=True)

        close = getattr(state.notifier, "close", None)
        if close is not None:
            try:
                await close()
            except Exception:
                logger.debug("Notifier close failed.", exc_info=True)


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal background services stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_services_in_background(state: AppState) -> BackgroundRunner | None:
    """Start the reminder worker and the orphan reconciler in a background thread."""
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_services(state, stop_event))
        except Exception:
            logger.exception("Background services crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="taskminder-services", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Background services thread did not initialize properly.")
        return None

    logger.info("Background reminder services started.")
    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
