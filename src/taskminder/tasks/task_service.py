# src/taskminder/tasks/task_service.py

from __future__ import annotations

"""
Task mutations with their reminder side effects.

Every mutation that touches a deadline goes through DeadlineHooks. A queue
failure (QueueUnavailable, or a reminder store error) aborts the mutation: a task whose deadline exists
but has no job would never remind its owner, which is worse than telling the
user the change failed.
"""

import logging
import sqlite3
import time

from ..errors import QueueUnavailable, TaskNotFound
from ..reminders.hooks import DeadlineHooks
from .task_models import Task, TaskPriority, TaskStatus
from .task_store import TaskStore

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, store: TaskStore, hooks: DeadlineHooks) -> None:
        self._store = store
        self._hooks = hooks

    def _owned_task(self, task_id: int, owner_id: str) -> Task:
        task = self._store.find_task(task_id)
        if task is None or task.owner_id != owner_id:
            raise TaskNotFound(f"task {task_id} not found", details={"task_id": task_id, "owner_id": owner_id})
        return task

    def create_task(
        self,
        owner_id: str,
        title: str,
        *,
        description: str | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        deadline: float | None = None,
        estimated_minutes: int | None = None,
    ) -> Task:
        task_id = self._store.add_task(
            owner_id=owner_id,
            title=title,
            description=description,
            priority=priority,
            deadline=deadline,
            estimated_minutes=estimated_minutes,
        )
        task = self._store.find_task(task_id)
        if task is None:
            raise RuntimeError(f"task {task_id} vanished right after insert")

        try:
            self._hooks.on_task_created(task)
        except (QueueUnavailable, sqlite3.Error):
            logger.error("Rolling back task creation id=%s: reminder could not be scheduled", task_id)
            self._store.delete_task(task_id)
            raise

        logger.info("Task created id=%s owner=%s deadline=%s", task_id, owner_id, deadline)
        return task

    def set_deadline(self, task_id: int, owner_id: str, deadline: float | None) -> Task:
        """Replace (or clear, with None) a task's deadline and its reminder job."""
        task = self._owned_task(task_id, owner_id)
        previous = task.deadline

        self._store.update_task_fields(task_id, deadline=deadline)
        try:
            self._hooks.on_deadline_changed(task_id, task.owner_id, deadline)
        except (QueueUnavailable, sqlite3.Error):
            logger.error("Rolling back deadline change task_id=%s", task_id)
            self._store.update_task_fields(task_id, deadline=previous)
            self._restore_trigger(task_id, task.owner_id, previous)
            raise

        return self._owned_task(task_id, owner_id)

    def _restore_trigger(self, task_id: int, owner_id: str, deadline: float | None) -> None:
        # The old job may already be cancelled when the new one fails to enqueue.
        try:
            self._hooks.on_deadline_changed(task_id, owner_id, deadline)
        except (QueueUnavailable, sqlite3.Error):
            logger.exception("Could not restore the reminder for task_id=%s deadline=%s", task_id, deadline)

    def complete_task(self, task_id: int, owner_id: str) -> Task:
        """
        Mark a task done. The pending job stays queued: the dispatcher sees DONE
        at due time and skips delivery.
        """
        self._owned_task(task_id, owner_id)
        self._store.update_task_status(task_id, TaskStatus.DONE)
        logger.info("Task %s -> done", task_id)
        return self._owned_task(task_id, owner_id)

    def delete_task(self, task_id: int, owner_id: str) -> None:
        self._owned_task(task_id, owner_id)
        # Cancel first: if the broker is down, the task must stay so the user can retry.
        self._hooks.on_task_deleted(task_id)
        self._store.delete_task(task_id)
        logger.info("Task %s deleted", task_id)

    def list_tasks(self, owner_id: str, limit: int = 50) -> list[Task]:
        return self._store.list_tasks_for_owner(owner_id, limit=limit)

    def list_upcoming(self, owner_id: str, *, now_ts: float | None = None, limit: int = 50) -> list[Task]:
        now = time.time() if now_ts is None else float(now_ts)
        return self._store.list_upcoming_tasks(owner_id, now_ts=now, limit=limit)
