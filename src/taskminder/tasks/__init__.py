"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, TaskPriority)
- task_store.py: SQLite-backed storage + query/update helpers
- task_service.py: mutations that keep reminder jobs in sync
"""
