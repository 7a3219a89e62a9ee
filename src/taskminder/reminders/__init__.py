"""
Reminder subsystem.

Components:
- models.py: payload, retry policy, job and reminder records
- scheduler.py: turns a deadline into one delayed job (schedule / cancel)
- hooks.py: task lifecycle -> scheduler calls + reminder bookkeeping
- dispatcher.py: job consumer; re-checks the task, then delivers
- job_queue.py: SQLite delayed job queue + polling worker
- rq_queue.py: Redis/rq delayed job queue
- reminder_store.py: SQLite-backed reminder records
- reconciler.py: periodic sweep of reminders whose task is gone
"""
