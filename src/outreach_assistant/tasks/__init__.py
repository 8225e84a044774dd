"""
Outreach task subsystem.

Components:
- task_models.py: data structures (MessagingTask, TaskTarget, statuses)
- task_store.py: SQLite-backed storage + query/update helpers
- orchestrator.py: task lifecycle, mirror links, reply capture, cancel/remove
- reminders.py: sweeper that nudges stale recipients
- summary.py: owner-facing summaries without raw identifiers
"""
