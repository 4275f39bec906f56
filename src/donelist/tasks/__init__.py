"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, Attachment, Transition)
- task_entity.py: input validation, create/update of task records
- lifecycle.py: pending -> completed -> archived state machine
- task_views.py: filtering, search, badge counts, overview stats
- task_scheduler.py: archival sweep loop + per-task timers
- task_store.py: SQLite-backed implementation of the sync adapter port
- task_api.py: TaskService used by connectors
- task_runtime.py: background event loop hosting subscription + scheduler
"""
