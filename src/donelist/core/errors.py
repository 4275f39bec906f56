# src/donelist/core/errors.py

"""
Error taxonomy.

- ValidationError: bad user input, raised before anything is written.
- OperationError: the store failed; prior state is left untouched.
  StaleWriteError is the conditional-update flavour of it.
- SchedulingInconsistency: an archival trigger found its task no longer
  eligible. Internal; the scheduler logs it and moves on.
"""

from __future__ import annotations


class TaskError(Exception):
    """Base class for donelist errors."""


class ValidationError(TaskError, ValueError):
    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class OperationError(TaskError):
    def __init__(self, operation: str, message: str, *, task_id: str | None = None) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.task_id = task_id


class StaleWriteError(OperationError):
    """A conditional update found the stored task changed since it was read."""


class SchedulingInconsistency(TaskError):
    def __init__(self, task_id: str | None, reason: str) -> None:
        super().__init__(f"task {task_id}: {reason}")
        self.task_id = task_id
        self.reason = reason
