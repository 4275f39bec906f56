# src/donelist/tasks/lifecycle.py

from __future__ import annotations

"""
Task lifecycle state machine.

    pending --mark_completed--> completed --archive--> archived
       ^                           |                      |
       +-------mark_pending--------+----------------------+

Every function is pure: it takes a Task and returns a Transition describing the
new Task and the exact store patch. Reverting from archived is allowed and
clears the archive state together with the completion state.
"""

import time
from dataclasses import replace
from typing import Any

from ..core.errors import SchedulingInconsistency
from .task_models import ArchivalRequest, Task, TaskStatus, Transition

_ALLOWED: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.PENDING: (TaskStatus.COMPLETED,),
    TaskStatus.COMPLETED: (TaskStatus.ARCHIVED, TaskStatus.PENDING),
    TaskStatus.ARCHIVED: (TaskStatus.PENDING,),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in _ALLOWED.get(current, ())


def _apply(task: Task, changes: dict[str, Any], now: float, **extra: Any) -> Transition:
    changes = {**changes, "updated_at": now}
    return Transition(task=replace(task, **changes), changes=changes, **extra)


def mark_completed(task: Task, now: float, *, archival_delay: float) -> Transition:
    """Pending -> completed. Already completed (or archived) is a no-op."""
    if not can_transition(task.status, TaskStatus.COMPLETED):
        return Transition(task=task)

    return _apply(
        task,
        {"is_completed": True, "completed_at": now},
        now,
        archival=ArchivalRequest(task_id=task.id, fire_at=now + max(0.0, archival_delay)),
    )


def mark_pending(task: Task, now: float | None = None) -> Transition:
    """
    Completed/archived -> pending.

    Completion and archive fields are cleared in one patch so the store never
    sees an archived-but-incomplete record.
    """
    if not can_transition(task.status, TaskStatus.PENDING):
        return Transition(task=task)

    if now is None:
        now = time.time()

    return _apply(
        task,
        {
            "is_completed": False,
            "completed_at": None,
            "is_archived": False,
            "archived_at": None,
        },
        now,
        cancel_archival=True,
    )


def is_archival_due(task: Task, now: float, *, archival_delay: float) -> bool:
    if task.status is not TaskStatus.COMPLETED or task.completed_at is None:
        return False
    return now - task.completed_at >= archival_delay


def archive(task: Task, now: float, *, archival_delay: float) -> Transition:
    """
    Completed -> archived once archival_delay has elapsed since completed_at.

    An already archived task is a silent no-op so duplicate triggers are safe.
    Any other unmet precondition raises SchedulingInconsistency.
    """
    if task.is_archived:
        return Transition(task=task)

    if not can_transition(task.status, TaskStatus.ARCHIVED):
        raise SchedulingInconsistency(task.id, "task is no longer completed")
    if task.completed_at is None:
        raise SchedulingInconsistency(task.id, "completed task has no completed_at")

    elapsed = now - task.completed_at
    if elapsed < archival_delay:
        raise SchedulingInconsistency(
            task.id,
            f"archival delay not elapsed ({elapsed:.1f}s < {archival_delay:.1f}s)",
        )

    # Only archive the row we checked: a revert committed meanwhile wins.
    return _apply(
        task,
        {"is_archived": True, "archived_at": now},
        now,
        expected={"is_completed": True, "is_archived": False, "completed_at": task.completed_at},
    )


def set_completed(task: Task, completed: bool, now: float, *, archival_delay: float) -> Transition:
    """Route a requested completion flag to the matching transition."""
    if completed:
        return mark_completed(task, now, archival_delay=archival_delay)
    return mark_pending(task, now)
