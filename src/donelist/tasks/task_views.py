# src/donelist/tasks/task_views.py

from __future__ import annotations

"""
Derived views over a task snapshot.

Everything here is a pure function of (tasks, filter mode, search query).
Archived tasks only ever show up in the archive view; badge counts ignore both
the active filter and the search query.
"""

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from ..core.errors import ValidationError
from .task_models import Task

RING_RADIUS = 36.0
RING_CIRCUMFERENCE = 2 * math.pi * RING_RADIUS


class FilterMode(StrEnum):
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"
    IMPORTANT = "important"
    ARCHIVE = "archive"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, raw: str | None) -> FilterMode:
        key = (raw or "").strip().lower()
        key = _FILTER_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ValidationError(f"unknown filter {raw!r} (choose: {choices})", field="filter") from None


_FILTER_ALIASES = {
    "": "all",
    "incomplete": "pending",
    "todo": "pending",
    "done": "completed",
    "archived": "archive",
}

_PREDICATES: dict[FilterMode, Callable[[Task], bool]] = {
    FilterMode.ALL: lambda t: not t.is_archived,
    FilterMode.PENDING: lambda t: not t.is_completed and not t.is_archived,
    FilterMode.COMPLETED: lambda t: t.is_completed and not t.is_archived,
    FilterMode.IMPORTANT: lambda t: t.is_important and not t.is_archived,
    FilterMode.ARCHIVE: lambda t: t.is_archived,
}


def matches_search(task: Task, query: str | None) -> bool:
    needle = (query or "").strip().casefold()
    if not needle:
        return True
    return needle in (task.title or "").casefold() or needle in (task.description or "").casefold()


def filter_tasks(tasks: Iterable[Task], mode: FilterMode, query: str | None = "") -> list[Task]:
    predicate = _PREDICATES[mode]
    return [t for t in tasks if predicate(t) and matches_search(t, query)]


@dataclass(slots=True, frozen=True)
class ViewCounts:
    """Sidebar badge totals."""

    all: int
    pending: int
    completed: int
    important: int
    archive: int

    def for_mode(self, mode: FilterMode) -> int:
        return int(getattr(self, mode.value))


def count_tasks(tasks: Iterable[Task]) -> ViewCounts:
    items = list(tasks)
    return ViewCounts(
        **{mode.value: sum(1 for t in items if _PREDICATES[mode](t)) for mode in FilterMode}
    )


@dataclass(slots=True, frozen=True)
class ArcSegment:
    label: str
    length: float
    offset: float


@dataclass(slots=True, frozen=True)
class TaskStats:
    total: int
    completed: int
    pending: int
    important: int

    completed_percent: float
    pending_percent: float
    important_percent: float

    segments: tuple[ArcSegment, ...]


def _percent(value: int, total: int) -> float:
    return 0.0 if total == 0 else value / total * 100.0


def compute_stats(tasks: Sequence[Task], *, circumference: float = RING_CIRCUMFERENCE) -> TaskStats:
    """
    Overview numbers plus ring-chart arcs.

    The caller passes archive-excluded tasks. Percentages are fractions of
    total. Arcs are stacked completed -> pending -> important and share the
    circumference in proportion to their counts, so they tile the ring without
    overlapping even though an important task is also completed or pending.
    """
    total = len(tasks)
    completed = sum(1 for t in tasks if t.is_completed)
    pending = total - completed
    important = sum(1 for t in tasks if t.is_important)

    parts = (("completed", completed), ("pending", pending), ("important", important))
    weight = sum(count for _, count in parts)

    segments: list[ArcSegment] = []
    offset = 0.0
    for label, count in parts:
        length = 0.0 if total == 0 or weight == 0 else count / weight * circumference
        segments.append(ArcSegment(label=label, length=length, offset=offset))
        offset += length

    return TaskStats(
        total=total,
        completed=completed,
        pending=pending,
        important=important,
        completed_percent=_percent(completed, total),
        pending_percent=_percent(pending, total),
        important_percent=_percent(important, total),
        segments=tuple(segments),
    )


@dataclass(slots=True, frozen=True)
class TaskView:
    mode: FilterMode
    query: str
    tasks: list[Task]
    counts: ViewCounts
    stats: TaskStats


def build_view(tasks: Sequence[Task], mode: FilterMode, query: str = "") -> TaskView:
    active = [t for t in tasks if not t.is_archived]
    return TaskView(
        mode=mode,
        query=query,
        tasks=filter_tasks(tasks, mode, query),
        counts=count_tasks(tasks),
        stats=compute_stats(active),
    )


# ---- display helpers (task card) ----


def is_overdue(task: Task, now: datetime) -> bool:
    if task.deadline is None or task.is_completed:
        return False
    return task.deadline < now


def _clock(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d} {suffix}"


def format_deadline(deadline: datetime | None, now: datetime) -> str:
    if deadline is None:
        return ""
    if deadline.date() == now.date():
        return f"Today at {_clock(deadline)}"
    if deadline.date() == (now + timedelta(days=1)).date():
        return f"Tomorrow at {_clock(deadline)}"
    return f"{deadline.strftime('%b')} {deadline.day}, {_clock(deadline)}"
