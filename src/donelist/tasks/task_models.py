# src/donelist/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Derived from the stored flags rather than stored itself:
    archived wins over completed, completed wins over pending.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @classmethod
    def from_flags(cls, *, is_completed: bool, is_archived: bool) -> TaskStatus:
        if is_archived:
            return cls.ARCHIVED
        if is_completed:
            return cls.COMPLETED
        return cls.PENDING


@dataclass(slots=True, frozen=True)
class Attachment:
    """Opaque blob descriptor produced by the caller-side file reader."""

    name: str
    type: str
    size: int
    data: str

    @property
    def is_image(self) -> bool:
        return self.type.lower().startswith("image/")

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type, "size": self.size, "data": self.data}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Attachment:
        return cls(
            name=str(raw.get("name") or ""),
            type=str(raw.get("type") or ""),
            size=int(raw.get("size") or 0),
            data=str(raw.get("data") or ""),
        )


@dataclass(slots=True, frozen=True)
class Task:
    id: str | None
    owner_id: str

    title: str
    description: str
    deadline: datetime | None

    is_important: bool = False

    is_completed: bool = False
    completed_at: float | None = None
    is_archived: bool = False
    archived_at: float | None = None

    attachment: Attachment | None = None

    created_at: float | None = None
    updated_at: float | None = None

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.from_flags(is_completed=self.is_completed, is_archived=self.is_archived)


@dataclass(slots=True, frozen=True)
class TaskInput:
    """Raw create-form input; date/time are kept as typed by the user."""

    title: str
    description: str
    date: str
    time: str = ""
    is_important: bool = False
    attachment: Attachment | None = None


@dataclass(slots=True, frozen=True)
class TaskPatch:
    """
    Edit-form changes. None means "leave as is".

    A time without a date re-times the existing deadline.
    """

    title: str | None = None
    description: str | None = None
    date: str | None = None
    time: str | None = None
    is_important: bool | None = None
    is_completed: bool | None = None
    attachment: Attachment | None = None


@dataclass(slots=True, frozen=True)
class ArchivalRequest:
    """Ask the scheduler to archive task_id once fire_at (epoch seconds) passes."""

    task_id: str | None
    fire_at: float


@dataclass(slots=True, frozen=True)
class Transition:
    """
    Result of applying a change to a task.

    changes holds exactly the fields to send to the store; an empty dict means
    the operation was a no-op. expected, when set, is the stored state the
    write is conditional on.
    """

    task: Task
    changes: dict[str, Any] = field(default_factory=dict)
    expected: dict[str, Any] | None = None
    archival: ArchivalRequest | None = None
    cancel_archival: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.changes)


def newest_first(tasks: Iterable[Task]) -> list[Task]:
    """Snapshot order: created_at descending, records without created_at last."""
    return sorted(
        tasks,
        key=lambda t: (t.created_at is None, -(t.created_at or 0.0)),
    )
