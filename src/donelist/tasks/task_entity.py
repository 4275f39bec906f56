# src/donelist/tasks/task_entity.py

from __future__ import annotations

"""
Validation and normalization of raw task input.

create_task() turns create-form input into a pending Task.
update_task() applies edit-form changes and hands completion changes to the
lifecycle module instead of flipping the flag itself.
"""

import logging
from dataclasses import replace
from datetime import date as date_cls
from datetime import datetime
from datetime import time as time_cls
from typing import Any

from ..config import DEFAULT_MAX_ATTACHMENT_BYTES
from ..core.errors import ValidationError
from . import lifecycle
from .task_models import Attachment, Task, TaskInput, TaskPatch, Transition

logger = logging.getLogger(__name__)

DEFAULT_DUE_TIME = "23:59"
DEFAULT_MIME_TYPE = "application/octet-stream"


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def _parse_date(raw: str) -> date_cls:
    try:
        return date_cls.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"invalid date: {raw!r} (expected YYYY-MM-DD)", field="date") from None


def _parse_time(raw: str) -> time_cls:
    try:
        parsed = datetime.strptime(raw, "%H:%M")
    except ValueError:
        raise ValidationError(f"invalid time: {raw!r} (expected HH:MM)", field="time") from None
    return parsed.time()


def resolve_deadline(date: str | None, time: str | None = "") -> datetime:
    """Combine form date + time into one deadline; blank time means end of day."""
    date_s = _require_text(date, "date")
    time_s = (time or "").strip() or DEFAULT_DUE_TIME
    return datetime.combine(_parse_date(date_s), _parse_time(time_s))


def split_deadline(deadline: datetime | None) -> tuple[str, str]:
    """Inverse of resolve_deadline, used to prefill the edit form."""
    if deadline is None:
        return "", ""
    return deadline.date().isoformat(), deadline.strftime("%H:%M")


def is_image_attachment(attachment: Attachment | None) -> bool:
    return attachment is not None and attachment.is_image


def validate_attachment(
    attachment: Attachment,
    *,
    max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
) -> Attachment:
    name = (attachment.name or "").strip()
    if not name:
        raise ValidationError("attachment name is required", field="attachment")
    if attachment.size < 0:
        raise ValidationError("attachment size cannot be negative", field="attachment")
    if attachment.size > max_bytes:
        raise ValidationError(
            f"attachment is too large ({attachment.size} bytes, limit {max_bytes})",
            field="attachment",
        )

    mime = (attachment.type or "").strip().lower() or DEFAULT_MIME_TYPE
    if name == attachment.name and mime == attachment.type:
        return attachment
    return replace(attachment, name=name, type=mime)


def create_task(
    task_input: TaskInput,
    *,
    owner_id: str,
    now: float,
    max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
) -> Task:
    if not owner_id:
        raise ValidationError("owner_id is required", field="owner_id")

    title = _require_text(task_input.title, "title")
    description = _require_text(task_input.description, "description")
    deadline = resolve_deadline(task_input.date, task_input.time)

    attachment = None
    if task_input.attachment is not None:
        attachment = validate_attachment(task_input.attachment, max_bytes=max_attachment_bytes)

    return Task(
        id=None,
        owner_id=owner_id,
        title=title,
        description=description,
        deadline=deadline,
        is_important=bool(task_input.is_important),
        is_completed=False,
        completed_at=None,
        is_archived=False,
        archived_at=None,
        attachment=attachment,
        created_at=now,
        updated_at=now,
    )


def _patched_deadline(existing: Task, patch: TaskPatch) -> datetime | None:
    if patch.date is not None:
        return resolve_deadline(patch.date, patch.time)
    if patch.time is not None:
        if existing.deadline is None:
            raise ValidationError("date is required to set a time", field="date")
        date_s, _ = split_deadline(existing.deadline)
        return resolve_deadline(date_s, patch.time)
    return existing.deadline


def update_task(
    existing: Task,
    patch: TaskPatch,
    *,
    now: float,
    archival_delay: float,
    max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
) -> Transition:
    """
    Apply an edit to an existing task.

    Everything is validated before anything is applied, so a ValidationError
    leaves no partial change behind. id, owner_id and created_at never change.
    """
    changes: dict[str, Any] = {}

    if patch.title is not None:
        title = _require_text(patch.title, "title")
        if title != existing.title:
            changes["title"] = title

    if patch.description is not None:
        description = _require_text(patch.description, "description")
        if description != existing.description:
            changes["description"] = description

    deadline = _patched_deadline(existing, patch)
    if deadline != existing.deadline:
        changes["deadline"] = deadline

    if patch.is_important is not None and bool(patch.is_important) != existing.is_important:
        changes["is_important"] = bool(patch.is_important)

    if patch.attachment is not None:
        attachment = validate_attachment(patch.attachment, max_bytes=max_attachment_bytes)
        if attachment != existing.attachment:
            changes["attachment"] = attachment

    task = replace(existing, **changes) if changes else existing

    archival = None
    cancel_archival = False
    if patch.is_completed is not None and bool(patch.is_completed) != existing.is_completed:
        step = lifecycle.set_completed(
            task, bool(patch.is_completed), now, archival_delay=archival_delay
        )
        task = step.task
        changes.update(step.changes)
        archival = step.archival
        cancel_archival = step.cancel_archival
        logger.debug("Task %s completion -> %s", existing.id, task.status.value)

    if not changes:
        return Transition(task=existing)

    changes["updated_at"] = now
    task = replace(task, updated_at=now)
    return Transition(
        task=task,
        changes=changes,
        archival=archival,
        cancel_archival=cancel_archival,
    )
