# src/donelist/tasks/task_api.py

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..core.errors import OperationError
from ..core.ports import TaskSyncAdapter
from .task_entity import create_task, update_task
from .task_models import Attachment, Task, TaskInput, TaskPatch, Transition
from .task_scheduler import ArchivalScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskService:
    """
    High-level task operations used by connectors.

    Order of work for every mutation:
    - validate (ValidationError, nothing written),
    - compute the transition,
    - write through the adapter (OperationError, nothing else touched),
    - only then arm/cancel the archival timer.
    """

    def __init__(
        self,
        adapter: TaskSyncAdapter,
        *,
        scheduler: ArchivalScheduler | None = None,
        archival_delay_seconds: float,
        max_attachment_bytes: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._adapter = adapter
        self._scheduler = scheduler
        self.archival_delay = float(archival_delay_seconds)
        self.max_attachment_bytes = int(max_attachment_bytes)
        self._clock = clock

    async def _call(self, operation: str, task_id: str | None, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        except OperationError:
            logger.exception("%s failed task_id=%s", operation, task_id)
            raise
        except Exception as e:
            logger.exception("%s crashed task_id=%s", operation, task_id)
            raise OperationError(operation, str(e) or type(e).__name__, task_id=task_id) from e

    async def create_task(self, owner_id: str, task_input: TaskInput) -> str:
        task = create_task(
            task_input,
            owner_id=owner_id,
            now=self._clock(),
            max_attachment_bytes=self.max_attachment_bytes,
        )
        task_id = await self._call("create", None, lambda: self._adapter.create(task))
        logger.info("Task created id=%s owner=%s", task_id, owner_id)
        return task_id

    async def update_task(self, task: Task, patch: TaskPatch) -> Transition:
        if not task.id:
            raise OperationError("update", "task has no id")
        task_id = task.id

        step = update_task(
            task,
            patch,
            now=self._clock(),
            archival_delay=self.archival_delay,
            max_attachment_bytes=self.max_attachment_bytes,
        )
        if not step.changed:
            return step

        await self._call("update", task_id, lambda: self._adapter.update(task_id, step.changes))

        if self._scheduler is not None:
            if step.cancel_archival:
                self._scheduler.cancel(task_id)
            if step.archival is not None:
                self._scheduler.arm(step.archival)

        logger.debug("Task %s updated fields=%s", task_id, sorted(step.changes))
        return step

    async def toggle_completed(self, task: Task) -> Transition:
        return await self.update_task(task, TaskPatch(is_completed=not task.is_completed))

    async def toggle_important(self, task: Task) -> Transition:
        return await self.update_task(task, TaskPatch(is_important=not task.is_important))

    async def attach(self, task: Task, attachment: Attachment) -> Transition:
        return await self.update_task(task, TaskPatch(attachment=attachment))

    async def delete_task(self, task: Task) -> None:
        if not task.id:
            raise OperationError("delete", "task has no id")
        task_id = task.id

        await self._call("delete", task_id, lambda: self._adapter.delete(task_id))
        if self._scheduler is not None:
            self._scheduler.cancel(task_id)
        logger.info("Task deleted id=%s", task_id)
