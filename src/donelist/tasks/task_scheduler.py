# src/donelist/tasks/task_scheduler.py

from __future__ import annotations

"""
Archival scheduler.

Two independent triggers archive completed tasks:
- a polling sweep over the latest snapshot (authoritative backstop),
- a one-shot timer per completed task, armed for completed_at + delay.

Neither trusts itself: both go through lifecycle.archive(), which re-checks the
precondition against the most recent snapshot. Timers carry a generation
number, so a cancelled or superseded timer that still fires does nothing.

Nothing raised here escapes a background tick; failures are logged.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

from ..core.errors import OperationError, SchedulingInconsistency, StaleWriteError
from ..core.ports import TaskSyncAdapter
from . import lifecycle
from .task_models import ArchivalRequest, Task, TaskStatus

logger = logging.getLogger(__name__)


class ArchivalScheduler:
    def __init__(
            self,
            adapter: TaskSyncAdapter,
            *,
            archival_delay_seconds: float,
            sweep_interval_seconds: float = 60.0,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self._adapter = adapter
        self.archival_delay = max(0.0, float(archival_delay_seconds))
        self.sweep_interval = max(0.01, float(sweep_interval_seconds))
        self._clock = clock

        self._tasks: dict[str, Task] = {}
        self._timers: dict[str, tuple[int, asyncio.TimerHandle]] = {}
        self._generation = 0
        self._in_flight: set[str] = set()
        self._background: set[asyncio.Task[Any]] = set()

    # ---- snapshot intake ----

    def on_snapshot(self, tasks: Iterable[Task]) -> None:
        """
        Replace the cached task set and re-evaluate right away.

        Must be called from the event loop thread.
        """
        self._tasks = {t.id: t for t in tasks if t.id}

        for task_id in list(self._timers):
            task = self._tasks.get(task_id)
            if task is None or task.status is not TaskStatus.COMPLETED:
                self.cancel(task_id)

        for task in self._tasks.values():
            if (
                task.status is TaskStatus.COMPLETED
                and task.completed_at is not None
                and task.id not in self._timers
            ):
                self.arm(
                    ArchivalRequest(task_id=task.id, fire_at=task.completed_at + self.archival_delay)
                )

        self._spawn(self.sweep())

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    # ---- per-task timers ----

    def arm(self, request: ArchivalRequest) -> None:
        if not request.task_id:
            return

        self.cancel(request.task_id)
        self._generation += 1
        generation = self._generation

        loop = asyncio.get_running_loop()
        delay = max(0.0, request.fire_at - self._clock())
        handle = loop.call_later(delay, self._fire, request.task_id, generation)
        self._timers[request.task_id] = (generation, handle)
        logger.debug("Archival timer armed task_id=%s in %.1fs", request.task_id, delay)

    def cancel(self, task_id: str | None) -> None:
        entry = self._timers.pop(task_id or "", None)
        if entry is not None:
            entry[1].cancel()
            logger.debug("Archival timer cancelled task_id=%s", task_id)

    def pending_timers(self) -> list[str]:
        return list(self._timers)

    def _fire(self, task_id: str, generation: int) -> None:
        entry = self._timers.get(task_id)
        if entry is None or entry[0] != generation:
            # Superseded or cancelled after the callback was queued.
            return
        del self._timers[task_id]

        task = self._tasks.get(task_id)
        now = self._clock()
        if (
            task is not None
            and task.status is TaskStatus.COMPLETED
            and task.completed_at is not None
            and not lifecycle.is_archival_due(task, now, archival_delay=self.archival_delay)
        ):
            # Loop clock and wall clock drift apart slightly; try again later.
            self.arm(ArchivalRequest(task_id=task_id, fire_at=task.completed_at + self.archival_delay))
            return

        self._spawn(self._archive_one(task_id, now))

    # ---- archival ----

    async def sweep(self, now: float | None = None) -> list[str]:
        """Archive every due task in the cache. Returns the archived ids."""
        if now is None:
            now = self._clock()

        archived: list[str] = []
        try:
            due = [
                task_id
                for task_id, task in self._tasks.items()
                if lifecycle.is_archival_due(task, now, archival_delay=self.archival_delay)
            ]
            for task_id in due:
                if await self._archive_one(task_id, now):
                    archived.append(task_id)
        except Exception:
            logger.exception("Archival sweep failed")

        if archived:
            logger.info("Sweep archived %d task(s)", len(archived))
        return archived

    async def _archive_one(self, task_id: str, now: float) -> bool:
        if task_id in self._in_flight:
            return False

        task = self._tasks.get(task_id)
        if task is None:
            logger.info("Skipping archival: %s", SchedulingInconsistency(task_id, "task no longer exists"))
            return False

        try:
            step = lifecycle.archive(task, now, archival_delay=self.archival_delay)
        except SchedulingInconsistency as e:
            logger.info("Skipping archival: %s", e)
            return False

        if not step.changed:
            return False

        self._in_flight.add(task_id)
        try:
            await self._adapter.update(task_id, step.changes, expected=step.expected)
        except StaleWriteError as e:
            # Reverted or re-completed between our check and the write.
            logger.info("Skipping archival: %s", SchedulingInconsistency(task_id, str(e)))
            return False
        except OperationError:
            logger.exception("Archival update failed task_id=%s", task_id)
            return False
        except Exception:
            logger.exception("Archival update crashed task_id=%s", task_id)
            return False
        finally:
            self._in_flight.discard(task_id)

        # The store snapshot may lag behind; don't archive twice meanwhile.
        current = self._tasks.get(task_id)
        if current is not None and current.completed_at == task.completed_at:
            self._tasks[task_id] = step.task
        self.cancel(task_id)
        logger.info("Task %s -> archived", task_id)
        return True

    # ---- loop control ----

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            bg = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; background archival check dropped")
            return
        self._background.add(bg)
        bg.add_done_callback(self._background.discard)

    async def run(self) -> None:
        """
        Polling loop: sweep, then sleep sweep_interval seconds.

        To stop the scheduler, cancel the coroutine/task.
        """
        logger.info(
            "Archival scheduler started (delay=%.1fs interval=%.1fs)",
            self.archival_delay,
            self.sweep_interval,
        )
        while True:
            await self.sweep()
            await asyncio.sleep(self.sweep_interval)

    def close(self) -> None:
        for task_id in list(self._timers):
            self.cancel(task_id)
        for bg in list(self._background):
            bg.cancel()
        self._background.clear()
