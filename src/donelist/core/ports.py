# src/donelist/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the document store swappable and makes testing easier.
"""

from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, Protocol, TypeVar

from ..tasks.task_models import Task

SnapshotCallback = Callable[[list[Task]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

T = TypeVar("T")


class TaskSyncAdapter(Protocol):
    """
    Persistence boundary: a live-updating document store keyed by owner.

    - subscribe() delivers the full task list for owner_id right away and again
      after every change, newest created_at first (missing created_at last).
    - create/update/delete are async and raise OperationError on failure.
    - update() receives a partial patch keyed by Task field names. With
      expected, the write only happens if those stored fields still hold those
      values; otherwise StaleWriteError is raised and nothing changes.
    """

    def subscribe(
            self,
            owner_id: str,
            on_snapshot: SnapshotCallback,
            on_error: ErrorCallback,
    ) -> Unsubscribe: ...

    def create(self, task: Task) -> Awaitable[str]: ...

    def update(
            self,
            task_id: str,
            patch: dict[str, Any],
            *,
            expected: dict[str, Any] | None = None,
    ) -> Awaitable[None]: ...

    def delete(self, task_id: str) -> Awaitable[None]: ...


class CoroutineRunner(Protocol):
    """
    Connector-side port: run a coroutine on the engine's event loop and wait.

    The console is blocking (input()), while the store subscription and the
    scheduler live on an asyncio loop in another thread.
    """

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T: ...
