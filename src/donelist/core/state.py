# src/donelist/core/state.py

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..tasks.task_models import Task
from ..tasks.task_views import FilterMode, TaskView, build_view
from .ports import CoroutineRunner, TaskSyncAdapter

if TYPE_CHECKING:
    from ..tasks.task_api import TaskService
    from ..tasks.task_scheduler import ArchivalScheduler


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    store: TaskSyncAdapter
    service: TaskService
    scheduler: ArchivalScheduler

    owner_id: str
    owner_email: str = ""

    # Latest snapshot pushed by the store; written from the engine thread.
    tasks: list[Task] = field(default_factory=list)
    loaded: bool = False
    last_error: str | None = None

    # Console view preferences.
    filter_mode: FilterMode = FilterMode.ALL
    search_query: str = ""

    runner: CoroutineRunner | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def apply_snapshot(self, tasks: Iterable[Task]) -> None:
        with self.lock:
            self.tasks = list(tasks)
            self.loaded = True
            self.last_error = None

    def snapshot(self) -> list[Task]:
        with self.lock:
            return list(self.tasks)

    def current_view(self) -> TaskView:
        return build_view(self.snapshot(), self.filter_mode, self.search_query)
