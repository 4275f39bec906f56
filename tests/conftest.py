# tests/conftest.py

from __future__ import annotations

import itertools
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from donelist.core.state import AppState
from donelist.tasks.task_api import TaskService
from donelist.tasks.task_models import Task
from donelist.tasks.task_scheduler import ArchivalScheduler
from donelist.tasks.task_store import SqliteTaskStore

from .fakes import FakeRunner, InMemoryTaskAdapter

OWNER = "user-1"
MiB = 1024 * 1024


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="donelist-test",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        owner_id=OWNER,
        owner_email="user@example.com",
        archival_delay_seconds=10.0,
        sweep_interval_seconds=60.0,
        max_attachment_bytes=5 * MiB,
        console_enabled=False,
    )


@pytest.fixture()
def make_task() -> Callable[..., Task]:
    """Factory for stored tasks with sensible defaults; override any field."""
    ids = itertools.count(1)

    def _make(**overrides: Any) -> Task:
        n = next(ids)
        fields: dict[str, Any] = {
            "id": f"t{n}",
            "owner_id": OWNER,
            "title": f"Task {n}",
            "description": f"Description {n}",
            "deadline": datetime(2025, 3, 1, 23, 59),
            "created_at": 1_000.0 + n,
            "updated_at": 1_000.0 + n,
        }
        fields.update(overrides)
        return Task(**fields)

    return _make


@pytest.fixture()
def store(settings: SimpleNamespace) -> SqliteTaskStore:
    return SqliteTaskStore(settings.tasks_db_path)


@pytest.fixture()
def adapter() -> InMemoryTaskAdapter:
    return InMemoryTaskAdapter()


@pytest.fixture()
def state(settings: SimpleNamespace, adapter: InMemoryTaskAdapter) -> AppState:
    """
    AppState wired with the in-memory adapter and a synchronous runner.

    The service has no scheduler here: command tests are about routing and
    rendering, scheduler behaviour has its own tests.
    """
    service = TaskService(
        adapter,
        archival_delay_seconds=settings.archival_delay_seconds,
        max_attachment_bytes=settings.max_attachment_bytes,
    )
    st = AppState(
        settings=settings,
        store=adapter,
        service=service,
        scheduler=ArchivalScheduler(adapter, archival_delay_seconds=settings.archival_delay_seconds),
        owner_id=settings.owner_id,
        owner_email=settings.owner_email,
        runner=FakeRunner(),
    )
    adapter.subscribe(st.owner_id, st.apply_snapshot, lambda exc: None)
    return st
