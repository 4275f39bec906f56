# tests/test_task_store.py

from __future__ import annotations

import sqlite3
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import pytest

from donelist.core.errors import OperationError, StaleWriteError
from donelist.tasks.task_models import Attachment, Task
from donelist.tasks.task_store import SqliteTaskStore

from .conftest import OWNER


def _new(make_task, **overrides) -> Task:
    return replace(make_task(**overrides), id=None)


@pytest.mark.asyncio
async def test_create_assigns_id_and_snapshots_newest_first(store: SqliteTaskStore, make_task) -> None:
    snapshots: list[list[Task]] = []
    store.subscribe(OWNER, snapshots.append, lambda exc: None)
    assert snapshots == [[]]

    old_id = await store.create(_new(make_task, title="Older", created_at=100.0))
    new_id = await store.create(_new(make_task, title="Newer", created_at=200.0))

    assert old_id and new_id and old_id != new_id
    assert [t.title for t in snapshots[-1]] == ["Newer", "Older"]
    assert snapshots[-1][0].id == new_id


@pytest.mark.asyncio
async def test_tasks_without_created_at_sort_last(store: SqliteTaskStore, make_task) -> None:
    await store.create(_new(make_task, title="Pending write", created_at=None))
    await store.create(_new(make_task, title="Stamped", created_at=50.0))

    assert [t.title for t in store.list_tasks(OWNER)] == ["Stamped", "Pending write"]


@pytest.mark.asyncio
async def test_update_round_trips_fields(store: SqliteTaskStore, make_task) -> None:
    task_id = await store.create(_new(make_task))
    att = Attachment(name="plan.png", type="image/png", size=4, data="AAAA")

    await store.update(
        task_id,
        {
            "deadline": datetime(2025, 4, 7, 0, 30),
            "attachment": att,
            "is_important": True,
            "is_completed": True,
            "completed_at": 1234.5,
        },
    )

    got = store.get_task(task_id)
    assert got is not None
    assert got.deadline == datetime(2025, 4, 7, 0, 30)
    assert got.attachment == att
    assert got.is_important is True
    assert got.is_completed is True
    assert got.completed_at == 1234.5
    assert got.is_archived is False and got.archived_at is None


@pytest.mark.asyncio
async def test_update_rejects_immutable_fields(store: SqliteTaskStore, make_task) -> None:
    task_id = await store.create(_new(make_task, created_at=10.0))

    with pytest.raises(OperationError) as exc_info:
        await store.update(task_id, {"created_at": 99.0})
    assert "immutable" in str(exc_info.value)

    got = store.get_task(task_id)
    assert got is not None and got.created_at == 10.0


@pytest.mark.asyncio
async def test_update_unknown_task_raises(store: SqliteTaskStore) -> None:
    with pytest.raises(OperationError):
        await store.update("missing", {"title": "x"})


@pytest.mark.asyncio
async def test_delete_notifies_and_missing_delete_is_noop(store: SqliteTaskStore, make_task) -> None:
    snapshots: list[list[Task]] = []
    task_id = await store.create(_new(make_task))
    store.subscribe(OWNER, snapshots.append, lambda exc: None)

    await store.delete(task_id)
    assert snapshots[-1] == []

    seen = len(snapshots)
    await store.delete(task_id)
    assert len(snapshots) == seen


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications(store: SqliteTaskStore, make_task) -> None:
    snapshots: list[list[Task]] = []
    unsubscribe = store.subscribe(OWNER, snapshots.append, lambda exc: None)
    unsubscribe()

    await store.create(_new(make_task))
    assert snapshots == [[]]


@pytest.mark.asyncio
async def test_other_owners_are_not_notified(store: SqliteTaskStore, make_task) -> None:
    snapshots: list[list[Task]] = []
    store.subscribe("someone-else", snapshots.append, lambda exc: None)

    await store.create(_new(make_task))
    assert snapshots == [[]]


@pytest.mark.asyncio
async def test_crashing_listener_does_not_break_writes(store: SqliteTaskStore, make_task) -> None:
    def boom(_tasks: list[Task]) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(OWNER, boom, lambda exc: None)
    task_id = await store.create(_new(make_task))
    assert store.get_task(task_id) is not None


def test_old_schema_is_migrated(tmp_path: Path) -> None:
    db_path = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(db_path)
    conn.execute(
        """
        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            deadline TEXT,
            is_completed INTEGER NOT NULL DEFAULT 0,
            completed_at REAL,
            created_at REAL
        )
        """
    )
    conn.execute(
        "INSERT INTO tasks(id, owner_id, title, description, deadline, created_at) "
        "VALUES ('a', ?, 'Legacy', 'from v0', '2025-03-01T23:59', 1.0)",
        (OWNER,),
    )
    conn.commit()
    conn.close()

    store = SqliteTaskStore(db_path)
    (task,) = store.list_tasks(OWNER)

    assert task.title == "Legacy"
    assert task.is_important is False
    assert task.is_archived is False
    assert task.attachment is None
    assert task.updated_at is None


@pytest.mark.asyncio
async def test_conditional_update_refuses_changed_row(store: SqliteTaskStore, make_task) -> None:
    task_id = await store.create(_new(make_task, is_completed=True, completed_at=100.0))
    await store.update(task_id, {"is_completed": False, "completed_at": None})

    with pytest.raises(StaleWriteError):
        await store.update(
            task_id,
            {"is_archived": True, "archived_at": 111.0},
            expected={"is_completed": True, "is_archived": False, "completed_at": 100.0},
        )

    got = store.get_task(task_id)
    assert got is not None
    assert got.is_completed is False
    assert got.is_archived is False and got.archived_at is None


@pytest.mark.asyncio
async def test_conditional_update_applies_when_row_matches(store: SqliteTaskStore, make_task) -> None:
    task_id = await store.create(_new(make_task, is_completed=True, completed_at=100.0))

    await store.update(
        task_id,
        {"is_archived": True, "archived_at": 111.0},
        expected={"is_completed": True, "is_archived": False, "completed_at": 100.0},
    )

    got = store.get_task(task_id)
    assert got is not None and got.is_archived is True and got.archived_at == 111.0


@pytest.mark.asyncio
async def test_snapshot_reads_run_off_the_event_loop(
    store: SqliteTaskStore, make_task, monkeypatch: pytest.MonkeyPatch
) -> None:
    snapshots: list[list[Task]] = []
    store.subscribe(OWNER, snapshots.append, lambda exc: None)

    readers: list[threading.Thread] = []
    real_list = store.list_tasks

    def recording_list(owner_id: str) -> list[Task]:
        readers.append(threading.current_thread())
        return real_list(owner_id)

    monkeypatch.setattr(store, "list_tasks", recording_list)

    task_id = await store.create(_new(make_task))
    await store.update(task_id, {"title": "Renamed"})

    assert [t.title for t in snapshots[-1]] == ["Renamed"]
    assert readers and all(t is not threading.current_thread() for t in readers)
