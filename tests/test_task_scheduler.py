# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from donelist.core.errors import OperationError
from donelist.core.ports import TaskSyncAdapter
from donelist.tasks.task_api import TaskService
from donelist.tasks.task_models import ArchivalRequest, TaskInput
from donelist.tasks.task_scheduler import ArchivalScheduler
from donelist.tasks.task_store import SqliteTaskStore

from .conftest import OWNER
from .fakes import InMemoryTaskAdapter

T = 1_700_000_000.0


def _fixed_clock(value: float):
    return lambda: value


def _wire(adapter: TaskSyncAdapter, scheduler: ArchivalScheduler):
    return adapter.subscribe(OWNER, scheduler.on_snapshot, lambda exc: None)


@pytest.mark.asyncio
async def test_sweep_archives_only_after_delay(make_task) -> None:
    adapter = InMemoryTaskAdapter([make_task(id="a", is_completed=True, completed_at=T)])
    scheduler = ArchivalScheduler(adapter, archival_delay_seconds=10, clock=_fixed_clock(T))
    _wire(adapter, scheduler)

    try:
        assert await scheduler.sweep(now=T + 5) == []
        assert adapter.tasks["a"].is_archived is False

        assert await scheduler.sweep(now=T + 11) == ["a"]
        assert adapter.tasks["a"].is_archived is True
        assert adapter.tasks["a"].archived_at == T + 11
    finally:
        scheduler.close()


@pytest.mark.asyncio
async def test_sweep_skips_task_reverted_before_delay(make_task) -> None:
    adapter = InMemoryTaskAdapter([make_task(id="a", is_completed=True, completed_at=T)])
    scheduler = ArchivalScheduler(adapter, archival_delay_seconds=10, clock=_fixed_clock(T))
    _wire(adapter, scheduler)

    try:
        await adapter.update("a", {"is_completed": False, "completed_at": None})
        assert await scheduler.sweep(now=T + 11) == []
        assert adapter.tasks["a"].is_archived is False
        assert adapter.updates_with("is_archived", True) == []
        assert scheduler.pending_timers() == []
    finally:
        scheduler.close()


@pytest.mark.asyncio
async def test_duplicate_sweeps_write_once(make_task) -> None:
    adapter = InMemoryTaskAdapter([make_task(id="a", is_completed=True, completed_at=T - 100)])
    scheduler = ArchivalScheduler(adapter, archival_delay_seconds=10, clock=_fixed_clock(T))
    _wire(adapter, scheduler)

    try:
        await asyncio.gather(scheduler.sweep(now=T), scheduler.sweep(now=T), scheduler.sweep(now=T))
        await asyncio.sleep(0.01)
        assert len(adapter.updates_with("is_archived", True)) == 1
    finally:
        scheduler.close()


@pytest.mark.asyncio
async def test_sweep_survives_store_failure(make_task) -> None:
    adapter = InMemoryTaskAdapter([make_task(id="a", is_completed=True, completed_at=T)])
    scheduler = ArchivalScheduler(adapter, archival_delay_seconds=10, clock=_fixed_clock(T))
    _wire(adapter, scheduler)

    try:
        adapter.fail_next["update"] = OperationError("update", "store offline", task_id="a")
        assert await scheduler.sweep(now=T + 11) == []
        assert adapter.tasks["a"].is_archived is False

        # Next tick retries from scratch.
        assert await scheduler.sweep(now=T + 12) == ["a"]
        assert adapter.tasks["a"].is_archived is True
    finally:
        scheduler.close()


@pytest.mark.asyncio
async def test_timer_archives_after_completion() -> None:
    adapter = InMemoryTaskAdapter()
    scheduler = ArchivalScheduler(adapter, archival_delay_seconds=0.05, sweep_interval_seconds=60)
    service = TaskService(adapter, scheduler=scheduler, archival_delay_seconds=0.05, max_attachment_bytes=1024)
    _wire(adapter, scheduler)

    try:
        task_id = await service.create_task(
            OWNER, TaskInput(title="Ship it", description="release", date="2025-03-01")
        )
        await service.toggle_completed(adapter.tasks[task_id])
        assert scheduler.pending_timers() == [task_id]

        await asyncio.sleep(0.3)

        assert adapter.tasks[task_id].is_archived is True
        assert scheduler.pending_timers() == []
    finally:
        scheduler.close()


@pytest.mark.asyncio
async def test_reverted_task_is_not_archived_by_stale_timer() -> None:
    adapter = InMemoryTaskAdapter()
    scheduler = ArchivalScheduler(adapter, archival_delay_seconds=0.1, sweep_interval_seconds=60)
    service = TaskService(adapter, scheduler=scheduler, archival_delay_seconds=0.1, max_attachment_bytes=1024)
    _wire(adapter, scheduler)

    try:
        task_id = await service.create_task(
            OWNER, TaskInput(title="Maybe", description="later", date="2025-03-01")
        )
        await service.toggle_completed(adapter.tasks[task_id])
        await asyncio.sleep(0.02)
        await service.toggle_completed(adapter.tasks[task_id])

        await asyncio.sleep(0.3)

        assert adapter.tasks[task_id].is_completed is False
        assert adapter.tasks[task_id].is_archived is False
        assert adapter.updates_with("is_archived", True) == []
    finally:
        scheduler.close()


@pytest.mark.asyncio
async def test_timer_for_deleted_task_is_noop(make_task) -> None:
    adapter = InMemoryTaskAdapter([make_task(id="a", is_completed=True, completed_at=T)])
    scheduler = ArchivalScheduler(adapter, archival_delay_seconds=10, clock=_fixed_clock(T))
    _wire(adapter, scheduler)

    try:
        await adapter.delete("a")
        scheduler.arm(ArchivalRequest(task_id="a", fire_at=T))
        await asyncio.sleep(0.05)
        assert not [c for c in adapter.calls if c[0] == "update"]
    finally:
        scheduler.close()


@pytest.mark.asyncio
async def test_run_loop_sweeps_until_cancelled(make_task) -> None:
    adapter = InMemoryTaskAdapter([make_task(id="a", is_completed=True, completed_at=T - 100)])
    scheduler = ArchivalScheduler(
        adapter,
        archival_delay_seconds=10,
        sweep_interval_seconds=0.01,
        clock=_fixed_clock(T),
    )
    scheduler.on_snapshot(adapter.snapshot(OWNER))

    runner = asyncio.create_task(scheduler.run())
    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner
    scheduler.close()

    assert adapter.tasks["a"].is_archived is True


@pytest.mark.asyncio
async def test_revert_committed_mid_archival_wins(
    store: SqliteTaskStore, make_task, monkeypatch: pytest.MonkeyPatch
) -> None:
    task_id = await store.create(replace(make_task(is_completed=True, completed_at=T), id=None))
    scheduler = ArchivalScheduler(store, archival_delay_seconds=10, clock=_fixed_clock(T))
    _wire(store, scheduler)

    real_update = store._update

    def revert_first(tid, patch, expected=None):
        # The user's /undo lands after the scheduler checked its snapshot.
        if patch.get("is_archived"):
            real_update(tid, {"is_completed": False, "completed_at": None})
        return real_update(tid, patch, expected)

    monkeypatch.setattr(store, "_update", revert_first)

    try:
        assert await scheduler.sweep(now=T + 11) == []

        row = store.get_task(task_id)
        assert row is not None
        assert row.is_completed is False and row.completed_at is None
        assert row.is_archived is False and row.archived_at is None
    finally:
        scheduler.close()
