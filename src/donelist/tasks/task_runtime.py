# src/donelist/tasks/task_runtime.py

from __future__ import annotations

"""
Background engine: one asyncio loop in a daemon thread that owns

- the live store subscription (snapshots -> AppState + scheduler),
- the archival sweep loop and per-task timers,
- every coroutine submitted by the console through EngineBackgroundRunner.run().
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from ..core.state import AppState
from .task_models import Task

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_engine(state: AppState, stop_event: asyncio.Event) -> None:
    scheduler = state.scheduler

    def on_snapshot(tasks: list[Task]) -> None:
        state.apply_snapshot(tasks)
        scheduler.on_snapshot(tasks)

    def on_error(exc: Exception) -> None:
        logger.error("Task subscription error: %s", exc)
        state.last_error = str(exc)

    unsubscribe = state.store.subscribe(state.owner_id, on_snapshot, on_error)
    sweeper = asyncio.create_task(scheduler.run())
    logger.info("Engine running for owner=%s", state.owner_id)

    try:
        await stop_event.wait()
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        unsubscribe()
        scheduler.close()
        logger.info("Engine stopped.")


@dataclass
class EngineBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = 30.0) -> T:
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return fut.result(timeout=timeout)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal engine stop (loop closed).", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_engine_in_background(state: AppState) -> EngineBackgroundRunner | None:
    """
    Start the engine in a background thread (so the console REPL can block on input()).
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(run_engine(state, stop_event))
        except Exception:
            logger.exception("Engine loop crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    t = threading.Thread(target=runner, name="donelist-engine", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Engine thread did not initialize properly.")
        return None

    logger.info("Engine background thread started.")
    runner_handle = EngineBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
    state.runner = runner_handle
    return runner_handle
