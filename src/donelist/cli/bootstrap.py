# src/donelist/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store, scheduler and service into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..tasks.task_api import TaskService
from ..tasks.task_scheduler import ArchivalScheduler
from ..tasks.task_store import SqliteTaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = SqliteTaskStore(settings.tasks_db_path)
    scheduler = ArchivalScheduler(
        store,
        archival_delay_seconds=settings.archival_delay_seconds,
        sweep_interval_seconds=settings.sweep_interval_seconds,
    )
    service = TaskService(
        store,
        scheduler=scheduler,
        archival_delay_seconds=settings.archival_delay_seconds,
        max_attachment_bytes=settings.max_attachment_bytes,
    )

    logger.debug(
        "State wired owner=%s delay=%.1fs interval=%.1fs",
        settings.owner_id,
        settings.archival_delay_seconds,
        settings.sweep_interval_seconds,
    )
    return AppState(
        settings=settings,
        store=store,
        service=service,
        scheduler=scheduler,
        owner_id=settings.owner_id,
        owner_email=settings.owner_email,
    )
