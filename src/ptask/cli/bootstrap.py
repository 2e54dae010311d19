# src/ptask/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- takes the Settings built once in main(),
- ensures the local data directory exists,
- wires store -> repository -> service into AppState.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ..config import Settings
from ..core.errors import StorageIOError
from ..core.state import AppState
from ..tasks.task_models import utc_now
from ..tasks.task_repository import TaskRepository
from ..tasks.task_service import TaskService
from ..tasks.task_store import JsonTaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    data_dir = settings.tasks_path.parent
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError(data_dir, "create data directory", e) from e


def create_initial_state(
    *,
    settings: Settings | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the clock) injectable makes the app easier to test and
    avoids hidden global config reads. If settings is None, they are read from the environment.
    """
    if settings is None:
        settings = Settings.from_env()

    _ensure_local_dirs(settings)

    store = JsonTaskStore(settings.tasks_path)
    repository = TaskRepository(
        store,
        clock=clock,
        lock_timeout=settings.lock_timeout,
        log=logging.getLogger("ptask.tasks"),
    )
    service = TaskService(repository, store, clock=clock, backup_dir=settings.backup_dir)

    logger.debug("State ready tasks_path=%s", settings.tasks_path)
    return AppState(settings=settings, store=store, repository=repository, service=service)
