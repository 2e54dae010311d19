# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from ptask.cli.bootstrap import create_initial_state
from ptask.config import Settings
from ptask.core.state import AppState
from ptask.tasks.task_repository import TaskRepository
from ptask.tasks.task_service import TaskService
from ptask.tasks.task_store import JsonTaskStore

from .fakes import FakeClock, SequentialIds


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings pointing at a per-test directory.

    Built directly rather than via from_env() so the developer's environment
    and .env file never leak into tests.
    """
    return Settings(
        log_level="WARNING",
        file_logging=False,
        data_dir=tmp_path,
        tasks_path=tmp_path / "tasks.json",
        log_dir=tmp_path / "logs",
        backup_dir=tmp_path / "backups",
        lock_timeout=0.05,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(settings: Settings) -> JsonTaskStore:
    return JsonTaskStore(settings.tasks_path)


@pytest.fixture()
def repo(store: JsonTaskStore, clock: FakeClock) -> TaskRepository:
    return TaskRepository(store, clock=clock, id_factory=SequentialIds(), lock_timeout=0.05)


@pytest.fixture()
def service(repo: TaskRepository, store: JsonTaskStore, clock: FakeClock, settings: Settings) -> TaskService:
    return TaskService(repo, store, clock=clock, backup_dir=settings.backup_dir)


@pytest.fixture()
def state(settings: Settings, clock: FakeClock) -> AppState:
    """AppState wired the same way the CLI wires it, with a fake clock."""
    return create_initial_state(settings=settings, clock=clock)
