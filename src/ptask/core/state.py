# src/ptask/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..config import Settings
from ..tasks.task_repository import TaskRepository
from ..tasks.task_service import TaskService
from ..tasks.task_store import JsonTaskStore


@dataclass
class AppState:
    # Settings travel with the state so command handlers never read globals.
    settings: Settings

    store: JsonTaskStore
    repository: TaskRepository
    service: TaskService
