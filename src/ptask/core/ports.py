# src/ptask/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The repository depends on a Protocol instead of the concrete JSON store.
This keeps storage swappable and makes testing easier.
"""

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Protocol

from ..tasks.task_models import BackupInfo, TaskCollection


class TaskStorage(Protocol):
    """Whole-document persistence for the task collection."""

    @property
    def path(self) -> Path: ...

    def load(self) -> TaskCollection: ...
    def save(self, collection: TaskCollection) -> None: ...

    # Critical section around load + mutate + save.
    def write_lock(self, timeout: float) -> AbstractContextManager[None]: ...

    def backup(self, destination: Path) -> BackupInfo: ...
