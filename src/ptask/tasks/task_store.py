# src/ptask/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from ..core.errors import BusyError, CorruptDataError, StorageIOError
from .task_models import BackupInfo, TaskCollection, first_error, utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _PathLocks:
    write: threading.Lock = field(default_factory=threading.Lock)
    io: threading.Lock = field(default_factory=threading.Lock)


_LOCKS: dict[Path, _PathLocks] = {}
_LOCKS_GUARD = threading.Lock()


def _locks_for(path: Path) -> _PathLocks:
    # One lock pair per document, shared by every store object in the process.
    key = path.resolve()
    with _LOCKS_GUARD:
        locks = _LOCKS.get(key)
        if locks is None:
            locks = _LOCKS[key] = _PathLocks()
        return locks


class JsonTaskStore:
    """
    Single-file JSON task store.

    Guarantees:
    - load() returns a valid collection or raises CorruptDataError
      (a missing file is an empty collection, not an error),
    - save() replaces the whole document atomically (temp file + fsync + os.replace),
      so readers see either the old or the new document, never a partial one,
    - saves are serialized within the process.

    Thread-safety:
    - write_lock() is the critical section callers wrap around load + mutate + save.
    """

    def __init__(self, path: str | Path = "tasks.json") -> None:
        self._path = Path(path).expanduser()
        self._locks = _locks_for(self._path)
        logger.debug("JsonTaskStore ready path=%s exists=%s", self._path, self._path.exists())

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    # ---- low-level helpers ----

    @staticmethod
    def _atomic_write(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

    @staticmethod
    def _serialize(collection: TaskCollection) -> str:
        return collection.model_dump_json(indent=2) + "\n"

    # ---- public API ----

    def load(self) -> TaskCollection:
        if not self._path.exists():
            logger.debug("No task document at %s; starting with an empty collection.", self._path)
            return TaskCollection.empty()

        try:
            raw = self._path.read_bytes()
        except OSError as e:
            raise StorageIOError(self._path, "read", e) from e

        try:
            collection = TaskCollection.model_validate_json(raw)
        except PydanticValidationError as e:
            where, _value, reason = first_error(e)
            logger.error("Task document %s failed validation at %s: %s", self._path, where, reason)
            raise CorruptDataError(self._path, f"{where}: {reason}") from e

        logger.debug("Loaded %d tasks from %s", len(collection.tasks), self._path)
        return collection

    def save(self, collection: TaskCollection) -> None:
        text = self._serialize(collection)
        with self._locks.io:
            try:
                self._atomic_write(self._path, text)
            except OSError as e:
                logger.error("Failed to write task document %s: %s", self._path, e)
                raise StorageIOError(self._path, "write", e) from e
        logger.debug("Saved %d tasks to %s", len(collection.tasks), self._path)

    @contextlib.contextmanager
    def write_lock(self, timeout: float) -> Iterator[None]:
        """Hold the document's write lock; BusyError if not acquired within `timeout` seconds."""
        timeout = max(0.0, float(timeout))
        if not self._locks.write.acquire(timeout=timeout):
            logger.warning("Write lock on %s not acquired within %.2fs", self._path, timeout)
            raise BusyError(self._path, timeout)
        try:
            yield
        finally:
            self._locks.write.release()

    def backup(self, destination: str | Path) -> BackupInfo:
        """
        Write a validated copy of the current document.

        `destination` is either a file path or a directory; for a directory
        (existing, or a path without suffix) a timestamped file is created inside it.
        """
        collection = self.load()
        dest = Path(destination).expanduser()
        if dest.is_dir() or not dest.suffix:
            dest = dest / f"tasks-{utc_now().strftime('%Y%m%d-%H%M%S')}.json"

        try:
            self._atomic_write(dest, self._serialize(collection))
        except OSError as e:
            raise StorageIOError(dest, "write backup", e) from e

        logger.info("Backed up %d tasks to %s", len(collection.tasks), dest)
        return BackupInfo(path=dest, task_count=len(collection.tasks))
