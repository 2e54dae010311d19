# src/ptask/tasks/task_repository.py

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.errors import InvalidTransitionError, NotFoundError, ValidationError
from ..core.ports import TaskStorage
from .task_metrics import TaskFilter, filter_tasks
from .task_models import (
    ALLOWED_TRANSITIONS,
    Task,
    TaskCollection,
    TaskDraft,
    TaskPatch,
    TaskStatus,
    first_error,
    new_task_id,
    utc_now,
)

DEFAULT_LOCK_TIMEOUT = 5.0


def _append_notes(existing: str, extra: str) -> str:
    extra = extra.strip()
    if not extra:
        return existing
    return f"{existing}\n{extra}" if existing else extra


class TaskRepository:
    """
    Owns the task collection and every change made to it.

    Each mutation is one read-modify-write cycle inside the store's write lock:
    load the document, apply the change to a re-validated copy of the task,
    save the whole document. If validation fails nothing is written.

    Reads (get/list/snapshot) load the document without taking the lock.
    """

    def __init__(
        self,
        store: TaskStorage,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_task_id,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        log: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._id_factory = id_factory
        self._lock_timeout = lock_timeout
        self._log = log or logging.getLogger(__name__)

    # ---- low-level helpers ----

    def _now(self, task: Task | None = None) -> datetime:
        now = self._clock()
        # updated_at never precedes created_at, even if the clock goes backwards
        if task is not None and now < task.created_at:
            return task.created_at
        return now

    @contextlib.contextmanager
    def _mutation(self) -> Iterator[TaskCollection]:
        with self._store.write_lock(self._lock_timeout):
            collection = self._store.load()
            yield collection
            self._store.save(collection)

    @staticmethod
    def _build(data: dict[str, Any]) -> Task:
        try:
            return Task.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(*first_error(e)) from e

    @staticmethod
    def _index(collection: TaskCollection, task_id: str) -> int:
        idx = collection.index_of(task_id)
        if idx is None:
            raise NotFoundError(task_id)
        return idx

    @staticmethod
    def _check_transition(task: Task, target: TaskStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[task.status]:
            raise InvalidTransitionError(task.id, task.status.value, target.value)

    @staticmethod
    def _status_fields(target: TaskStatus, now: datetime) -> dict[str, Any]:
        if target == TaskStatus.COMPLETED:
            return {"status": target, "completed_at": now}
        return {"status": target}

    def _transition(
        self,
        task_id: str,
        target: TaskStatus,
        *,
        notes: str | None = None,
        **changes: Any,
    ) -> Task:
        with self._mutation() as collection:
            idx = self._index(collection, task_id)
            current = collection.tasks[idx]
            self._check_transition(current, target)

            now = self._now(current)
            data = current.model_dump()
            data.update(self._status_fields(target, now))
            data.update(changes)
            if notes:
                data["notes"] = _append_notes(current.notes, notes)
            data["updated_at"] = now

            task = self._build(data)
            collection.tasks[idx] = task

        self._log.info("Task %s id=%s (%s -> %s)", target.value, task_id, current.status.value, target.value)
        return task

    # ---- public API ----

    def create_task(self, draft: TaskDraft) -> Task:
        now = self._clock()
        created_at = draft.created_at or now
        if created_at > now:
            raise ValidationError("created_at", created_at.isoformat(), "must not be in the future")

        with self._mutation() as collection:
            task_id = draft.id or self._id_factory()
            if collection.index_of(task_id) is not None:
                raise ValidationError("id", task_id, "a task with this id already exists")

            data = draft.model_dump(exclude={"id", "created_at"})
            data.update(id=task_id, created_at=created_at, updated_at=now)
            task = self._build(data)
            collection.tasks.append(task)

        self._log.info(
            "Task created id=%s priority=%s category=%s due=%s",
            task.id,
            task.priority.value,
            task.category,
            task.due_date,
        )
        return task

    def get_task_by_id(self, task_id: str) -> Task | None:
        return self._store.load().get(task_id)

    def require_task(self, task_id: str) -> Task:
        task = self.get_task_by_id(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        changes = patch.changes()
        target: TaskStatus | None = changes.pop("status", None)

        with self._mutation() as collection:
            idx = self._index(collection, task_id)
            current = collection.tasks[idx]
            now = self._now(current)

            data = current.model_dump()
            if target is not None and target != current.status:
                self._check_transition(current, target)
                data.update(self._status_fields(target, now))
            data.update(changes)
            data["updated_at"] = now

            task = self._build(data)
            collection.tasks[idx] = task

        self._log.info(
            "Task updated id=%s fields=%s",
            task_id,
            ",".join(sorted(patch.model_fields_set)) or "-",
        )
        return task

    def start_task(self, task_id: str) -> Task:
        return self._transition(task_id, TaskStatus.IN_PROGRESS)

    def complete_task(
        self,
        task_id: str,
        actual_hours: float | None = None,
        notes: str | None = None,
    ) -> Task:
        """
        Mark a task completed. Completion is one-way: completing a completed
        or cancelled task raises InvalidTransitionError and changes nothing.
        """
        changes: dict[str, Any] = {}
        if actual_hours is not None:
            changes["actual_hours"] = actual_hours
        return self._transition(task_id, TaskStatus.COMPLETED, notes=notes, **changes)

    def cancel_task(self, task_id: str, notes: str | None = None) -> Task:
        return self._transition(task_id, TaskStatus.CANCELLED, notes=notes)

    def delete_task(self, task_id: str) -> Task:
        with self._mutation() as collection:
            idx = self._index(collection, task_id)
            removed = collection.tasks.pop(idx)

        self._log.info("Task deleted id=%s", task_id)
        return removed

    def snapshot(self) -> list[Task]:
        """All tasks from one consistent read of the document."""
        return list(self._store.load().tasks)

    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        tasks = self.snapshot()
        if task_filter is None:
            return tasks
        return filter_tasks(tasks, task_filter)
