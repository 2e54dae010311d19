# src/ptask/tasks/task_models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

SCHEMA_VERSION = 1
DEFAULT_CATEGORY = "general"
DEFAULT_ESTIMATE_HOURS = 1.0


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    pending -> in_progress -> completed
    pending -> completed
    pending | in_progress -> cancelled

    completed and cancelled are terminal.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def from_rank(cls, rank: int) -> TaskPriority:
        rank = max(1, min(len(_PRIORITY_RANK), int(rank)))
        for priority, r in _PRIORITY_RANK.items():
            if r == rank:
                return priority
        raise ValueError(f"no priority with rank {rank}")


_PRIORITY_RANK = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}

# statuses reachable from each status
ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return str(uuid.uuid4())


# ---- field normalizers ----


def _as_utc(value: datetime) -> datetime:
    # naive timestamps are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clean_description(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("description must not be empty")
    return value


def _clean_category(value: str) -> str:
    return value.strip() or DEFAULT_CATEGORY


def _clean_tags(value: list[str]) -> list[str]:
    # tags are a set; keep them sorted so the stored document is deterministic
    return sorted({t.strip() for t in value if t and t.strip()})


def _clean_assignee(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]
Description = Annotated[str, AfterValidator(_clean_description)]
Category = Annotated[str, AfterValidator(_clean_category)]
Tags = Annotated[list[str], AfterValidator(_clean_tags)]
Assignee = Annotated[str | None, AfterValidator(_clean_assignee)]
EstimatedHours = Annotated[float, Field(gt=0, allow_inf_nan=False)]
ActualHours = Annotated[float, Field(ge=0, allow_inf_nan=False)]


class Task(BaseModel):
    """
    A unit of tracked work.

    Instances are immutable; the repository replaces a stored task with a
    re-validated copy on every mutation.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    description: Description
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    category: Category = DEFAULT_CATEGORY
    created_at: UtcDatetime
    updated_at: UtcDatetime
    due_date: UtcDatetime | None = None
    completed_at: UtcDatetime | None = None
    estimated_hours: EstimatedHours = DEFAULT_ESTIMATE_HOURS
    actual_hours: ActualHours | None = None
    tags: Tags = Field(default_factory=list)
    notes: str = ""
    assignee: Assignee = None

    @model_validator(mode="after")
    def _check_invariants(self) -> Task:
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        if (self.status == TaskStatus.COMPLETED) != (self.completed_at is not None):
            raise ValueError("completed_at must be set if and only if status is completed")
        if self.actual_hours is not None and self.status != TaskStatus.COMPLETED:
            raise ValueError("actual_hours may only be recorded on completed tasks")
        return self

    @property
    def is_open(self) -> bool:
        return not self.status.is_terminal

    def is_overdue(self, now: datetime) -> bool:
        return self.is_open and self.due_date is not None and self.due_date < now


class TaskDraft(BaseModel):
    """Input for creating a task. A missing id or created_at is filled in by the repository."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    description: Description
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    category: Category = DEFAULT_CATEGORY
    created_at: UtcDatetime | None = None
    due_date: UtcDatetime | None = None
    estimated_hours: EstimatedHours = DEFAULT_ESTIMATE_HOURS
    tags: Tags = Field(default_factory=list)
    notes: str = ""
    assignee: Assignee = None

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("id must not be blank")
        return value

    @field_validator("status")
    @classmethod
    def _check_initial_status(cls, value: TaskStatus) -> TaskStatus:
        if value.is_terminal:
            raise ValueError("new tasks must start as pending or in_progress")
        return value


class TaskPatch(BaseModel):
    """
    Partial update. Only fields explicitly set by the caller are applied,
    so an explicit None clears an optional field (due_date, assignee).
    """

    model_config = ConfigDict(extra="forbid")

    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    category: str | None = None
    due_date: UtcDatetime | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    tags: list[str] | None = None
    notes: str | None = None
    assignee: str | None = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set


class TaskCollection(BaseModel):
    """The persisted aggregate: ordered tasks plus a schema version marker."""

    model_config = ConfigDict(extra="forbid")

    schema_version: int
    tasks: list[Task]

    @classmethod
    def empty(cls) -> TaskCollection:
        return cls(schema_version=SCHEMA_VERSION, tasks=[])

    @field_validator("schema_version")
    @classmethod
    def _check_version(cls, value: int) -> int:
        if value < 1 or value > SCHEMA_VERSION:
            raise ValueError(f"unsupported schema version {value} (supported: 1..{SCHEMA_VERSION})")
        return value

    @model_validator(mode="after")
    def _check_unique_ids(self) -> TaskCollection:
        seen: set[str] = set()
        for task in self.tasks:
            if task.id in seen:
                raise ValueError(f"duplicate task id {task.id!r}")
            seen.add(task.id)
        return self

    def index_of(self, task_id: str) -> int | None:
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                return i
        return None

    def get(self, task_id: str) -> Task | None:
        i = self.index_of(task_id)
        return None if i is None else self.tasks[i]


@dataclass(frozen=True, slots=True)
class BackupInfo:
    """Where a backup was written and how many tasks it holds."""

    path: Path
    task_count: int


def first_error(exc: PydanticValidationError) -> tuple[str, Any, str]:
    """(field, offending value, reason) of the first pydantic error."""
    errors = exc.errors()
    if not errors:
        return "task", None, str(exc)
    err = errors[0]
    loc = err.get("loc", ())
    field = ".".join(str(p) for p in loc) or "task"
    reason = str(err.get("msg", "invalid value")).removeprefix("Value error, ")
    # model-level errors carry the whole input; do not echo it back
    return field, err.get("input") if loc else None, reason
