# src/ptask/tasks/task_service.py

"""
Query/command facade used by the CLI, report and export commands.

Raw caller input (strings, argparse option mappings) is validated here, once,
into typed request structs. The facade then calls the repository / metrics
engine and returns plain dicts and lists (never formatted strings). Storage
and business rules live below this layer.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError

from ..core.errors import PtaskError, ValidationError
from ..core.ports import TaskStorage
from .task_metrics import (
    CategoryMetrics,
    ProductivityReport,
    ReportPeriod,
    TaskFilter,
    TaskMetrics,
    build_report,
    category_breakdown,
    compute_metrics,
    priority_breakdown,
)
from .task_models import Task, TaskDraft, TaskPatch, TaskPriority, TaskStatus, first_error, utc_now
from .task_repository import TaskRepository

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=StrEnum)

Options = Mapping[str, Any]


class ExportFormat(StrEnum):
    JSON = "json"
    CSV = "csv"


# ---- raw input parsing ----


def parse_enum(enum_cls: type[E], raw: Any, field: str) -> E:
    """Case-insensitive; '-' and spaces are accepted for '_' (in-progress == in_progress)."""
    if isinstance(raw, enum_cls):
        return raw
    key = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return enum_cls(key)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field, raw, f"expected one of: {allowed}") from None


def parse_datetime(raw: Any, field: str, *, end_of_day: bool = False) -> datetime:
    """
    YYYY-MM-DD (start of that day in UTC, or its last instant with end_of_day)
    or a full ISO-8601 timestamp (naive means UTC).
    """
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, date):
        value = datetime.combine(raw, time.max if end_of_day else time.min)
    else:
        text = str(raw).strip()
        try:
            if len(text) == 10:
                day = date.fromisoformat(text)
                value = datetime.combine(day, time.max if end_of_day else time.min)
            else:
                value = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(field, raw, "expected YYYY-MM-DD or an ISO-8601 timestamp") from None

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_hours(raw: Any, field: str, *, allow_zero: bool) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(field, raw, "expected a number of hours") from None
    if not math.isfinite(value):
        raise ValidationError(field, raw, "expected a finite number of hours")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(field, raw, "must be >= 0" if allow_zero else "must be > 0")
    return value


def parse_tags(raw: Any) -> list[str]:
    if raw is None:
        return []
    items: Iterable[Any] = raw.split(",") if isinstance(raw, str) else raw
    return [str(t).strip() for t in items if str(t).strip()]


def parse_date_range(raw: str, field: str = "date_range") -> tuple[datetime, datetime]:
    """'YYYY-MM-DD:YYYY-MM-DD' -> (start of first day, end of last day)."""
    start_raw, sep, end_raw = str(raw).partition(":")
    if not sep or not start_raw.strip() or not end_raw.strip():
        raise ValidationError(field, raw, "expected YYYY-MM-DD:YYYY-MM-DD")
    start = parse_datetime(start_raw, field)
    end = parse_datetime(end_raw, field, end_of_day=True)
    if end < start:
        raise ValidationError(field, raw, "end date precedes start date")
    return start, end


def _text(raw: Any) -> str | None:
    # assignee ids may arrive as numbers; they are stored as text
    if raw is None:
        return None
    return str(raw).strip()


def _given(options: Options, key: str) -> bool:
    return options.get(key) is not None


# ---- request structs ----


@dataclass(frozen=True, slots=True)
class CreateTaskRequest:
    draft: TaskDraft

    @classmethod
    def from_options(cls, description: str, options: Options) -> CreateTaskRequest:
        if not description or not str(description).strip():
            raise ValidationError("description", description, "must not be empty")

        fields: dict[str, Any] = {"description": str(description)}
        if _given(options, "id"):
            fields["id"] = str(options["id"])
        if _given(options, "priority"):
            fields["priority"] = parse_enum(TaskPriority, options["priority"], "priority")
        if _given(options, "status"):
            fields["status"] = parse_enum(TaskStatus, options["status"], "status")
        if _given(options, "category"):
            fields["category"] = str(options["category"])
        if _given(options, "due"):
            fields["due_date"] = parse_datetime(options["due"], "due")
        if _given(options, "estimate"):
            fields["estimated_hours"] = parse_hours(options["estimate"], "estimate", allow_zero=False)
        if _given(options, "tags"):
            fields["tags"] = parse_tags(options["tags"])
        if _given(options, "notes"):
            fields["notes"] = str(options["notes"])
        if _given(options, "assignee"):
            fields["assignee"] = _text(options["assignee"])

        try:
            return cls(draft=TaskDraft(**fields))
        except PydanticValidationError as e:
            raise ValidationError(*first_error(e)) from e


@dataclass(frozen=True, slots=True)
class ListTasksRequest:
    task_filter: TaskFilter

    @classmethod
    def from_options(cls, options: Options, *, now: datetime) -> ListTasksRequest:
        kw: dict[str, Any] = {}
        if _given(options, "status"):
            kw["status"] = parse_enum(TaskStatus, options["status"], "status")
        if _given(options, "priority"):
            kw["priority"] = parse_enum(TaskPriority, options["priority"], "priority")
        if _given(options, "category"):
            kw["category"] = str(options["category"]).strip()
        if _given(options, "tags"):
            kw["tags"] = frozenset(parse_tags(options["tags"]))
        if _given(options, "search"):
            kw["search"] = str(options["search"])
        if _given(options, "assignee"):
            kw["assignee"] = _text(options["assignee"])
        if _given(options, "due_after"):
            kw["due_after"] = parse_datetime(options["due_after"], "due_after")
        if _given(options, "due_before"):
            kw["due_before"] = parse_datetime(options["due_before"], "due_before", end_of_day=True)
        if _given(options, "date_range"):
            kw["created_after"], kw["created_before"] = parse_date_range(options["date_range"])
        if options.get("open_only"):
            kw["open_only"] = True

        today = bool(options.get("today"))
        overdue = bool(options.get("overdue"))
        if today and overdue:
            raise ValidationError("today", True, "cannot be combined with overdue")
        if today:
            start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
            kw["due_after"] = start
            kw["due_before"] = start + timedelta(days=1) - timedelta(microseconds=1)
        if overdue:
            kw["due_before"] = now
            kw["open_only"] = True

        return cls(task_filter=TaskFilter(**kw))


@dataclass(frozen=True, slots=True)
class CompleteTaskRequest:
    task_id: str
    actual_hours: float | None
    notes: str | None

    @classmethod
    def from_options(cls, task_id: str, options: Options) -> CompleteTaskRequest:
        actual_hours = None
        if _given(options, "time"):
            actual_hours = parse_hours(options["time"], "time", allow_zero=True)
        notes = str(options["notes"]) if _given(options, "notes") else None
        return cls(task_id=_require_id(task_id), actual_hours=actual_hours, notes=notes)


@dataclass(frozen=True, slots=True)
class UpdateTaskRequest:
    task_id: str
    patch: TaskPatch

    # option value that clears an optional field
    CLEAR = "none"

    @classmethod
    def from_options(cls, task_id: str, options: Options) -> UpdateTaskRequest:
        fields: dict[str, Any] = {}
        if _given(options, "description"):
            description = str(options["description"]).strip()
            if not description:
                raise ValidationError("description", options["description"], "must not be empty")
            fields["description"] = description
        if _given(options, "status"):
            fields["status"] = parse_enum(TaskStatus, options["status"], "status")
        if _given(options, "priority"):
            fields["priority"] = parse_enum(TaskPriority, options["priority"], "priority")
        if _given(options, "category"):
            fields["category"] = str(options["category"])
        if _given(options, "due"):
            due = options["due"]
            clear = isinstance(due, str) and due.strip().lower() == cls.CLEAR
            fields["due_date"] = None if clear else parse_datetime(due, "due")
        if _given(options, "estimate"):
            fields["estimated_hours"] = parse_hours(options["estimate"], "estimate", allow_zero=False)
        if _given(options, "tags"):
            fields["tags"] = parse_tags(options["tags"])
        if _given(options, "notes"):
            fields["notes"] = str(options["notes"])
        if _given(options, "assignee"):
            assignee = _text(options["assignee"])
            fields["assignee"] = None if assignee is None or assignee.lower() == cls.CLEAR else assignee

        patch = TaskPatch(**fields)
        if patch.is_empty:
            raise ValidationError("update", None, "no fields to update")
        return cls(task_id=_require_id(task_id), patch=patch)


@dataclass(frozen=True, slots=True)
class ReportRequest:
    period: ReportPeriod

    @classmethod
    def from_options(cls, options: Options) -> ReportRequest:
        raw = options.get("period")
        period = ReportPeriod.WEEK if raw is None else parse_enum(ReportPeriod, raw, "period")
        return cls(period=period)


@dataclass(frozen=True, slots=True)
class ExportRequest:
    export_format: ExportFormat
    listing: ListTasksRequest

    @classmethod
    def from_options(cls, export_format: str, options: Options, *, now: datetime) -> ExportRequest:
        return cls(
            export_format=parse_enum(ExportFormat, export_format, "format"),
            listing=ListTasksRequest.from_options(options, now=now),
        )


def _require_id(task_id: Any) -> str:
    value = "" if task_id is None else str(task_id).strip()
    if not value:
        raise ValidationError("task_id", task_id, "must not be empty")
    return value


# ---- result shaping ----


def task_to_dict(task: Task) -> dict[str, Any]:
    return task.model_dump(mode="json")


def metrics_to_dict(metrics: TaskMetrics) -> dict[str, Any]:
    out = dataclasses.asdict(metrics)
    out["completion_dates"] = [ts.isoformat() for ts in metrics.completion_dates]
    return out


def _categories_to_list(categories: list[CategoryMetrics]) -> list[dict[str, Any]]:
    return [{**dataclasses.asdict(c), "average_priority": c.average_priority.value} for c in categories]


def _priorities_to_dict(counts: Mapping[TaskPriority, int]) -> dict[str, int]:
    return {p.value: n for p, n in counts.items()}


def report_to_dict(report: ProductivityReport) -> dict[str, Any]:
    return {
        "period": report.period.value,
        "start_date": report.start_date.isoformat(),
        "end_date": report.end_date.isoformat(),
        "metrics": metrics_to_dict(report.metrics),
        "category_breakdown": _categories_to_list(report.category_breakdown),
        "priority_breakdown": _priorities_to_dict(report.priority_breakdown),
        "time_spent": report.time_spent,
    }


def describe_error(exc: PtaskError) -> dict[str, Any]:
    """Presentation shape of a domain error: {"error": ..., "message": ..., **context}."""
    return exc.to_dict()


class TaskService:
    """Single entry point for external callers (CLI commands, report/export)."""

    def __init__(
        self,
        repository: TaskRepository,
        store: TaskStorage,
        *,
        clock: Callable[[], datetime] = utc_now,
        backup_dir: Path | None = None,
    ) -> None:
        self._repo = repository
        self._store = store
        self._clock = clock
        self._backup_dir = backup_dir

    # ---- commands ----

    def create_task(self, description: str, options: Options | None = None) -> dict[str, Any]:
        req = CreateTaskRequest.from_options(description, options or {})
        return task_to_dict(self._repo.create_task(req.draft))

    def update_task(self, task_id: str, options: Options) -> dict[str, Any]:
        req = UpdateTaskRequest.from_options(task_id, options)
        return task_to_dict(self._repo.update_task(req.task_id, req.patch))

    def start_task(self, task_id: str) -> dict[str, Any]:
        return task_to_dict(self._repo.start_task(_require_id(task_id)))

    def complete_task(self, task_id: str, options: Options | None = None) -> dict[str, Any]:
        req = CompleteTaskRequest.from_options(task_id, options or {})
        task = self._repo.complete_task(req.task_id, actual_hours=req.actual_hours, notes=req.notes)
        return task_to_dict(task)

    def cancel_task(self, task_id: str, options: Options | None = None) -> dict[str, Any]:
        options = options or {}
        notes = str(options["notes"]) if _given(options, "notes") else None
        return task_to_dict(self._repo.cancel_task(_require_id(task_id), notes=notes))

    def delete_task(self, task_id: str) -> dict[str, Any]:
        return task_to_dict(self._repo.delete_task(_require_id(task_id)))

    def backup(self, destination: str | Path | None = None) -> dict[str, Any]:
        target = Path(destination) if destination else self._backup_dir
        if target is None:
            raise ValidationError("path", destination, "no backup destination configured")
        info = self._store.backup(target)
        return {"path": str(info.path), "task_count": info.task_count}

    # ---- queries ----

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        task = self._repo.get_task_by_id(_require_id(task_id))
        return None if task is None else task_to_dict(task)

    def require_task(self, task_id: str) -> dict[str, Any]:
        return task_to_dict(self._repo.require_task(_require_id(task_id)))

    def list_tasks(self, options: Options | None = None) -> list[dict[str, Any]]:
        req = ListTasksRequest.from_options(options or {}, now=self._clock())
        logger.debug("Listing tasks filter=%s", req.task_filter)
        return [task_to_dict(t) for t in self._repo.list_tasks(req.task_filter)]

    def stats(self) -> dict[str, Any]:
        tasks = self._repo.snapshot()
        return {
            "metrics": metrics_to_dict(compute_metrics(tasks, self._clock())),
            "category_breakdown": _categories_to_list(category_breakdown(tasks)),
            "priority_breakdown": _priorities_to_dict(priority_breakdown(tasks)),
        }

    def report(self, options: Options | None = None) -> dict[str, Any]:
        req = ReportRequest.from_options(options or {})
        report = build_report(self._repo.snapshot(), req.period, self._clock())
        return report_to_dict(report)

    def export(self, export_format: str, options: Options | None = None) -> dict[str, Any]:
        """Tasks selected for export; serializing them to the format is the caller's job."""
        req = ExportRequest.from_options(export_format, options or {}, now=self._clock())
        tasks = self._repo.list_tasks(req.listing.task_filter)
        logger.info("Export prepared format=%s tasks=%d", req.export_format.value, len(tasks))
        return {"format": req.export_format.value, "tasks": [task_to_dict(t) for t in tasks]}
