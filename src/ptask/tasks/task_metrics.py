# src/ptask/tasks/task_metrics.py

from __future__ import annotations

"""
Filtering and metrics over task snapshots.

Everything here is a pure function of the tasks passed in: no storage access,
so a report is always computed from one consistent snapshot.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

from .task_models import Task, TaskPriority, TaskStatus


class ReportPeriod(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def span(self) -> timedelta:
        return _PERIOD_SPAN[self]


_PERIOD_SPAN = {
    ReportPeriod.DAY: timedelta(days=1),
    ReportPeriod.WEEK: timedelta(days=7),
    ReportPeriod.MONTH: timedelta(days=30),
    ReportPeriod.YEAR: timedelta(days=365),
}


@dataclass(frozen=True, slots=True)
class TaskFilter:
    """
    Predicate over task fields. Unset (None/empty) criteria match everything;
    set criteria are AND-ed together.

    - tags: any-of membership
    - due_after / due_before: inclusive; tasks without a due date never match a due range
    - search: case-insensitive substring over description and notes
    - open_only: excludes completed and cancelled tasks
    """

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    category: str | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    due_after: datetime | None = None
    due_before: datetime | None = None
    search: str | None = None
    assignee: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    open_only: bool = False

    def matches(self, task: Task) -> bool:
        if self.status is not None and task.status != self.status:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.category is not None and task.category != self.category:
            return False
        if self.assignee is not None and task.assignee != self.assignee:
            return False
        if self.open_only and not task.is_open:
            return False
        if self.tags and self.tags.isdisjoint(task.tags):
            return False

        if self.due_after is not None or self.due_before is not None:
            if task.due_date is None:
                return False
            if self.due_after is not None and task.due_date < self.due_after:
                return False
            if self.due_before is not None and task.due_date > self.due_before:
                return False

        if self.created_after is not None and task.created_at < self.created_after:
            return False
        if self.created_before is not None and task.created_at > self.created_before:
            return False

        if self.search:
            needle = self.search.casefold()
            if needle not in task.description.casefold() and needle not in task.notes.casefold():
                return False
        return True


def filter_tasks(tasks: Iterable[Task], task_filter: TaskFilter) -> list[Task]:
    """Tasks matching `task_filter`, in their stored order."""
    return [t for t in tasks if task_filter.matches(t)]


# ---- metrics ----


@dataclass(frozen=True, slots=True)
class CategoryMetrics:
    category: str
    task_count: int
    completed_count: int
    estimated_hours: float
    actual_hours: float
    average_priority: TaskPriority
    average_priority_score: float


@dataclass(frozen=True, slots=True)
class TaskMetrics:
    total_tasks: int
    pending_tasks: int
    in_progress_tasks: int
    completed_tasks: int
    cancelled_tasks: int
    overdue_tasks: int
    completion_rate: float
    average_actual_hours: float | None
    average_completion_hours: float | None
    completion_dates: list[datetime]
    total_estimated_hours: float
    total_actual_hours: float


@dataclass(frozen=True, slots=True)
class ProductivityReport:
    period: ReportPeriod
    start_date: datetime
    end_date: datetime
    metrics: TaskMetrics
    category_breakdown: list[CategoryMetrics]
    priority_breakdown: dict[TaskPriority, int]
    time_spent: float


def completion_rate(tasks: Sequence[Task]) -> float:
    """completed / total, in [0, 1]; 0.0 for no tasks."""
    if not tasks:
        return 0.0
    done = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    return done / len(tasks)


def average_actual_duration(tasks: Iterable[Task]) -> float | None:
    """Mean actual_hours of completed tasks that recorded it; None if there are none."""
    hours = [
        t.actual_hours
        for t in tasks
        if t.status == TaskStatus.COMPLETED and t.actual_hours is not None
    ]
    if not hours:
        return None
    return sum(hours) / len(hours)


def average_completion_duration(tasks: Iterable[Task]) -> float | None:
    """Mean hours from creation to completion over completed tasks; None if there are none."""
    spans = [
        (t.completed_at - t.created_at).total_seconds() / 3600
        for t in tasks
        if t.status == TaskStatus.COMPLETED and t.completed_at is not None
    ]
    if not spans:
        return None
    return sum(spans) / len(spans)


def completion_dates(tasks: Iterable[Task]) -> list[datetime]:
    """Completion timestamps of completed tasks, oldest first."""
    return sorted(t.completed_at for t in tasks if t.completed_at is not None)


def _round_half_up(x: float) -> int:
    return int(x + 0.5)


def category_breakdown(tasks: Iterable[Task]) -> list[CategoryMetrics]:
    groups: dict[str, list[Task]] = {}
    for t in tasks:
        groups.setdefault(t.category, []).append(t)

    out: list[CategoryMetrics] = []
    for category, members in groups.items():
        score = sum(t.priority.rank for t in members) / len(members)
        out.append(
            CategoryMetrics(
                category=category,
                task_count=len(members),
                completed_count=sum(1 for t in members if t.status == TaskStatus.COMPLETED),
                estimated_hours=sum(t.estimated_hours for t in members),
                actual_hours=sum(t.actual_hours or 0.0 for t in members),
                average_priority=TaskPriority.from_rank(_round_half_up(score)),
                average_priority_score=score,
            )
        )
    return out


def priority_breakdown(tasks: Iterable[Task]) -> dict[TaskPriority, int]:
    counts = {p: 0 for p in TaskPriority}
    for t in tasks:
        counts[t.priority] += 1
    return counts


def status_counts(tasks: Iterable[Task]) -> dict[TaskStatus, int]:
    counts = {s: 0 for s in TaskStatus}
    for t in tasks:
        counts[t.status] += 1
    return counts


def compute_metrics(tasks: Sequence[Task], now: datetime) -> TaskMetrics:
    counts = status_counts(tasks)
    return TaskMetrics(
        total_tasks=len(tasks),
        pending_tasks=counts[TaskStatus.PENDING],
        in_progress_tasks=counts[TaskStatus.IN_PROGRESS],
        completed_tasks=counts[TaskStatus.COMPLETED],
        cancelled_tasks=counts[TaskStatus.CANCELLED],
        overdue_tasks=sum(1 for t in tasks if t.is_overdue(now)),
        completion_rate=completion_rate(tasks),
        average_actual_hours=average_actual_duration(tasks),
        average_completion_hours=average_completion_duration(tasks),
        completion_dates=completion_dates(tasks),
        total_estimated_hours=sum(t.estimated_hours for t in tasks),
        total_actual_hours=sum(t.actual_hours or 0.0 for t in tasks),
    )


def _in_window(ts: datetime | None, start: datetime, end: datetime) -> bool:
    return ts is not None and start <= ts <= end


def build_report(tasks: Sequence[Task], period: ReportPeriod, now: datetime) -> ProductivityReport:
    """
    Report over [now - period, now]: tasks created or completed inside the window.
    time_spent sums actual hours of tasks completed inside the window.
    """
    start = now - period.span
    in_period = [
        t
        for t in tasks
        if _in_window(t.created_at, start, now) or _in_window(t.completed_at, start, now)
    ]
    time_spent = sum(
        t.actual_hours or 0.0 for t in in_period if _in_window(t.completed_at, start, now)
    )
    return ProductivityReport(
        period=period,
        start_date=start,
        end_date=now,
        metrics=compute_metrics(in_period, now),
        category_breakdown=category_breakdown(in_period),
        priority_breakdown=priority_breakdown(in_period),
        time_spent=time_spent,
    )
