# src/ptask/cli/render.py

"""Presentation of service results: plain text tables, JSON and CSV."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Mapping, Sequence
from typing import Any

TASK_CSV_FIELDS = [
    "id",
    "description",
    "status",
    "priority",
    "category",
    "created_at",
    "updated_at",
    "due_date",
    "completed_at",
    "estimated_hours",
    "actual_hours",
    "tags",
    "notes",
    "assignee",
]

CATEGORY_CSV_FIELDS = [
    "category",
    "task_count",
    "completed_count",
    "estimated_hours",
    "actual_hours",
    "average_priority",
    "average_priority_score",
]

_STATUS_LABELS = {
    "pending": "Pending",
    "in_progress": "In Progress",
    "completed": "Completed",
    "cancelled": "Cancelled",
}


def render_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def _day(ts: str | None) -> str:
    # ISO timestamps from the service; the date part is enough for listings
    return ts[:10] if ts else "-"


def _hours(value: float | None) -> str:
    return "-" if value is None else f"{value:g}h"


def render_tasks_csv(tasks: Sequence[Mapping[str, Any]]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=TASK_CSV_FIELDS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for task in tasks:
        row = dict(task)
        row["tags"] = ";".join(task.get("tags") or [])
        writer.writerow({k: "" if row.get(k) is None else row[k] for k in TASK_CSV_FIELDS})
    return buf.getvalue()


def render_task_table(tasks: Sequence[Mapping[str, Any]]) -> str:
    if not tasks:
        return "No tasks found"

    lines = [f"Found {len(tasks)} tasks:", ""]
    for i, t in enumerate(tasks, start=1):
        status = _STATUS_LABELS.get(t["status"], t["status"])
        due = f"Due: {_day(t.get('due_date'))}" if t.get("due_date") else "No due date"
        lines.append(f"{i}. {t['description']}")
        lines.append(
            f"   [{status}] [{t['priority']}] | Category: {t['category']} | {due}"
        )
        lines.append(f"   ID: {t['id']} | Created: {_day(t.get('created_at'))}")
        if t.get("tags"):
            lines.append(f"   Tags: {', '.join(t['tags'])}")
        if t.get("notes"):
            lines.append(f"   Notes: {t['notes']}")
        lines.append("")
    return "\n".join(lines).rstrip("\n")


def render_task_detail(t: Mapping[str, Any]) -> str:
    rows = [
        ("ID", t["id"]),
        ("Description", t["description"]),
        ("Status", _STATUS_LABELS.get(t["status"], t["status"])),
        ("Priority", t["priority"]),
        ("Category", t["category"]),
        ("Assignee", t.get("assignee") or "-"),
        ("Created", t.get("created_at") or "-"),
        ("Updated", t.get("updated_at") or "-"),
        ("Due", t.get("due_date") or "-"),
        ("Completed", t.get("completed_at") or "-"),
        ("Estimate", _hours(t.get("estimated_hours"))),
        ("Actual", _hours(t.get("actual_hours"))),
        ("Tags", ", ".join(t.get("tags") or []) or "-"),
        ("Notes", t.get("notes") or "-"),
    ]
    width = max(len(k) for k, _ in rows)
    return "\n".join(f"{k.ljust(width)} : {v}" for k, v in rows)


def _render_metrics(metrics: Mapping[str, Any]) -> list[str]:
    avg = metrics.get("average_actual_hours")
    completion = metrics.get("average_completion_hours")
    return [
        f"  Total tasks:       {metrics['total_tasks']}",
        f"  Pending:           {metrics['pending_tasks']}",
        f"  In progress:       {metrics['in_progress_tasks']}",
        f"  Completed:         {metrics['completed_tasks']}",
        f"  Cancelled:         {metrics['cancelled_tasks']}",
        f"  Overdue:           {metrics['overdue_tasks']}",
        f"  Completion rate:   {metrics['completion_rate'] * 100:.1f}%",
        f"  Avg actual hours:  {'-' if avg is None else f'{avg:.2f}'}",
        f"  Avg time to done:  {'-' if completion is None else f'{completion:.2f}h'}",
        f"  Estimated hours:   {metrics['total_estimated_hours']:g}",
        f"  Actual hours:      {metrics['total_actual_hours']:g}",
    ]


def _render_breakdowns(data: Mapping[str, Any]) -> list[str]:
    lines = ["", "By category:"]
    categories = data.get("category_breakdown") or []
    if not categories:
        lines.append("  (none)")
    for c in categories:
        lines.append(
            f"  {c['category']}: {c['completed_count']}/{c['task_count']} completed, "
            f"est {c['estimated_hours']:g}h, actual {c['actual_hours']:g}h, "
            f"avg priority {c['average_priority']}"
        )
    lines.extend(["", "By priority:"])
    for priority, n in (data.get("priority_breakdown") or {}).items():
        lines.append(f"  {priority}: {n}")
    return lines


def render_stats(stats: Mapping[str, Any], *, detailed: bool = False) -> str:
    lines = ["Productivity Statistics:"]
    lines.extend(_render_metrics(stats["metrics"]))
    if detailed:
        lines.extend(_render_breakdowns(stats))
    return "\n".join(lines)


def render_report(report: Mapping[str, Any], *, detailed: bool = False) -> str:
    lines = [
        f"Productivity report ({report['period']})",
        f"  {_day(report['start_date'])} .. {_day(report['end_date'])}",
        f"  Time spent:        {report['time_spent']:g}h",
    ]
    lines.extend(_render_metrics(report["metrics"]))
    if detailed:
        lines.extend(_render_breakdowns(report))
    return "\n".join(lines)


def render_report_csv(report: Mapping[str, Any]) -> str:
    """Category breakdown rows of a report."""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CATEGORY_CSV_FIELDS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in report.get("category_breakdown") or []:
        writer.writerow(row)
    return buf.getvalue()
