# src/ptask/cli/commands.py

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TextIO

from ..core.errors import (
    BusyError,
    CorruptDataError,
    InvalidTransitionError,
    NotFoundError,
    PtaskError,
    StorageIOError,
    ValidationError,
)
from ..core.state import AppState
from ..tasks.task_service import describe_error
from .render import (
    render_json,
    render_report,
    render_report_csv,
    render_stats,
    render_task_detail,
    render_task_table,
    render_tasks_csv,
)

CommandHandler = Callable[[AppState, argparse.Namespace, TextIO], int]
ArgsConfigurer = Callable[[argparse.ArgumentParser], None]

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1

# checked in order; first isinstance match wins
_EXIT_CODES: list[tuple[type[PtaskError], int]] = [
    (ValidationError, 2),
    (NotFoundError, 3),
    (InvalidTransitionError, 4),
    (CorruptDataError, 5),
    (BusyError, 6),
    (StorageIOError, 7),
]


def exit_code_for(exc: BaseException) -> int:
    for cls, code in _EXIT_CODES:
        if isinstance(exc, cls):
            return code
    return EXIT_UNEXPECTED


class CommandRegistry:
    """Registry of CLI subcommands; builds the argparse subparsers and dispatches to handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}
        self._aliases: dict[str, list[str]] = {}
        self._configurers: dict[str, ArgsConfigurer | None] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
        configure: ArgsConfigurer | None = None,
    ) -> None:
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        self._aliases[key] = [a.lower() for a in aliases or []]
        self._configurers[key] = configure

    def add_subparsers(self, parser: argparse.ArgumentParser) -> None:
        subparsers = parser.add_subparsers(dest="command", metavar="<command>")
        for name, help_text in self._help.items():
            sub = subparsers.add_parser(name, help=help_text, description=help_text, aliases=self._aliases[name])
            configure = self._configurers[name]
            if configure is not None:
                configure(sub)
            sub.set_defaults(command_name=name)

    def handle(
        self,
        state: AppState,
        args: argparse.Namespace,
        out: TextIO,
        err: TextIO,
    ) -> int:
        """
        Run the handler selected by args.command_name.
        Domain errors become a message on `err` plus a non-zero exit code.
        """
        name = getattr(args, "command_name", None)
        handler = self._handlers.get(name or "")
        if handler is None:
            print(f"Unknown command: {name}", file=err)
            return EXIT_UNEXPECTED

        try:
            return handler(state, args, out)
        except PtaskError as e:
            logger.warning("Command %s failed: %s", name, e.message)
            if getattr(args, "format", None) == "json":
                print(render_json(describe_error(e)), file=err)
            else:
                print(f"Error: {e.message}", file=err)
            return exit_code_for(e)
        except Exception:
            logger.exception("Command %s crashed.", name)
            print("Internal error while handling the command.", file=err)
            return EXIT_UNEXPECTED


registry = CommandRegistry()


def _opts(args: argparse.Namespace, *keys: str) -> dict[str, Any]:
    ns = vars(args)
    return {k: ns.get(k) for k in keys}


# ---- argument groups ----


def _add_format(p: argparse.ArgumentParser, choices: list[str], default: str = "table") -> None:
    p.add_argument("-f", "--format", choices=choices, default=default, help=f"output format (default: {default})")


def _add_filters(p: argparse.ArgumentParser) -> None:
    p.add_argument("-s", "--status", help="filter by status (pending, in-progress, completed, cancelled)")
    p.add_argument("-p", "--priority", help="filter by priority (low, medium, high, urgent)")
    p.add_argument("-c", "--category", help="filter by category")
    p.add_argument("-t", "--tags", help="comma-separated tags (matches any)")
    p.add_argument("-a", "--assignee", help="filter by assignee")
    p.add_argument("--search", help="case-insensitive text search in description and notes")
    p.add_argument("--due-after", dest="due_after", help="due on or after date (YYYY-MM-DD)")
    p.add_argument("--due-before", dest="due_before", help="due on or before date (YYYY-MM-DD)")
    p.add_argument("--today", action="store_true", help="show only tasks due today")
    p.add_argument("--overdue", action="store_true", help="show only overdue tasks")
    p.add_argument("--open", dest="open_only", action="store_true", help="hide completed and cancelled tasks")


_FILTER_KEYS = (
    "status",
    "priority",
    "category",
    "tags",
    "assignee",
    "search",
    "due_after",
    "due_before",
    "today",
    "overdue",
    "open_only",
)


def _configure_add(p: argparse.ArgumentParser) -> None:
    p.add_argument("description", help="task description")
    p.add_argument("-p", "--priority", help="task priority (low, medium, high, urgent; default: medium)")
    p.add_argument("-c", "--category", help="task category (default: general)")
    p.add_argument("-d", "--due", help="due date (YYYY-MM-DD)")
    p.add_argument("-e", "--estimate", help="estimated hours to complete (default: 1)")
    p.add_argument("-t", "--tags", help="comma-separated tags")
    p.add_argument("-a", "--assignee", help="responsible person")
    p.add_argument("-n", "--notes", help="free-text notes")
    p.add_argument("--id", help="explicit task id (generated when omitted)")
    _add_format(p, ["table", "json"])


def _configure_list(p: argparse.ArgumentParser) -> None:
    _add_filters(p)
    _add_format(p, ["table", "json", "csv"])


def _configure_id(p: argparse.ArgumentParser) -> None:
    p.add_argument("task_id", help="task id")
    _add_format(p, ["table", "json"])


def _configure_complete(p: argparse.ArgumentParser) -> None:
    _configure_id(p)
    p.add_argument("-t", "--time", help="actual time spent on task (hours)")
    p.add_argument("-n", "--notes", help="completion notes")


def _configure_cancel(p: argparse.ArgumentParser) -> None:
    _configure_id(p)
    p.add_argument("-n", "--notes", help="cancellation notes")


def _configure_update(p: argparse.ArgumentParser) -> None:
    _configure_id(p)
    p.add_argument("--description", help="new description")
    p.add_argument("-s", "--status", help="new status (follows the task lifecycle)")
    p.add_argument("-p", "--priority", help="new priority")
    p.add_argument("-c", "--category", help="new category")
    p.add_argument("-d", "--due", help="new due date (YYYY-MM-DD, or 'none' to clear)")
    p.add_argument("-e", "--estimate", help="new estimate in hours")
    p.add_argument("-t", "--tags", help="replace tags (comma-separated)")
    p.add_argument("-n", "--notes", help="replace notes")
    p.add_argument("-a", "--assignee", help="new assignee ('none' to clear)")


def _configure_stats(p: argparse.ArgumentParser) -> None:
    p.add_argument("--detailed", action="store_true", help="show category and priority breakdowns")
    _add_format(p, ["table", "json"])


def _configure_report(p: argparse.ArgumentParser) -> None:
    p.add_argument("-p", "--period", default="week", help="report period (day, week, month, year)")
    p.add_argument("--detailed", action="store_true", help="include detailed breakdown")
    _add_format(p, ["table", "json", "csv"])


def _configure_export(p: argparse.ArgumentParser) -> None:
    p.add_argument("export_format", metavar="format", help="export format (json, csv)")
    p.add_argument("-o", "--output", help="output file path (default: stdout)")
    p.add_argument("--date-range", dest="date_range", help="creation date range (YYYY-MM-DD:YYYY-MM-DD)")
    _add_filters(p)


def _configure_backup(p: argparse.ArgumentParser) -> None:
    p.add_argument("-p", "--path", help="backup file or directory (default: configured backup dir)")


# ---- handlers ----


def _print_task(task: dict[str, Any], args: argparse.Namespace, out: TextIO, headline: str) -> None:
    if args.format == "json":
        print(render_json(task), file=out)
    else:
        print(headline, file=out)
        print(f"Task ID: {task['id']}", file=out)


def cmd_add(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    options = _opts(args, "id", "priority", "category", "due", "estimate", "tags", "assignee", "notes")
    task = state.service.create_task(args.description, options)
    _print_task(task, args, out, "Task added successfully!")
    return EXIT_OK


def cmd_list(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    tasks = state.service.list_tasks(_opts(args, *_FILTER_KEYS))
    if args.format == "json":
        print(render_json(tasks), file=out)
    elif args.format == "csv":
        print(render_tasks_csv(tasks), end="", file=out)
    else:
        print(render_task_table(tasks), file=out)
    return EXIT_OK


def cmd_show(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    task = state.service.require_task(args.task_id)
    print(render_json(task) if args.format == "json" else render_task_detail(task), file=out)
    return EXIT_OK


def cmd_start(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    task = state.service.start_task(args.task_id)
    _print_task(task, args, out, "Task started.")
    return EXIT_OK


def cmd_complete(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    task = state.service.complete_task(args.task_id, _opts(args, "time", "notes"))
    _print_task(task, args, out, f"Task completed! Completed at: {task['completed_at']}")
    return EXIT_OK


def cmd_cancel(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    task = state.service.cancel_task(args.task_id, _opts(args, "notes"))
    _print_task(task, args, out, "Task cancelled.")
    return EXIT_OK


def cmd_update(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    options = _opts(
        args, "description", "status", "priority", "category", "due", "estimate", "tags", "notes", "assignee"
    )
    task = state.service.update_task(args.task_id, options)
    _print_task(task, args, out, "Task updated.")
    return EXIT_OK


def cmd_delete(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    task = state.service.delete_task(args.task_id)
    _print_task(task, args, out, "Task deleted.")
    return EXIT_OK


def cmd_stats(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    stats = state.service.stats()
    if args.format == "json":
        print(render_json(stats), file=out)
    else:
        print(render_stats(stats, detailed=args.detailed), file=out)
    return EXIT_OK


def cmd_report(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    report = state.service.report(_opts(args, "period"))
    if args.format == "json":
        print(render_json(report), file=out)
    elif args.format == "csv":
        print(render_report_csv(report), end="", file=out)
    else:
        print(render_report(report, detailed=args.detailed), file=out)
    return EXIT_OK


def cmd_export(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    exported = state.service.export(args.export_format, _opts(args, *_FILTER_KEYS, "date_range"))
    tasks = exported["tasks"]
    text = render_json(tasks) + "\n" if exported["format"] == "json" else render_tasks_csv(tasks)

    if not args.output:
        print(text, end="", file=out)
        return EXIT_OK

    path = Path(args.output).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise StorageIOError(path, "write export", e) from e
    print(f"Exported {len(tasks)} tasks to {path}", file=out)
    return EXIT_OK


def cmd_backup(state: AppState, args: argparse.Namespace, out: TextIO) -> int:
    result = state.service.backup(args.path)
    print(f"Backup written to {result['path']} ({result['task_count']} tasks)", file=out)
    return EXIT_OK


registry.register("add", cmd_add, "Add a new task.", configure=_configure_add)
registry.register("list", cmd_list, "List tasks with filtering options.", aliases=["ls"], configure=_configure_list)
registry.register("show", cmd_show, "Show one task.", configure=_configure_id)
registry.register("start", cmd_start, "Mark a task as in progress.", configure=_configure_id)
registry.register("complete", cmd_complete, "Mark a task as completed.", aliases=["done"], configure=_configure_complete)
registry.register("cancel", cmd_cancel, "Cancel a task.", configure=_configure_cancel)
registry.register("update", cmd_update, "Change fields of a task.", configure=_configure_update)
registry.register("delete", cmd_delete, "Delete a task.", aliases=["rm"], configure=_configure_id)
registry.register("stats", cmd_stats, "Show productivity statistics.", configure=_configure_stats)
registry.register("report", cmd_report, "Generate a productivity report.", configure=_configure_report)
registry.register("export", cmd_export, "Export tasks as JSON or CSV.", configure=_configure_export)
registry.register("backup", cmd_backup, "Back up all task data.", configure=_configure_backup)
