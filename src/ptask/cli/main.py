# src/ptask/cli/main.py

"""
CLI entrypoint.

Reads settings once, initializes logging, builds AppState, then runs exactly
one command (one load-mutate-save cycle) and exits with its status code.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .. import __version__
from ..cli.bootstrap import create_initial_state
from ..cli.commands import exit_code_for, registry
from ..config import Settings
from ..core.errors import PtaskError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ptask",
        description="Productivity Tracker - manage tasks and track productivity from the command line",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--verbose", action="store_true", help="enable verbose output")
    parser.add_argument("--data-file", dest="data_file", help="task document to use instead of the configured one")
    registry.add_subparsers(parser)
    return parser


def _console_level(args: argparse.Namespace, settings: Settings) -> int:
    if args.debug:
        return logging.DEBUG
    if args.verbose:
        return logging.INFO
    return logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.WARNING)


def main(argv: list[str] | None = None, *, settings: Settings | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "command_name", None):
        parser.print_help()
        return 0

    if settings is None:
        settings = Settings.from_env()
    if args.data_file:
        settings = settings.with_overrides(tasks_path=Path(args.data_file).expanduser())

    try:
        setup_logging(
            log_dir=settings.log_dir if settings.file_logging else None,
            console_level=_console_level(args, settings),
        )
        logger.debug("Using tasks file %s", settings.tasks_path)
        state = create_initial_state(settings=settings)
    except PtaskError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return exit_code_for(e)

    code = registry.handle(state, args, out=sys.stdout, err=sys.stderr)
    logger.debug("Command %s finished with exit code %s", args.command_name, code)
    return code


if __name__ == "__main__":
    sys.exit(main())
