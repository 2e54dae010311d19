# src/ptask/config.py

"""Settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object, built once at process start and passed down explicitly
  (no module-level singleton).
- Malformed values fall back to defaults instead of crashing the CLI.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ENV_PREFIX = "PTASK"

DEFAULT_DATA_DIR = Path("~/.local/share/ptask")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default.expanduser()
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- Logging ----
    log_level: str
    file_logging: bool

    # ---- Local data paths ----
    data_dir: Path
    tasks_path: Path
    log_dir: Path
    backup_dir: Path

    # ---- Concurrency ----
    lock_timeout: float

    @staticmethod
    def from_env(*, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv(override=False)

        log_level = _env(_k("LOG_LEVEL"), "WARNING").strip().upper()
        if log_level not in logging.getLevelNamesMapping():
            log_level = "WARNING"
        file_logging = _env_bool(_k("FILE_LOGGING"), True)

        data_dir = _env_path(_k("DATA_DIR"), DEFAULT_DATA_DIR)
        tasks_path = _env_path(_k("TASKS_PATH"), data_dir / "tasks.json")
        log_dir = _env_path(_k("LOG_DIR"), data_dir / "logs")
        backup_dir = _env_path(_k("BACKUP_DIR"), data_dir / "backups")

        lock_timeout = _env_float(_k("LOCK_TIMEOUT"), 5.0)
        if lock_timeout < 0:
            lock_timeout = 5.0

        return Settings(
            log_level=log_level,
            file_logging=file_logging,
            data_dir=data_dir,
            tasks_path=tasks_path,
            log_dir=log_dir,
            backup_dir=backup_dir,
            lock_timeout=lock_timeout,
        )

    def with_overrides(self, **changes: Any) -> "Settings":
        """Copy with some fields replaced (e.g. --data-file from the command line)."""
        return dataclasses.replace(self, **changes)
