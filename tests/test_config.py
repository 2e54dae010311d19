# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from ptask.config import Settings

_VARS = (
    "LOG_LEVEL",
    "FILE_LOGGING",
    "DATA_DIR",
    "TASKS_PATH",
    "LOG_DIR",
    "BACKUP_DIR",
    "LOCK_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path) -> None:
    for name in _VARS:
        monkeypatch.delenv(f"PTASK_{name}", raising=False)
    monkeypatch.setenv("PTASK_DATA_DIR", str(tmp_path))


def test_defaults_derive_from_data_dir(tmp_path: Path) -> None:
    s = Settings.from_env(dotenv=False)

    assert s.log_level == "WARNING"
    assert s.file_logging is True
    assert s.data_dir == tmp_path
    assert s.tasks_path == tmp_path / "tasks.json"
    assert s.log_dir == tmp_path / "logs"
    assert s.backup_dir == tmp_path / "backups"
    assert s.lock_timeout == 5.0


def test_explicit_values(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PTASK_TASKS_PATH", str(tmp_path / "elsewhere.json"))
    monkeypatch.setenv("PTASK_LOG_LEVEL", "debug")
    monkeypatch.setenv("PTASK_FILE_LOGGING", "no")
    monkeypatch.setenv("PTASK_LOCK_TIMEOUT", "0.5")

    s = Settings.from_env(dotenv=False)
    assert s.tasks_path == tmp_path / "elsewhere.json"
    assert s.log_level == "DEBUG"
    assert s.file_logging is False
    assert s.lock_timeout == 0.5


@pytest.mark.parametrize("raw", ["abc", "-1", ""])
def test_malformed_lock_timeout_falls_back(monkeypatch, raw: str) -> None:
    monkeypatch.setenv("PTASK_LOCK_TIMEOUT", raw)
    assert Settings.from_env(dotenv=False).lock_timeout == 5.0


def test_with_overrides_returns_copy(tmp_path: Path) -> None:
    s = Settings.from_env(dotenv=False)
    t = s.with_overrides(tasks_path=tmp_path / "x.json")
    assert t.tasks_path == tmp_path / "x.json"
    assert s.tasks_path == tmp_path / "tasks.json"


@pytest.mark.parametrize("raw", ["BASIC_FORMAT", "loud", ""])
def test_unknown_log_level_falls_back_to_warning(monkeypatch, raw: str) -> None:
    monkeypatch.setenv("PTASK_LOG_LEVEL", raw)
    assert Settings.from_env(dotenv=False).log_level == "WARNING"
