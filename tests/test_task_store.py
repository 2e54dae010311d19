# tests/test_task_store.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ptask.core.errors import BusyError, CorruptDataError, StorageIOError
from ptask.tasks.task_models import SCHEMA_VERSION, Task, TaskCollection
from ptask.tasks.task_store import JsonTaskStore

from .fakes import T0


def _collection(*ids: str) -> TaskCollection:
    tasks = [Task(id=i, description=f"task {i}", created_at=T0, updated_at=T0) for i in ids]
    return TaskCollection(schema_version=SCHEMA_VERSION, tasks=tasks)


def test_missing_file_loads_as_empty_without_creating_it(store: JsonTaskStore) -> None:
    c = store.load()
    assert c.tasks == []
    assert c.schema_version == SCHEMA_VERSION
    assert not store.exists()


def test_save_then_load_preserves_tasks_and_order(store: JsonTaskStore) -> None:
    store.save(_collection("b", "a", "c"))
    loaded = store.load()
    assert [t.id for t in loaded.tasks] == ["b", "a", "c"]
    assert loaded == _collection("b", "a", "c")


def test_document_layout_on_disk(store: JsonTaskStore) -> None:
    store.save(_collection("a"))
    doc = json.loads(store.path.read_text(encoding="utf-8"))
    assert doc["schema_version"] == SCHEMA_VERSION
    assert doc["tasks"][0]["id"] == "a"
    assert doc["tasks"][0]["status"] == "pending"


def test_resaving_a_loaded_document_is_byte_identical(store: JsonTaskStore) -> None:
    store.save(_collection("a", "b"))
    first = store.path.read_bytes()
    store.save(store.load())
    assert store.path.read_bytes() == first


def test_save_leaves_no_temp_files(store: JsonTaskStore) -> None:
    store.save(_collection("a"))
    store.save(_collection("a", "b"))
    assert [p.name for p in store.path.parent.iterdir()] == ["tasks.json"]


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"schema_version": 1}),
        json.dumps({"tasks": []}),
        json.dumps({"schema_version": 99, "tasks": []}),
        json.dumps({"schema_version": 1, "tasks": [], "extra": True}),
        json.dumps({"schema_version": 1, "tasks": [{"id": "a"}]}),
    ],
)
def test_invalid_documents_raise_corrupt_data(store: JsonTaskStore, content: str) -> None:
    store.path.write_text(content, encoding="utf-8")
    with pytest.raises(CorruptDataError) as ei:
        store.load()
    assert ei.value.path == str(store.path)


def test_corrupt_document_names_the_failing_field(store: JsonTaskStore) -> None:
    store.path.write_text(json.dumps({"schema_version": 99, "tasks": []}), encoding="utf-8")
    with pytest.raises(CorruptDataError) as ei:
        store.load()
    assert ei.value.detail.startswith("schema_version:")


def test_unreadable_document_raises_storage_io_error(store: JsonTaskStore) -> None:
    store.path.mkdir()
    with pytest.raises(StorageIOError) as ei:
        store.load()
    assert ei.value.operation == "read"


def test_unwritable_document_raises_storage_io_error(store: JsonTaskStore) -> None:
    store.path.mkdir()
    with pytest.raises(StorageIOError) as ei:
        store.save(_collection("a"))
    assert ei.value.operation == "write"


def test_write_lock_is_shared_per_path(store: JsonTaskStore) -> None:
    other = JsonTaskStore(store.path)
    with store.write_lock(1.0):
        with pytest.raises(BusyError) as ei:
            with other.write_lock(0.05):
                pass
    assert ei.value.timeout == 0.05

    # released after the holder exits
    with other.write_lock(0.05):
        pass


def test_write_lock_released_on_error(store: JsonTaskStore) -> None:
    with pytest.raises(RuntimeError):
        with store.write_lock(0.05):
            raise RuntimeError("boom")
    with store.write_lock(0.05):
        pass


def test_backup_into_directory(store: JsonTaskStore, tmp_path: Path) -> None:
    store.save(_collection("a", "b"))
    info = store.backup(tmp_path / "backups")

    assert info.path.parent == tmp_path / "backups"
    assert info.path.name.startswith("tasks-") and info.path.suffix == ".json"
    assert info.task_count == 2
    assert JsonTaskStore(info.path).load() == store.load()


def test_backup_to_explicit_file(store: JsonTaskStore, tmp_path: Path) -> None:
    store.save(_collection("a"))
    target = tmp_path / "copies" / "snapshot.json"
    assert store.backup(target).path == target
    assert [t.id for t in JsonTaskStore(target).load().tasks] == ["a"]


def test_backup_refuses_corrupt_source(store: JsonTaskStore, tmp_path: Path) -> None:
    store.path.write_text("garbage", encoding="utf-8")
    with pytest.raises(CorruptDataError):
        store.backup(tmp_path / "backups")
    assert not (tmp_path / "backups").exists()
