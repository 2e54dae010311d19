# tests/test_task_repository.py

from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from ptask.core.errors import BusyError, CorruptDataError, InvalidTransitionError, NotFoundError, ValidationError
from ptask.tasks.task_metrics import TaskFilter
from ptask.tasks.task_models import TaskDraft, TaskPatch, TaskPriority, TaskStatus
from ptask.tasks.task_repository import TaskRepository
from ptask.tasks.task_store import JsonTaskStore

from .fakes import T0, FakeClock


def test_create_assigns_id_and_timestamps(repo: TaskRepository, store: JsonTaskStore) -> None:
    task = repo.create_task(TaskDraft(description="Write report", priority=TaskPriority.HIGH))

    assert task.id == "task-1"
    assert task.created_at == task.updated_at == T0
    assert task.status == TaskStatus.PENDING
    assert store.load().get("task-1") == task


def test_create_with_explicit_id_and_past_created_at(repo: TaskRepository) -> None:
    earlier = T0 - timedelta(days=3)
    task = repo.create_task(TaskDraft(id="abc", description="x", created_at=earlier))
    assert task.id == "abc"
    assert task.created_at == earlier
    assert task.updated_at == T0


def test_create_rejects_duplicate_id(repo: TaskRepository) -> None:
    repo.create_task(TaskDraft(id="abc", description="first"))
    with pytest.raises(ValidationError) as ei:
        repo.create_task(TaskDraft(id="abc", description="second"))

    assert ei.value.field == "id"
    assert ei.value.value == "abc"
    assert [t.description for t in repo.snapshot()] == ["first"]


def test_create_rejects_future_created_at(repo: TaskRepository) -> None:
    with pytest.raises(ValidationError) as ei:
        repo.create_task(TaskDraft(description="x", created_at=T0 + timedelta(minutes=1)))
    assert ei.value.field == "created_at"
    assert repo.snapshot() == []


def test_start_then_complete(repo: TaskRepository, clock: FakeClock) -> None:
    repo.create_task(TaskDraft(description="x"))
    clock.advance(hours=1)
    started = repo.start_task("task-1")
    assert started.status == TaskStatus.IN_PROGRESS
    assert started.updated_at == clock.now

    clock.advance(hours=2)
    done = repo.complete_task("task-1", actual_hours=2.0, notes="shipped")
    assert done.status == TaskStatus.COMPLETED
    assert done.completed_at == clock.now
    assert done.actual_hours == 2.0
    assert done.notes == "shipped"


def test_pending_task_can_be_completed_directly(repo: TaskRepository) -> None:
    repo.create_task(TaskDraft(description="x"))
    assert repo.complete_task("task-1").status == TaskStatus.COMPLETED


def test_completion_notes_are_appended(repo: TaskRepository) -> None:
    repo.create_task(TaskDraft(description="x", notes="draft ready"))
    done = repo.complete_task("task-1", notes="  reviewed  ")
    assert done.notes == "draft ready\nreviewed"


def test_completing_twice_is_rejected_and_changes_nothing(
    repo: TaskRepository, store: JsonTaskStore, clock: FakeClock
) -> None:
    repo.create_task(TaskDraft(description="x"))
    first = repo.complete_task("task-1", actual_hours=1.0)
    before = store.path.read_bytes()

    clock.advance(days=1)
    with pytest.raises(InvalidTransitionError) as ei:
        repo.complete_task("task-1", actual_hours=5.0)

    assert ei.value.current == "completed"
    assert ei.value.target == "completed"
    assert store.path.read_bytes() == before
    assert repo.require_task("task-1") == first


@pytest.mark.parametrize(
    ("setup", "action"),
    [
        ("cancel", "start"),
        ("cancel", "complete"),
        ("complete", "cancel"),
        ("start", "start"),
    ],
)
def test_illegal_transitions(repo: TaskRepository, setup: str, action: str) -> None:
    repo.create_task(TaskDraft(description="x"))
    getattr(repo, f"{setup}_task")("task-1")
    with pytest.raises(InvalidTransitionError):
        getattr(repo, f"{action}_task")("task-1")


def test_unknown_id_raises_not_found(repo: TaskRepository) -> None:
    assert repo.get_task_by_id("nope") is None
    for call in (repo.require_task, repo.start_task, repo.complete_task, repo.cancel_task, repo.delete_task):
        with pytest.raises(NotFoundError) as ei:
            call("nope")
        assert ei.value.task_id == "nope"


def test_update_changes_fields_and_clears_due_date(repo: TaskRepository, clock: FakeClock) -> None:
    repo.create_task(TaskDraft(description="x", due_date=T0 + timedelta(days=2), assignee="sam"))
    clock.advance(minutes=5)

    updated = repo.update_task(
        "task-1",
        TaskPatch(priority=TaskPriority.URGENT, due_date=None, assignee=None, tags=["b", "a"]),
    )
    assert updated.priority == TaskPriority.URGENT
    assert updated.due_date is None
    assert updated.assignee is None
    assert updated.tags == ["a", "b"]
    assert updated.updated_at == clock.now


def test_update_status_follows_transition_rules(repo: TaskRepository) -> None:
    repo.create_task(TaskDraft(description="x"))
    repo.start_task("task-1")

    # same status is not a transition
    assert repo.update_task("task-1", TaskPatch(status=TaskStatus.IN_PROGRESS)).status == TaskStatus.IN_PROGRESS

    with pytest.raises(InvalidTransitionError):
        repo.update_task("task-1", TaskPatch(status=TaskStatus.PENDING))

    done = repo.update_task("task-1", TaskPatch(status=TaskStatus.COMPLETED))
    assert done.completed_at is not None


def test_update_with_invalid_values_is_rejected(repo: TaskRepository) -> None:
    repo.create_task(TaskDraft(description="x"))

    with pytest.raises(ValidationError) as ei:
        repo.update_task("task-1", TaskPatch(description="   "))
    assert ei.value.field == "description"

    with pytest.raises(ValidationError) as ei:
        repo.update_task("task-1", TaskPatch(estimated_hours=0))
    assert ei.value.field == "estimated_hours"

    assert repo.require_task("task-1").description == "x"


def test_delete_returns_removed_task(repo: TaskRepository) -> None:
    repo.create_task(TaskDraft(description="a"))
    repo.create_task(TaskDraft(description="b"))

    removed = repo.delete_task("task-1")
    assert removed.description == "a"
    assert [t.id for t in repo.snapshot()] == ["task-2"]
    with pytest.raises(NotFoundError):
        repo.delete_task("task-1")


def test_list_filters_keep_insertion_order(repo: TaskRepository) -> None:
    for desc, prio in [("a", "high"), ("b", "low"), ("c", "high"), ("d", "high")]:
        repo.create_task(TaskDraft(description=desc, priority=TaskPriority(prio)))

    high = repo.list_tasks(TaskFilter(priority=TaskPriority.HIGH))
    assert [t.description for t in high] == ["a", "c", "d"]
    assert len(repo.list_tasks()) == 4


def test_updated_at_never_precedes_created_at(repo: TaskRepository, clock: FakeClock) -> None:
    repo.create_task(TaskDraft(description="x"))
    clock.advance(hours=-3)
    started = repo.start_task("task-1")
    assert started.updated_at == started.created_at == T0


def test_mutation_fails_fast_when_document_is_locked(repo: TaskRepository, store: JsonTaskStore) -> None:
    with store.write_lock(1.0):
        with pytest.raises(BusyError):
            repo.create_task(TaskDraft(description="x"))
    assert repo.snapshot() == []


def test_repositories_on_same_file_see_each_other(store: JsonTaskStore, clock: FakeClock) -> None:
    a = TaskRepository(store, clock=clock)
    b = TaskRepository(JsonTaskStore(store.path), clock=clock)

    created = a.create_task(TaskDraft(description="shared"))
    b.complete_task(created.id)
    assert a.require_task(created.id).status == TaskStatus.COMPLETED


def test_concurrent_writers_lose_no_updates(store: JsonTaskStore) -> None:
    writers, per_writer = 8, 15
    repo = TaskRepository(store, lock_timeout=30.0)
    read_errors: list[Exception] = []
    done = threading.Event()

    def write(n: int) -> None:
        for i in range(per_writer):
            repo.create_task(TaskDraft(description=f"writer {n} task {i}"))

    def read() -> None:
        while not done.is_set():
            try:
                repo.snapshot()
            except CorruptDataError as e:
                read_errors.append(e)

    reader = threading.Thread(target=read)
    reader.start()
    threads = [threading.Thread(target=write, args=(n,)) for n in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    done.set()
    reader.join()

    tasks = repo.snapshot()
    assert len(tasks) == writers * per_writer
    assert len({t.id for t in tasks}) == writers * per_writer
    assert read_errors == []
