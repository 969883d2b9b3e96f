# tests/test_task_service.py

from __future__ import annotations

import pytest

from todo_chat.core.errors import NotFoundError, ValidationError
from todo_chat.tasks.task_service import TaskService
from todo_chat.tasks.task_store import TaskStore


def test_create_trims_title(tasks: TaskService) -> None:
    task = tasks.create("  Buy milk ")
    assert task.title == "Buy milk"
    assert tasks.get(task.id) == task


@pytest.mark.parametrize("title", ["", "   ", "x" * 501, None, 5])
def test_create_rejects_bad_titles(tasks: TaskService, store: TaskStore, title) -> None:
    with pytest.raises(ValidationError):
        tasks.create(title)  # type: ignore[arg-type]
    assert store.count_todos() == 0


def test_title_limit_is_configurable(store: TaskStore) -> None:
    service = TaskService(store, title_max_chars=5)
    service.create("12345")
    with pytest.raises(ValidationError, match="at most 5"):
        service.create("123456")


def test_update_missing_raises_not_found(tasks: TaskService) -> None:
    with pytest.raises(NotFoundError, match="Todo with id 42 not found"):
        tasks.update(42, completed=True)


def test_update_validates_before_touching_store(tasks: TaskService) -> None:
    task = tasks.create("Keep me")
    with pytest.raises(ValidationError):
        tasks.update(task.id, title="  ")
    with pytest.raises(ValidationError):
        tasks.update(task.id, completed="yes")  # type: ignore[arg-type]
    assert tasks.get(task.id).title == "Keep me"


@pytest.mark.parametrize("bad_id", [0, -1, True, 1.0, "1"])
def test_ids_must_be_positive_ints(tasks: TaskService, bad_id) -> None:
    with pytest.raises(ValidationError):
        tasks.delete(bad_id)  # type: ignore[arg-type]


def test_delete(tasks: TaskService) -> None:
    task = tasks.create("Gone soon")
    tasks.delete(task.id)
    assert tasks.list() == []
    with pytest.raises(NotFoundError):
        tasks.delete(task.id)
