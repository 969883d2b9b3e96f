# src/todo_chat/tasks/task_service.py

from __future__ import annotations

import logging

from ..core.errors import NotFoundError, ValidationError
from .task_models import Task
from .task_store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_TITLE_MAX_CHARS = 500


def _check_id(todo_id: object) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(todo_id, bool) or not isinstance(todo_id, int) or todo_id <= 0:
        raise ValidationError("id must be a positive integer")
    return todo_id


class TaskService:
    """
    Business rules for todo mutations.

    All writes go through here (WebSocket hub, REST routes, accepted chat suggestions),
    so validation is applied once regardless of the entry point.
    """

    def __init__(self, store: TaskStore, *, title_max_chars: int = DEFAULT_TITLE_MAX_CHARS) -> None:
        self._store = store
        self._title_max = int(title_max_chars)

    def _check_title(self, title: object) -> str:
        if not isinstance(title, str):
            raise ValidationError("title must be a string")
        clean = title.strip()
        if not clean:
            raise ValidationError("title must not be empty")
        if len(clean) > self._title_max:
            raise ValidationError(f"title must be at most {self._title_max} characters")
        return clean

    def list(self) -> list[Task]:
        return self._store.list_todos()

    def get(self, todo_id: int) -> Task:
        task = self._store.get_todo(_check_id(todo_id))
        if task is None:
            raise NotFoundError(f"Todo with id {todo_id} not found")
        return task

    def create(self, title: str) -> Task:
        task = self._store.create_todo(self._check_title(title))
        logger.info("Todo created id=%s", task.id)
        return task

    def update(self, todo_id: int, *, title: str | None = None, completed: bool | None = None) -> Task:
        _check_id(todo_id)
        clean_title = self._check_title(title) if title is not None else None
        if completed is not None and not isinstance(completed, bool):
            raise ValidationError("completed must be a boolean")

        task = self._store.update_todo(todo_id, title=clean_title, completed=completed)
        if task is None:
            raise NotFoundError(f"Todo with id {todo_id} not found")
        logger.info("Todo updated id=%s", task.id)
        return task

    def delete(self, todo_id: int) -> None:
        if not self._store.delete_todo(_check_id(todo_id)):
            raise NotFoundError(f"Todo with id {todo_id} not found")
        logger.info("Todo deleted id=%s", todo_id)
