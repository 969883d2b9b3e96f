# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from todo_chat.server.hub import SyncHub
from todo_chat.server.registry import ConnectionRegistry
from todo_chat.tasks.task_service import TaskService
from todo_chat.tasks.task_store import TaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="todo-chat-test",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        db_path=tmp_path / "todo-chat.sqlite3",
        # Sync
        allowed_origins=["http://localhost:5173", "http://localhost:3001"],
        broadcast_send_timeout_seconds=0.2,
        # Limits
        title_max_chars=500,
        chat_max_chars=4000,
        chat_history_limit=80,
        chat_rate_limit_requests=10,
        chat_rate_limit_window_seconds=60.0,
        # LLM (offline unless a test injects a provider)
        openrouter_api_key=None,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    return TaskStore(settings.db_path)


@pytest.fixture()
def tasks(store: TaskStore) -> TaskService:
    return TaskService(store)


@pytest.fixture()
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture()
def hub(registry: ConnectionRegistry, tasks: TaskService) -> SyncHub:
    return SyncHub(registry, tasks, send_timeout=0.2)
