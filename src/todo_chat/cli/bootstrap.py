# src/todo_chat/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/service/LLM/registry/hub/chat).
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..core.chat import ChatOrchestrator
from ..core.ports import CompletionProvider
from ..core.state import AppState
from ..llm.client import OpenRouterCompletionProvider
from ..llm.offline import OfflineCompletionProvider
from ..server.hub import SyncHub
from ..server.registry import ConnectionRegistry
from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def build_completion_provider(settings: Settings) -> CompletionProvider:
    """Real provider when an API key is configured, offline demo provider otherwise."""
    if settings.openrouter_api_key and settings.openrouter_api_key.strip():
        return OpenRouterCompletionProvider(settings)
    logger.warning("No LLM API key configured, using offline demo provider")
    return OfflineCompletionProvider()


def create_initial_state(
    *,
    settings: Settings | None = None,
    llm: CompletionProvider | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = TaskStore(settings.db_path)
    tasks = TaskService(store, title_max_chars=settings.title_max_chars)
    provider = llm if llm is not None else build_completion_provider(settings)
    registry = ConnectionRegistry()
    hub = SyncHub(registry, tasks, send_timeout=settings.broadcast_send_timeout_seconds)
    chat = ChatOrchestrator(
        store,
        tasks,
        provider,
        max_chars=settings.chat_max_chars,
        history_limit=settings.chat_history_limit,
    )

    return AppState(
        settings=settings,
        store=store,
        tasks=tasks,
        llm=provider,
        registry=registry,
        hub=hub,
        chat=chat,
    )
