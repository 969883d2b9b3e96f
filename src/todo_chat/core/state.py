# src/todo_chat/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore
from .chat import ChatOrchestrator
from .ports import CompletionProvider

if TYPE_CHECKING:
    from ..config import Settings
    from ..server.hub import SyncHub
    from ..server.registry import ConnectionRegistry


@dataclass
class AppState:
    """Everything the server needs, wired once at the composition root."""

    settings: Settings

    store: TaskStore
    tasks: TaskService
    llm: CompletionProvider
    registry: ConnectionRegistry
    hub: SyncHub
    chat: ChatOrchestrator
