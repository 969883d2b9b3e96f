# src/todo_chat/core/chat.py

"""
Streaming chat orchestration.

This module is transport-agnostic:
- the HTTP route hands over the raw user text,
- the orchestrator persists, builds context from the live todo list and streams the
  completion as a sequence of event dicts,
- the route decides how to frame them (SSE).

Key invariants:
- nothing is persisted before the input passed validation,
- the user message is persisted first,
- the assistant message and its suggestions are persisted together, and only after
  the full completion arrived (a failed or abandoned stream leaves no partial output),
- suggestion markers never reach the visible stream nor the stored assistant text.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from enum import StrEnum
from typing import Any

from ..tasks.task_models import ChatMessage, ChatRole
from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore
from .errors import UpstreamError, sanitize_error_message
from .persona import build_system_context
from .ports import ChatTurn, CompletionProvider
from .suggestions import MarkerStripper, extract_suggestions

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 4000
DEFAULT_HISTORY_LIMIT = 80

ChatEvent = dict[str, Any]


class ChatPhase(StrEnum):
    RECEIVING_INPUT = "receiving_input"
    PERSISTING_USER_MSG = "persisting_user_msg"
    BUILDING_CONTEXT = "building_context"
    STREAMING_COMPLETION = "streaming_completion"
    EXTRACTING_SUGGESTIONS = "extracting_suggestions"
    PERSISTING_OUTPUT = "persisting_output"
    DONE = "done"
    ERROR = "error"


def chunk_event(content: str) -> ChatEvent:
    return {"type": "chunk", "content": content}


def error_event(message: str) -> ChatEvent:
    return {"type": "error", "message": message}


def format_sse(event: ChatEvent) -> str:
    """One SSE frame: `data: <json>` terminated by a blank line."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


def _history_turns(messages: list[ChatMessage]) -> list[ChatTurn]:
    return [{"role": m.role.value, "content": m.content} for m in messages]


class ChatOrchestrator:
    def __init__(
        self,
        store: TaskStore,
        tasks: TaskService,
        provider: CompletionProvider,
        *,
        max_chars: int = DEFAULT_MAX_CHARS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._store = store
        self._tasks = tasks
        self._provider = provider
        self._max_chars = int(max_chars)
        self._history_limit = int(history_limit)

    def validate_input(self, content: object) -> str | None:
        """Return an error message for unacceptable input, or None."""
        if not isinstance(content, str) or not content.strip():
            return "Message content is required"
        if len(content.strip()) > self._max_chars:
            return f"Message must be at most {self._max_chars} characters"
        return None

    async def stream_reply(
        self,
        content: object,
        *,
        on_phase: Callable[[ChatPhase], None] | None = None,
    ) -> AsyncIterator[ChatEvent]:
        """
        Run one chat request and yield its events:
        chunk* then suggestions then done, or a single terminal error.

        Closing the generator early (client went away) stops the provider stream
        and persists nothing further.
        """

        def enter(phase: ChatPhase) -> None:
            logger.debug("Chat phase -> %s", phase)
            if on_phase is not None:
                on_phase(phase)

        enter(ChatPhase.RECEIVING_INPUT)
        problem = self.validate_input(content)
        if problem is not None:
            enter(ChatPhase.ERROR)
            yield error_event(problem)
            return
        user_text = str(content).strip()

        try:
            enter(ChatPhase.PERSISTING_USER_MSG)
            self._store.create_chat_message(ChatRole.USER, user_text)

            enter(ChatPhase.BUILDING_CONTEXT)
            system_context = build_system_context(self._tasks.list())
            history = _history_turns(self._store.list_chat_messages(limit=self._history_limit))
        except Exception as e:
            logger.exception("Chat request failed before streaming")
            enter(ChatPhase.ERROR)
            yield error_event(sanitize_error_message(str(e)))
            return

        enter(ChatPhase.STREAMING_COMPLETION)
        raw_parts: list[str] = []
        stripper = MarkerStripper()
        stream = self._provider.stream_completion(system_context, history)

        try:
            async for piece in stream:
                if not piece:
                    continue
                raw_parts.append(piece)
                visible = stripper.feed(piece)
                if visible:
                    yield chunk_event(visible)

            tail = stripper.flush()
            if tail:
                yield chunk_event(tail)
        except UpstreamError as e:
            logger.warning("Completion provider failed: %s", e)
            enter(ChatPhase.ERROR)
            yield error_event(sanitize_error_message(str(e)))
            return
        except Exception as e:
            logger.exception("Completion stream failed")
            enter(ChatPhase.ERROR)
            yield error_event(sanitize_error_message(str(e)))
            return
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        enter(ChatPhase.EXTRACTING_SUGGESTIONS)
        cleaned, titles = extract_suggestions("".join(raw_parts))

        try:
            enter(ChatPhase.PERSISTING_OUTPUT)
            message, suggestions = self._store.save_assistant_turn(cleaned.strip(), titles)
        except Exception as e:
            logger.exception("Failed to persist assistant turn")
            enter(ChatPhase.ERROR)
            yield error_event(sanitize_error_message(str(e)))
            return

        logger.info("Chat reply stored id=%s suggestions=%d", message.id, len(suggestions))
        yield {"type": "suggestions", "items": [s.to_wire() for s in suggestions]}
        enter(ChatPhase.DONE)
        yield {"type": "done"}
