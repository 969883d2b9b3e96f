# src/todo_chat/server/http_app.py

"""
HTTP surface: REST todos, chat history, SSE chat and suggestion acceptance.

Every todo mutation goes through the SyncHub, so WebSocket peers see REST writes
the same way they see each other's.

Errors share one envelope: {"error": {"code": ..., "message": ...}}.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections import deque
from collections.abc import AsyncIterator, Callable
from typing import Any

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict

from ..core.chat import format_sse
from ..core.errors import NotFoundError, ValidationError, sanitize_error_message
from ..core.messages import created_message
from ..core.state import AppState

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."


def _to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    """Base model with camelCase JSON serialization."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,  # Allow both snake_case and camelCase in input
    )


class TodoCreateRequest(CamelModel):
    # Type checks happen in TaskService so REST and WebSocket report the same messages.
    title: Any = None


class TodoUpdateRequest(CamelModel):
    title: Any = None
    completed: Any = None


class ChatMessageRequest(CamelModel):
    content: Any = None


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"code": code, "message": message}})


def _parse_id(raw: str) -> int:
    if not raw.isdigit() or int(raw) <= 0:
        raise ValidationError("Invalid todo id: must be a positive integer")
    return int(raw)


class SlidingWindowRateLimiter:
    """At most `limit` hits per `window_seconds` per key."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = int(limit)
        self._window = float(window_seconds)
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def hit(self, key: str) -> bool:
        """Record one request. Returns False when the key is over the limit."""
        now = self._clock()
        self._evict(now, skip=key)
        q = self._hits.setdefault(key, deque())
        while q and q[0] <= now - self._window:
            q.popleft()
        if len(q) >= self._limit:
            return False
        q.append(now)
        return True

    def _evict(self, now: float, skip: str) -> None:
        # Sweep at most once per window; keys whose newest hit left the window hold no state.
        if now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        cutoff = now - self._window
        stale = [k for k, q in self._hits.items() if k != skip and (not q or q[-1] <= cutoff)]
        for k in stale:
            del self._hits[k]

    def __len__(self) -> int:
        return len(self._hits)


class RateLimitExceeded(Exception):
    pass


def create_app(state: AppState) -> FastAPI:
    """Create the FastAPI application around an already wired AppState."""
    settings = state.settings

    app = FastAPI(title=settings.app_name, version="0.1.0")
    app.state.app_state = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = SlidingWindowRateLimiter(
        settings.chat_rate_limit_requests, settings.chat_rate_limit_window_seconds
    )

    def chat_rate_limit(request: Request) -> None:
        host = request.client.host if request.client else "unknown"
        if not limiter.hit(host):
            logger.info("Chat rate limit exceeded for %s", host)
            raise RateLimitExceeded()

    _register_error_handlers(app)
    _register_todo_routes(app, state)
    _register_chat_routes(app, state, Depends(chat_rate_limit))

    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return error_response(400, "VALIDATION_ERROR", str(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        issues = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', 'invalid value')}"
            for e in exc.errors()
        )
        return error_response(400, "VALIDATION_ERROR", issues or "Invalid request")

    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return error_response(404, "NOT_FOUND", str(exc))

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(_: Request, __: RateLimitExceeded) -> JSONResponse:
        return error_response(429, "RATE_LIMIT_EXCEEDED", RATE_LIMIT_MESSAGE)

    @app.exception_handler(Exception)
    async def _internal(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, "INTERNAL_ERROR", sanitize_error_message(str(exc)))


def _register_todo_routes(app: FastAPI, state: AppState) -> None:
    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/todos")
    async def list_todos() -> list[dict[str, Any]]:
        return [t.to_wire() for t in state.tasks.list()]

    @app.post("/api/todos", status_code=201)
    async def create_todo(body: TodoCreateRequest) -> dict[str, Any]:
        task = await state.hub.apply_create(body.title if body.title is not None else "")
        return task.to_wire()

    @app.patch("/api/todos/{todo_id}")
    async def update_todo(todo_id: str, body: TodoUpdateRequest) -> dict[str, Any]:
        task = await state.hub.apply_update(
            _parse_id(todo_id), title=body.title, completed=body.completed
        )
        return task.to_wire()

    @app.delete("/api/todos/{todo_id}", status_code=204)
    async def delete_todo(todo_id: str) -> Response:
        await state.hub.apply_delete(_parse_id(todo_id))
        return Response(status_code=204)


def _register_chat_routes(app: FastAPI, state: AppState, rate_limit: Any) -> None:
    @app.get("/api/chat")
    async def chat_history() -> list[dict[str, Any]]:
        return [msg.to_wire() for msg in state.store.list_chat_messages()]

    @app.delete("/api/chat", status_code=204)
    async def clear_chat() -> Response:
        state.store.clear_chat_history()
        logger.info("Chat history cleared")
        return Response(status_code=204)

    @app.post("/api/chat/message", dependencies=[rate_limit])
    async def chat_message(body: ChatMessageRequest) -> StreamingResponse:
        async def event_stream() -> AsyncIterator[str]:
            async with contextlib.aclosing(state.chat.stream_reply(body.content)) as events:
                async for event in events:
                    yield format_sse(event)

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/api/chat/suggestions/{suggestion_id}/accept")
    async def accept_suggestion(suggestion_id: str) -> dict[str, Any]:
        if not suggestion_id.isdigit():
            raise ValidationError("Invalid suggestion id: must be a positive integer")
        suggestion = state.store.get_suggestion(int(suggestion_id))
        if suggestion is None:
            raise NotFoundError(f"Suggestion with id {suggestion_id} not found")

        if suggestion.accepted:
            return {"suggestion": suggestion.to_wire(), "todo": None}

        # Create + mark without suspending in between, so a double accept cannot create twice.
        task = state.tasks.create(suggestion.title)
        accepted = state.store.accept_suggestion(suggestion.id) or suggestion
        await state.hub.broadcast(created_message(task))
        logger.info("Suggestion %s accepted as todo %s", suggestion.id, task.id)
        return {"suggestion": accepted.to_wire(), "todo": task.to_wire()}
