# src/todo_chat/client/chat_stream.py

"""
Client side of the streaming chat.

parse_sse_lines() turns an SSE line stream into event dicts, ChatStreamConsumer folds
them into a ChatState, and ChatClient drives both over httpx.

Events: chunk{content} | suggestions{items} | done | error{message}.
"""

from __future__ import annotations

import itertools
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

logger = logging.getLogger(__name__)

ChatEvent = dict[str, Any]

STREAM_ENDED_MESSAGE = "Response ended unexpectedly"
SEND_FAILED_MESSAGE = "Failed to send message"


async def parse_sse_lines(lines: AsyncIterable[str]) -> AsyncIterator[ChatEvent]:
    """
    Yield one event per `data:` line. Comments, blank lines and other fields are skipped;
    a data line that is not a JSON object becomes an error event.
    """
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line or line.startswith(":") or not line.startswith("data:"):
            continue

        payload = line[5:]
        if payload.startswith(" "):
            payload = payload[1:]

        try:
            event = json.loads(payload)
        except ValueError:
            logger.warning("Malformed SSE payload: %r", payload[:200])
            yield {"type": "error", "message": "Malformed event from server"}
            continue

        if isinstance(event, dict) and isinstance(event.get("type"), str):
            yield event
        else:
            yield {"type": "error", "message": "Malformed event from server"}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ChatState:
    messages: list[dict[str, Any]] = field(default_factory=list)
    streaming_content: str = ""
    suggestions: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    is_streaming: bool = False


class ChatStreamConsumer:
    """Folds one request's events into ChatState, the way a chat panel renders them."""

    def __init__(self, state: ChatState | None = None) -> None:
        self.state = state or ChatState()
        self._local_ids = itertools.count(-1, -1)

    def begin(self, content: str) -> None:
        s = self.state
        s.messages.append(
            {"id": next(self._local_ids), "role": "user", "content": content, "createdAt": _now_iso()}
        )
        s.streaming_content = ""
        s.suggestions = []
        s.error = None
        s.is_streaming = True

    def _end_turn(self, *, error: str | None = None) -> None:
        s = self.state
        msg: dict[str, Any] = {
            "id": next(self._local_ids),
            "role": "assistant",
            "content": s.streaming_content,
            "createdAt": _now_iso(),
        }
        if error is not None:
            # Keep what was already rendered, flagged as cut short.
            msg["error"] = error
            s.error = error
        s.messages.append(msg)
        s.streaming_content = ""
        s.is_streaming = False

    def feed(self, event: ChatEvent) -> None:
        s = self.state
        if not s.is_streaming:
            return

        etype = event.get("type")
        if etype == "chunk":
            s.streaming_content += str(event.get("content") or "")
        elif etype == "suggestions":
            items = event.get("items")
            s.suggestions = list(items) if isinstance(items, list) else []
        elif etype == "done":
            self._end_turn()
        elif etype == "error":
            self._end_turn(error=str(event.get("message") or "An error occurred"))

    def finish(self) -> None:
        """Stream is over; a turn still open never got its done event."""
        if self.state.is_streaming:
            self._end_turn(error=STREAM_ENDED_MESSAGE)

    def mark_accepted(self, suggestion_id: int) -> None:
        self.state.suggestions = [
            {**item, "accepted": True} if item.get("id") == suggestion_id else item
            for item in self.state.suggestions
        ]


def _error_message_from(resp: httpx.Response) -> str:
    try:
        body = resp.json()
        return str(body["error"]["message"])
    except (ValueError, KeyError, TypeError):
        return f"{SEND_FAILED_MESSAGE} (HTTP {resp.status_code})"


class ChatClient:
    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        consumer: ChatStreamConsumer | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.consumer = consumer or ChatStreamConsumer()

    @property
    def state(self) -> ChatState:
        return self.consumer.state

    async def aclose(self) -> None:
        await self._client.aclose()

    async def history(self) -> list[dict[str, Any]]:
        resp = await self._client.get("/api/chat")
        resp.raise_for_status()
        messages = resp.json()
        self.state.messages = list(messages)
        return messages

    async def clear_history(self) -> None:
        resp = await self._client.delete("/api/chat")
        resp.raise_for_status()
        self.state.messages = []
        self.state.suggestions = []

    async def accept_suggestion(self, suggestion_id: int) -> dict[str, Any]:
        resp = await self._client.post(f"/api/chat/suggestions/{int(suggestion_id)}/accept")
        resp.raise_for_status()
        self.consumer.mark_accepted(int(suggestion_id))
        return resp.json()

    async def send_message(self, content: str) -> AsyncIterator[ChatEvent]:
        """POST the message and yield every event as it arrives (already folded into state)."""
        self.consumer.begin(content)
        try:
            async with self._client.stream(
                "POST", "/api/chat/message", json={"content": content}
            ) as resp:
                if resp.status_code != 200:
                    await resp.aread()
                    event = {"type": "error", "message": _error_message_from(resp)}
                    self.consumer.feed(event)
                    yield event
                    return

                async for event in parse_sse_lines(resp.aiter_lines()):
                    self.consumer.feed(event)
                    yield event
        except httpx.HTTPError as e:
            logger.info("Chat request failed (%s)", e.__class__.__name__)
            event = {"type": "error", "message": SEND_FAILED_MESSAGE}
            self.consumer.feed(event)
            yield event
        finally:
            self.consumer.finish()
