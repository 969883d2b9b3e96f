# src/todo_chat/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The hub, registry and chat orchestrator depend on Protocols instead of concrete
implementations. This keeps the socket library, the LLM provider and the store
swappable and makes testing easier.
"""

from collections.abc import AsyncIterator, Awaitable
from typing import Any, Protocol

ChatTurn = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class CompletionProvider(Protocol):
    """Streaming completion endpoint. Fails with UpstreamError."""

    def stream_completion(self, system_context: str, history: list[ChatTurn]) -> AsyncIterator[str]: ...


class Peer(Protocol):
    """
    One live socket as seen by the registry.

    ping() sends a ping frame and returns an awaitable that resolves when the
    matching pong arrives. terminate() drops the connection without a close handshake.
    """

    @property
    def remote(self) -> str: ...

    async def send(self, text: str) -> None: ...
    async def ping(self) -> Awaitable[Any]: ...
    def terminate(self) -> None: ...


class ClientSocket(Protocol):
    """Client-side connection used by the reconnecting transport."""

    async def send(self, text: str) -> None: ...
    async def recv(self) -> str | bytes: ...
    async def close(self, code: int = 1000, reason: str = "") -> None: ...
