# src/todo_chat/server/ws_endpoint.py

"""
WebSocket sync endpoint (websockets asyncio server).

Handshake gate (before any registry work):
- wrong path -> 404,
- Origin header missing or not allow-listed -> 403.

Per connection: register -> initial sync -> in-order read loop -> unregister.
The library keepalive is disabled; run_heartbeat() owns liveness.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from http import HTTPStatus
from typing import Any

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from ..core import messages as m
from .hub import SyncHub
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class WebsocketPeer:
    """Adapts a websockets ServerConnection to the Peer protocol."""

    def __init__(self, ws: ServerConnection) -> None:
        self._ws = ws

    @property
    def remote(self) -> str:
        addr = self._ws.remote_address
        if isinstance(addr, tuple) and len(addr) >= 2:
            return f"{addr[0]}:{addr[1]}"
        return str(addr)

    async def send(self, text: str) -> None:
        await self._ws.send(text)

    async def ping(self) -> Awaitable[Any]:
        return await self._ws.ping()

    def terminate(self) -> None:
        self._ws.transport.abort()


def make_process_request(
    path: str, allowed_origins: Iterable[str]
) -> Callable[[ServerConnection, Request], Response | None]:
    allowed = frozenset(allowed_origins)

    def process_request(connection: ServerConnection, request: Request) -> Response | None:
        req_path = request.path.split("?", 1)[0]
        if req_path != path:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

        origin = request.headers.get("Origin")
        if origin not in allowed:
            logger.warning("Rejected WebSocket handshake from origin=%r", origin)
            return connection.respond(HTTPStatus.FORBIDDEN, "Forbidden\n")
        return None

    return process_request


def make_handler(
    registry: ConnectionRegistry, hub: SyncHub
) -> Callable[[ServerConnection], Awaitable[None]]:
    async def handler(ws: ServerConnection) -> None:
        handle = registry.register(WebsocketPeer(ws))
        try:
            await hub.on_connect(handle)
            async for raw in ws:
                if isinstance(raw, bytes):
                    try:
                        raw = raw.decode("utf-8")
                    except UnicodeDecodeError:
                        await hub.send_to(handle, m.error_message("Invalid JSON"))
                        continue
                await hub.handle_message(handle, raw)
        except ConnectionClosed as e:
            logger.debug("Connection %s closed: %s", handle.id, e)
        finally:
            registry.unregister(handle)

    return handler


async def serve_sync(
    registry: ConnectionRegistry,
    hub: SyncHub,
    *,
    host: str,
    port: int,
    path: str = "/ws",
    allowed_origins: Iterable[str],
) -> Server:
    """Start listening and return the server (caller owns close / wait_closed)."""
    server = await serve(
        make_handler(registry, hub),
        host,
        port,
        process_request=make_process_request(path, allowed_origins),
        ping_interval=None,
    )
    logger.info("WebSocket sync listening on ws://%s:%s%s", host, port, path)
    return server
