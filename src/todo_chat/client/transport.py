# src/todo_chat/client/transport.py

"""
Reconnecting WebSocket transport for sync clients.

One supervisor task owns the socket:
    connecting -> connected -> (abnormal close) -> disconnected -> sleep(backoff) -> connecting ...
A normal close (code 1000) or disconnect() ends in `closed`, which is terminal.

Outbound messages are only sent while connected; otherwise send() drops them and
returns False (the full sync after reconnect makes queued writes unnecessary).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from pydantic import BaseModel
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from ..core.errors import MalformedInputError, SchemaViolationError, TransportError
from ..core.messages import dump_message, parse_server_message
from ..core.ports import ClientSocket

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000


class ConnectionStatus(StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


_TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING, ConnectionStatus.CLOSED}),
    ConnectionStatus.CONNECTING: frozenset(
        {ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED, ConnectionStatus.CLOSED}
    ),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.DISCONNECTED, ConnectionStatus.CLOSED}),
    ConnectionStatus.CLOSED: frozenset(),
}


class Backoff:
    """Exponential reconnect delay: initial, initial*factor, ... capped at maximum."""

    def __init__(self, initial: float = 1.0, maximum: float = 30.0, factor: float = 2.0) -> None:
        if initial <= 0 or maximum < initial or factor < 1:
            raise ValueError("invalid backoff parameters")
        self.initial = float(initial)
        self.maximum = float(maximum)
        self.factor = float(factor)
        self._current = self.initial

    @property
    def current(self) -> float:
        return self._current

    def next_delay(self) -> float:
        delay = self._current
        self._current = min(self._current * self.factor, self.maximum)
        return delay

    def reset(self) -> None:
        self._current = self.initial


ConnectFn = Callable[[str, str | None], Awaitable[ClientSocket]]
SleepFn = Callable[[float], Awaitable[None]]
MessageCallback = Callable[[BaseModel], None]
StatusCallback = Callable[[ConnectionStatus], None]


async def _default_connect(url: str, origin: str | None) -> ClientSocket:
    # Server heartbeat owns liveness; the library still answers its pings.
    return await ws_connect(url, origin=origin, ping_interval=None)  # type: ignore[arg-type]


class ReconnectingTransport:
    def __init__(
        self,
        url: str,
        *,
        on_message: MessageCallback | None = None,
        on_status: StatusCallback | None = None,
        origin: str | None = None,
        backoff: Backoff | None = None,
        connect: ConnectFn | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._url = url
        self._origin = origin
        self._on_message = on_message
        self._on_status = on_status
        self._backoff = backoff or Backoff()
        self._connect = connect or _default_connect
        self._sleep = sleep

        self._status = ConnectionStatus.DISCONNECTED
        self._ws: ClientSocket | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def backoff(self) -> Backoff:
        return self._backoff

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        if status not in _TRANSITIONS[self._status]:
            raise TransportError(f"illegal transition {self._status} -> {status}")
        logger.debug("Transport %s -> %s", self._status, status)
        self._status = status
        if self._on_status is not None:
            self._on_status(status)

    def start(self) -> asyncio.Task[None]:
        if self._task is not None or self._status == ConnectionStatus.CLOSED:
            raise TransportError("transport already started")
        self._task = asyncio.create_task(self._run(), name="ws-transport")
        return self._task

    async def send(self, msg: BaseModel) -> bool:
        ws = self._ws
        if self._status != ConnectionStatus.CONNECTED or ws is None:
            logger.debug("Transport not connected, dropping %s", getattr(msg, "type", msg))
            return False
        try:
            await ws.send(dump_message(msg))
            return True
        except Exception as e:
            logger.info("Transport send failed (%s)", e.__class__.__name__)
            return False

    async def disconnect(self) -> None:
        """Close for good. Idempotent; no reconnect timer survives it."""
        self._closing = True

        ws = self._ws
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close(NORMAL_CLOSURE, "client disconnect")

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._ws = None
        self._set_status(ConnectionStatus.CLOSED)

    # ---- supervisor ----

    async def _run(self) -> None:
        while not self._closing:
            self._set_status(ConnectionStatus.CONNECTING)
            try:
                ws = await self._connect(self._url, self._origin)
            except Exception as e:
                logger.info("Connect to %s failed (%s)", self._url, e.__class__.__name__)
                await self._wait_before_retry()
                continue

            if self._closing:
                await ws.close(NORMAL_CLOSURE, "client disconnect")
                break

            self._ws = ws
            self._backoff.reset()
            self._set_status(ConnectionStatus.CONNECTED)
            logger.info("Connected to %s", self._url)

            code = await self._read_loop(ws)
            self._ws = None

            if self._closing or code == NORMAL_CLOSURE:
                logger.info("Connection closed normally")
                break

            logger.info("Connection lost (code=%s)", code)
            await self._wait_before_retry()

        self._set_status(ConnectionStatus.CLOSED)

    async def _wait_before_retry(self) -> None:
        self._set_status(ConnectionStatus.DISCONNECTED)
        delay = self._backoff.next_delay()
        logger.info("Reconnecting in %.1fs", delay)
        await self._sleep(delay)

    async def _read_loop(self, ws: ClientSocket) -> int | None:
        """Dispatch frames until the socket closes. Returns the close code if known."""
        while True:
            try:
                raw = await ws.recv()
            except ConnectionClosed as e:
                return e.rcvd.code if e.rcvd is not None else None
            except OSError as e:
                logger.info("Socket error (%s)", e.__class__.__name__)
                return None

            try:
                msg = parse_server_message(raw)
            except (MalformedInputError, SchemaViolationError) as e:
                logger.warning("Ignoring malformed server frame: %s", e)
                continue

            if self._on_message is not None:
                try:
                    self._on_message(msg)
                except Exception:
                    logger.exception("Message handler failed for %s", msg.type)
