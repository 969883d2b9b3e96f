# src/todo_chat/server/registry.py

"""
Live-connection registry and heartbeat.

Liveness protocol (one flag per connection):
- every tick, a connection that answered the previous ping is marked unresponsive
  and pinged again; the pong flips it back to alive,
- a connection still unresponsive at the next tick is terminated and removed.

A dead peer is therefore dropped within about one heartbeat interval.
The registry is touched only from the event loop, so no lock is needed.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import Peer

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 30.0

_ids = itertools.count(1)


@dataclass(eq=False)
class ConnectionHandle:
    peer: Peer
    id: int = field(default_factory=lambda: next(_ids))
    alive: bool = True
    last_seen_alive: float = field(default_factory=time.monotonic)
    _pong: asyncio.Future[Any] | None = field(default=None, repr=False)

    def mark_alive(self) -> None:
        self.alive = True
        self.last_seen_alive = time.monotonic()


class ConnectionRegistry:
    def __init__(self) -> None:
        self._handles: dict[int, ConnectionHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[ConnectionHandle]:
        return iter(self.handles())

    def __contains__(self, handle: object) -> bool:
        return isinstance(handle, ConnectionHandle) and self._handles.get(handle.id) is handle

    def handles(self) -> list[ConnectionHandle]:
        """Snapshot, safe to iterate while connections come and go."""
        return list(self._handles.values())

    def register(self, peer: Peer) -> ConnectionHandle:
        handle = ConnectionHandle(peer=peer)
        self._handles[handle.id] = handle
        logger.info("Connection %s registered from %s (total=%d)", handle.id, peer.remote, len(self))
        return handle

    def unregister(self, handle: ConnectionHandle) -> bool:
        """Remove the handle. Returns False when it was already gone."""
        if self._handles.pop(handle.id, None) is None:
            return False
        if handle._pong is not None and not handle._pong.done():
            handle._pong.cancel()
        handle._pong = None
        logger.info("Connection %s unregistered (total=%d)", handle.id, len(self))
        return True

    def drop(self, handle: ConnectionHandle) -> None:
        """Unregister and terminate without waiting for a close handshake."""
        self.unregister(handle)
        try:
            handle.peer.terminate()
        except Exception:
            logger.debug("Terminate failed for connection %s", handle.id, exc_info=True)

    async def sweep(self) -> None:
        """One heartbeat tick."""
        for handle in self.handles():
            if not handle.alive:
                logger.warning(
                    "Connection %s missed a heartbeat (last seen %.1fs ago), terminating",
                    handle.id,
                    time.monotonic() - handle.last_seen_alive,
                )
                self.drop(handle)
                continue

            handle.alive = False
            await self._ping(handle)

    async def _ping(self, handle: ConnectionHandle) -> None:
        try:
            waiter = await handle.peer.ping()
        except Exception:
            # Socket already gone: stays unresponsive, the next tick removes it.
            logger.debug("Ping failed for connection %s", handle.id, exc_info=True)
            return

        fut = asyncio.ensure_future(waiter)

        def _on_pong(f: asyncio.Future[Any]) -> None:
            if f.cancelled() or f.exception() is not None:
                return
            handle.mark_alive()

        fut.add_done_callback(_on_pong)
        handle._pong = fut


async def run_heartbeat(
    registry: ConnectionRegistry, interval_seconds: float = DEFAULT_HEARTBEAT_INTERVAL
) -> None:
    """Sweep the registry every interval until cancelled."""
    logger.info("Heartbeat started (interval=%.1fs)", interval_seconds)
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            await registry.sweep()
    except asyncio.CancelledError:
        logger.info("Heartbeat stopped")
        raise
