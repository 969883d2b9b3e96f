# src/todo_chat/server/hub.py

"""
Sync broadcast hub.

Turns validated client mutations into store writes and fans the authoritative
result out to every registered connection, the sender included.

Rules:
- a new connection first receives the full list (todo:sync),
- bad frames and failed mutations are answered to the sender only,
- todo:created carries the sender's tempId to the sender and nobody else,
- a peer that cannot take a broadcast within the send timeout is dropped.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel

from ..core import messages as m
from ..core.errors import (
    MalformedInputError,
    NotFoundError,
    SchemaViolationError,
    ValidationError,
)
from ..tasks.task_models import Task
from ..tasks.task_service import TaskService
from .registry import ConnectionHandle, ConnectionRegistry

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


class SyncHub:
    SEND_TIMEOUT = 1.0  # Seconds before dropping slow consumer

    def __init__(
        self,
        registry: ConnectionRegistry,
        tasks: TaskService,
        *,
        send_timeout: float = SEND_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._tasks = tasks
        self._send_timeout = float(send_timeout)

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    # ---- delivery ----

    async def _deliver(self, handle: ConnectionHandle, text: str) -> bool:
        try:
            await asyncio.wait_for(handle.peer.send(text), timeout=self._send_timeout)
            return True
        except TimeoutError:
            logger.warning("Connection %s too slow, dropping", handle.id)
        except Exception as e:
            logger.info("Connection %s send failed (%s), dropping", handle.id, e.__class__.__name__)
        self._registry.drop(handle)
        return False

    async def send_to(self, handle: ConnectionHandle, msg: BaseModel) -> bool:
        return await self._deliver(handle, m.dump_message(msg))

    async def broadcast(
        self,
        msg: BaseModel,
        *,
        sender: ConnectionHandle | None = None,
        sender_msg: BaseModel | None = None,
    ) -> int:
        """
        Send msg to every registered connection concurrently.
        When both sender and sender_msg are given, the sender gets sender_msg instead.
        Returns the number of successful deliveries.
        """
        text = m.dump_message(msg)
        sender_text = m.dump_message(sender_msg) if sender_msg is not None else text

        targets = self._registry.handles()
        if not targets:
            return 0

        results = await asyncio.gather(
            *(self._deliver(h, sender_text if h is sender else text) for h in targets)
        )
        return sum(1 for ok in results if ok)

    # ---- connection lifecycle ----

    async def on_connect(self, handle: ConnectionHandle) -> None:
        try:
            todos = self._tasks.list()
        except Exception:
            logger.exception("Failed to load todos for initial sync")
            await self.send_to(handle, m.error_message(INTERNAL_ERROR_MESSAGE))
            return
        await self.send_to(handle, m.sync_message(todos))

    # ---- mutations (shared with the REST routes) ----

    async def apply_create(
        self,
        title: str,
        *,
        sender: ConnectionHandle | None = None,
        temp_id: str | None = None,
    ) -> Task:
        task = self._tasks.create(title)
        sender_msg = m.created_message(task, temp_id) if sender is not None and temp_id else None
        await self.broadcast(m.created_message(task), sender=sender, sender_msg=sender_msg)
        return task

    async def apply_update(
        self,
        todo_id: int,
        *,
        title: str | None = None,
        completed: bool | None = None,
    ) -> Task:
        task = self._tasks.update(todo_id, title=title, completed=completed)
        await self.broadcast(m.updated_message(task))
        return task

    async def apply_delete(self, todo_id: int) -> None:
        self._tasks.delete(todo_id)
        await self.broadcast(m.deleted_message(todo_id))

    # ---- inbound frames ----

    async def handle_message(self, handle: ConnectionHandle, raw: str | bytes) -> None:
        """Process one frame. Never raises; the connection stays open whatever happens."""
        try:
            msg = m.parse_client_message(raw)
        except MalformedInputError as e:
            await self.send_to(handle, m.error_message(str(e)))
            return
        except SchemaViolationError as e:
            logger.debug("Schema violation from connection %s: %s", handle.id, e)
            await self.send_to(handle, m.error_message(str(e), e.original_type))
            return

        try:
            if isinstance(msg, m.TodoCreate):
                await self.apply_create(msg.data.title, sender=handle, temp_id=msg.temp_id)
            elif isinstance(msg, m.TodoUpdate):
                await self.apply_update(
                    msg.data.id, title=msg.data.title, completed=msg.data.completed
                )
            elif isinstance(msg, m.TodoDelete):
                await self.apply_delete(msg.data.id)
        except (NotFoundError, ValidationError) as e:
            await self.send_to(handle, m.error_message(str(e), msg.type))
        except Exception:
            logger.exception("Failed to handle %s from connection %s", msg.type, handle.id)
            await self.send_to(handle, m.error_message(INTERNAL_ERROR_MESSAGE, msg.type))
