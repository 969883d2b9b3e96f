# src/todo_chat/client/reconciler.py

"""
Optimistic todo list for a sync client.

Local edits show up immediately and are sent to the server; server broadcasts are
authoritative and always win (last write wins).

Creates are tracked by tempId:
- the speculative row gets a negative id so it can never collide with a server id,
- the echo carrying the same tempId replaces it in place,
- edits and deletes made before the echo are recorded on the pending create and
  replayed against the real id once it is known,
- a todo:sync discards every unconfirmed create and its recorded edits (no replay).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

from pydantic import BaseModel, StrictBool, TypeAdapter

from ..core import messages as m
from ..tasks.task_models import format_ts

logger = logging.getLogger(__name__)

SendFn = Callable[[BaseModel], Awaitable[bool]]


@dataclass(frozen=True, slots=True)
class LocalTodo:
    id: int
    title: str
    completed: bool
    created_at: str
    updated_at: str

    @property
    def speculative(self) -> bool:
        return self.id < 0

    @classmethod
    def from_wire(cls, todo: m.Todo) -> LocalTodo:
        return cls(
            id=todo.id,
            title=todo.title,
            completed=todo.completed,
            created_at=todo.created_at,
            updated_at=todo.updated_at,
        )


_TITLE: TypeAdapter[str] = TypeAdapter(m.Title)
_COMPLETED: TypeAdapter[bool] = TypeAdapter(StrictBool)


@dataclass(slots=True)
class PendingCreate:
    temp_id: str
    todo: LocalTodo
    # Intents recorded before the server assigned an id.
    title: str | None = None
    completed: bool | None = None
    deleted: bool = False

    @property
    def has_edits(self) -> bool:
        return self.title is not None or self.completed is not None


@dataclass(frozen=True, slots=True)
class ServerError:
    message: str
    original_type: str | None = None


class TodoReconciler:
    def __init__(self, send: SendFn) -> None:
        self._send = send
        self._todos: list[LocalTodo] = []
        self._pending: dict[str, PendingCreate] = {}
        self._next_local_id = itertools.count(-1, -1)
        self._replays: set[asyncio.Future[bool]] = set()
        self.last_error: ServerError | None = None

    @property
    def todos(self) -> list[LocalTodo]:
        return list(self._todos)

    @property
    def pending(self) -> dict[str, PendingCreate]:
        return dict(self._pending)

    def _index_of(self, todo_id: int) -> int | None:
        for i, t in enumerate(self._todos):
            if t.id == todo_id:
                return i
        return None

    def _pending_for(self, todo_id: int) -> PendingCreate | None:
        for p in self._pending.values():
            if p.todo.id == todo_id:
                return p
        return None

    def get(self, todo_id: int) -> LocalTodo | None:
        i = self._index_of(todo_id)
        return self._todos[i] if i is not None else None

    # ---- local intents ----

    async def create(self, title: str) -> str:
        """Show the todo right away and ask the server to create it. Returns the tempId."""
        temp_id = uuid.uuid4().hex
        # Built first so an invalid title fails before any local change.
        outbound = m.create_message(title, temp_id)
        now = format_ts(time.time())
        todo = LocalTodo(
            id=next(self._next_local_id),
            title=outbound.data.title,
            completed=False,
            created_at=now,
            updated_at=now,
        )
        self._todos.insert(0, todo)
        self._pending[temp_id] = PendingCreate(temp_id=temp_id, todo=todo)

        await self._send(outbound)
        return temp_id

    async def update(
        self, todo_id: int, *, title: str | None = None, completed: bool | None = None
    ) -> bool:
        i = self._index_of(todo_id)
        if i is None:
            return False

        current = self._todos[i]
        if current.speculative:
            clean_title = _TITLE.validate_python(title) if title is not None else None
            if completed is not None:
                _COMPLETED.validate_python(completed)
            pending = self._pending_for(todo_id)
            if pending is not None:
                if clean_title is not None:
                    pending.title = clean_title
                if completed is not None:
                    pending.completed = completed
            self._todos[i] = replace(
                current,
                title=clean_title if clean_title is not None else current.title,
                completed=completed if completed is not None else current.completed,
            )
            return True

        outbound = m.TodoUpdate(data=m.UpdateData(id=todo_id, title=title, completed=completed))
        self._todos[i] = replace(
            current,
            title=outbound.data.title if outbound.data.title is not None else current.title,
            completed=completed if completed is not None else current.completed,
        )
        await self._send(outbound)
        return True

    async def toggle(self, todo_id: int) -> bool:
        current = self.get(todo_id)
        if current is None:
            return False
        return await self.update(todo_id, completed=not current.completed)

    async def delete(self, todo_id: int) -> bool:
        i = self._index_of(todo_id)
        if i is None:
            return False
        removed = self._todos.pop(i)
        if removed.speculative:
            pending = self._pending_for(todo_id)
            if pending is not None:
                pending.deleted = True
            return True
        await self._send(m.TodoDelete(data=m.IdData(id=todo_id)))
        return True

    # ---- server messages ----

    def apply(self, msg: BaseModel) -> None:
        if isinstance(msg, m.TodoCreated):
            self._apply_created(msg)
        elif isinstance(msg, m.TodoUpdated):
            self._upsert(LocalTodo.from_wire(msg.data))
        elif isinstance(msg, m.TodoDeleted):
            i = self._index_of(msg.data.id)
            if i is not None:
                del self._todos[i]
        elif isinstance(msg, m.TodoSync):
            dropped = len(self._pending)
            self._todos = [LocalTodo.from_wire(t) for t in msg.data]
            self._pending.clear()
            if dropped:
                logger.info("Full sync discarded %d unconfirmed create(s)", dropped)
        elif isinstance(msg, m.ErrorMessage):
            self.last_error = ServerError(msg.data.message, msg.data.original_type)
            logger.warning("Server error (%s): %s", msg.data.original_type, msg.data.message)

    def _apply_created(self, msg: m.TodoCreated) -> None:
        todo = LocalTodo.from_wire(msg.data)
        pending = self._pending.pop(msg.temp_id, None) if msg.temp_id else None

        if pending is None:
            if self._index_of(todo.id) is None:
                self._todos.insert(0, todo)
            return

        if pending.deleted:
            # Deleted while unconfirmed: the row stays gone and the server forgets it too.
            self._todos = [t for t in self._todos if t.id != todo.id]
            self._replay(m.TodoDelete(data=m.IdData(id=todo.id)))
            return

        if pending.has_edits:
            todo = replace(
                todo,
                title=pending.title if pending.title is not None else todo.title,
                completed=pending.completed if pending.completed is not None else todo.completed,
            )
            self._replay(
                m.TodoUpdate(
                    data=m.UpdateData(id=todo.id, title=pending.title, completed=pending.completed)
                )
            )

        i = self._index_of(pending.todo.id)
        if i is None:
            self._upsert(todo)
            return
        self._todos[i] = todo
        # The same id may have arrived already through another path.
        self._todos = [t for j, t in enumerate(self._todos) if j == i or t.id != todo.id]

    def _replay(self, msg: BaseModel) -> None:
        """Send a recorded intent from the synchronous apply() path."""
        task = asyncio.ensure_future(self._send(msg))
        self._replays.add(task)
        task.add_done_callback(self._replays.discard)

    def _upsert(self, todo: LocalTodo) -> None:
        i = self._index_of(todo.id)
        if i is None:
            self._todos.insert(0, todo)
        else:
            self._todos[i] = todo
