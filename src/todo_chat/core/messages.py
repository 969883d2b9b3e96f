# src/todo_chat/core/messages.py

"""
Wire format for the sync socket.

Two disjoint tagged unions, discriminated on `type`:
- client -> server: todo:create | todo:update | todo:delete
- server -> client: todo:created | todo:updated | todo:deleted | todo:sync | error

Inbound text is decoded as untyped JSON first, then validated against the union
before any business logic sees it. After validation the value is always one of the
concrete variant models below, never a loose dict.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    StringConstraints,
    TypeAdapter,
)
from pydantic import ValidationError as PydanticValidationError

from ..tasks.task_models import Task
from .errors import MalformedInputError, SchemaViolationError

TITLE_MAX_CHARS = 500

CREATE = "todo:create"
UPDATE = "todo:update"
DELETE = "todo:delete"
CREATED = "todo:created"
UPDATED = "todo:updated"
DELETED = "todo:deleted"
SYNC = "todo:sync"
ERROR = "error"


def _to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class _Inbound(BaseModel):
    """Client payloads: immutable, camelCase keys only, unknown keys dropped."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        frozen=True,
        extra="ignore",
    )


class _Outbound(BaseModel):
    """Server payloads: immutable, camelCase on the wire, unknown keys tolerated by clients."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


Title = Annotated[
    StrictStr,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=TITLE_MAX_CHARS),
]
PositiveId = Annotated[StrictInt, Field(gt=0)]
TempId = Annotated[StrictStr, StringConstraints(min_length=1)]


# ---- client -> server ----


class CreateData(_Inbound):
    title: Title


class UpdateData(_Inbound):
    id: PositiveId
    title: Title | None = None
    completed: StrictBool | None = None


class IdData(_Inbound):
    id: PositiveId


class TodoCreate(_Inbound):
    type: Literal["todo:create"] = CREATE
    temp_id: TempId
    data: CreateData


class TodoUpdate(_Inbound):
    type: Literal["todo:update"] = UPDATE
    data: UpdateData


class TodoDelete(_Inbound):
    type: Literal["todo:delete"] = DELETE
    data: IdData


ClientMessage = Annotated[Union[TodoCreate, TodoUpdate, TodoDelete], Field(discriminator="type")]


# ---- server -> client ----


class Todo(_Outbound):
    id: int
    title: str
    completed: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_task(cls, task: Task) -> Todo:
        return cls.model_validate(task.to_wire())


class DeletedData(_Outbound):
    id: int


class ErrorData(_Outbound):
    message: str
    original_type: str | None = None


class TodoCreated(_Outbound):
    type: Literal["todo:created"] = CREATED
    temp_id: str | None = None
    data: Todo


class TodoUpdated(_Outbound):
    type: Literal["todo:updated"] = UPDATED
    data: Todo


class TodoDeleted(_Outbound):
    type: Literal["todo:deleted"] = DELETED
    data: DeletedData


class TodoSync(_Outbound):
    type: Literal["todo:sync"] = SYNC
    data: list[Todo]


class ErrorMessage(_Outbound):
    type: Literal["error"] = ERROR
    data: ErrorData


ServerMessage = Annotated[
    Union[TodoCreated, TodoUpdated, TodoDeleted, TodoSync, ErrorMessage],
    Field(discriminator="type"),
]

_CLIENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(ClientMessage)
_SERVER_ADAPTER: TypeAdapter[Any] = TypeAdapter(ServerMessage)


def _decode(raw: str | bytes) -> Any:
    try:
        return json.loads(raw)
    except (ValueError, TypeError) as e:
        # UnicodeDecodeError is a ValueError too.
        raise MalformedInputError("Invalid JSON") from e


def _original_type(payload: Any) -> str | None:
    if isinstance(payload, dict):
        t = payload.get("type")
        if isinstance(t, str):
            return t
    return None


def _format_issues(exc: PydanticValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid message"


def parse_client_message(raw: str | bytes) -> TodoCreate | TodoUpdate | TodoDelete:
    """
    Decode + validate one inbound frame.

    Raises:
        MalformedInputError: the frame is not JSON.
        SchemaViolationError: JSON that matches no client message; carries the
            payload's `type` when it had a string one.
    """
    payload = _decode(raw)
    try:
        return _CLIENT_ADAPTER.validate_python(payload)
    except PydanticValidationError as exc:
        raise SchemaViolationError(_format_issues(exc), _original_type(payload)) from exc


def parse_server_message(
    raw: str | bytes,
) -> TodoCreated | TodoUpdated | TodoDeleted | TodoSync | ErrorMessage:
    payload = _decode(raw)
    try:
        return _SERVER_ADAPTER.validate_python(payload)
    except PydanticValidationError as exc:
        raise SchemaViolationError(_format_issues(exc), _original_type(payload)) from exc


def dump_message(msg: BaseModel) -> str:
    """Compact JSON with camelCase keys; absent optionals are omitted, not null."""
    return msg.model_dump_json(by_alias=True, exclude_none=True)


# ---- constructors ----


def create_message(title: str, temp_id: str) -> TodoCreate:
    # Inbound models validate by alias only.
    return TodoCreate(tempId=temp_id, data=CreateData(title=title))  # type: ignore[call-arg]


def created_message(task: Task, temp_id: str | None = None) -> TodoCreated:
    return TodoCreated(temp_id=temp_id, data=Todo.from_task(task))


def updated_message(task: Task) -> TodoUpdated:
    return TodoUpdated(data=Todo.from_task(task))


def deleted_message(todo_id: int) -> TodoDeleted:
    return TodoDeleted(data=DeletedData(id=todo_id))


def sync_message(tasks: list[Task]) -> TodoSync:
    return TodoSync(data=[Todo.from_task(t) for t in tasks])


def error_message(message: str, original_type: str | None = None) -> ErrorMessage:
    return ErrorMessage(data=ErrorData(message=message, original_type=original_type))
