# src/todo_chat/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def format_ts(ts: float) -> str:
    """UNIX timestamp -> ISO-8601 UTC string with millisecond precision."""
    dt = datetime.fromtimestamp(float(ts), tz=UTC)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ChatRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def from_db(cls, raw: str | None) -> ChatRole:
        if raw == cls.ASSISTANT.value:
            return cls.ASSISTANT
        return cls.USER


@dataclass(slots=True, frozen=True)
class Task:
    """A row of the shared todo list. The store is the only source of these."""

    id: int
    title: str
    completed: bool
    created_at: float
    updated_at: float

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "createdAt": format_ts(self.created_at),
            "updatedAt": format_ts(self.updated_at),
        }


@dataclass(slots=True, frozen=True)
class ChatMessage:
    id: int
    role: ChatRole
    content: str
    created_at: float

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "createdAt": format_ts(self.created_at),
        }


@dataclass(slots=True, frozen=True)
class TodoSuggestion:
    id: int
    chat_message_id: int
    title: str
    accepted: bool

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "chatMessageId": self.chat_message_id,
            "title": self.title,
            "accepted": self.accepted,
        }
