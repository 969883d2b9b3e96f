# src/todo_chat/core/errors.py

"""
Error taxonomy shared by server and client.

Each error is recovered at the boundary that detects it:
- MalformedInputError / SchemaViolationError: inbound payload checks (hub, chat route),
- NotFoundError / ValidationError: TaskService,
- UpstreamError: completion provider (message is already user-safe),
- TransportError: client transport state machine.
"""

from __future__ import annotations

import re


class TodoChatError(Exception):
    """Base class for all application errors."""


class MalformedInputError(TodoChatError):
    """Payload could not be decoded at all (bad JSON, bad UTF-8)."""


class SchemaViolationError(TodoChatError):
    """Payload is well-formed JSON but does not match any known message shape."""

    def __init__(self, message: str, original_type: str | None = None) -> None:
        super().__init__(message)
        self.original_type = original_type


class NotFoundError(TodoChatError):
    pass


class ValidationError(TodoChatError):
    pass


class UpstreamError(TodoChatError):
    """Completion provider failure. str(exc) is safe to show to users."""


class TransportError(TodoChatError):
    pass


_PATH_RE = re.compile(r"/[\w./\\-]+")
_STACK_RE = re.compile(r"(?:at\s+[\w.<>]+\s+\(.*?\)|File \"[^\"]*\", line \d+(?:, in \S+)?)")
_KEY_RE = re.compile(r"sk-[\w-]+")
_KEY_ASSIGN_RE = re.compile(r"api[_-]?keys?\s*[:=]\s*\S+", re.IGNORECASE)
_BEARER_RE = re.compile(r"bearer\s+[\w.~+/-]+=*", re.IGNORECASE)

FALLBACK_ERROR_MESSAGE = "An unexpected error occurred"


def sanitize_error_message(message: str | None) -> str:
    """Strip paths, stack frames and credential-shaped strings from an error message."""
    text = message or ""
    text = _STACK_RE.sub("", text)
    text = _PATH_RE.sub("[path]", text)
    text = _KEY_RE.sub("[redacted]", text)
    text = _KEY_ASSIGN_RE.sub("[redacted]", text)
    text = _BEARER_RE.sub("[redacted]", text)
    return text.strip() or FALLBACK_ERROR_MESSAGE
