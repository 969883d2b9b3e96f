# src/todo_chat/core/persona.py

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Final

from ..tasks.task_models import Task

BASE_PERSONA_PROMPT: Final[str] = """
You are a helpful assistant for a shared todo list app.
You can see the user's current todo list below.

Style:
- Match the user's language.
- Be concise and practical.

Suggesting todos:
When it would help the user, suggest new todos using this exact format on its own line:
[SUGGEST_TODO: "title of the todo"]
- Use one marker per suggested todo.
- Escape double quotes inside the title as \\".
- Do not suggest todos that already exist in the list.
- Never explain the marker syntax to the user.
""".strip()


def _sanitize_title(title: str) -> str:
    # A title must not open a fake marker inside the prompt.
    return title.replace("\x00", "").replace("[SUGGEST_TODO:", "[SUGGEST TODO:").replace("\n", " ")


def format_todo_list(todos: Iterable[Task]) -> str:
    lines = [f"- [{'x' if t.completed else ' '}] {_sanitize_title(t.title)}" for t in todos]
    return "\n".join(lines) if lines else "(no todos yet)"


def build_system_context(todos: Iterable[Task]) -> str:
    """Plain-text instructions + the todo list as it is right now."""
    now_utc = datetime.now(UTC).replace(microsecond=0).isoformat()

    return (
        f"{BASE_PERSONA_PROMPT}\n\n"
        f"Current todos:\n{format_todo_list(todos)}\n\n"
        f"Current time (UTC): {now_utc}\n"
    )
