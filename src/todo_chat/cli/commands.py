# src/todo_chat/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, cast

import httpx

if TYPE_CHECKING:
    from ..connectors.console_connector import ConsoleSession

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[["ConsoleSession", list[str]], Awaitable[str]]
CommandHandler3 = Callable[["ConsoleSession", list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console client (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        session: ConsoleSession,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return await h3(session, args, emit)

        h2 = cast(CommandHandler2, handler)
        return await h2(session, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _parse_id(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


def format_todos(session: ConsoleSession) -> str:
    todos = session.reconciler.todos
    if not todos:
        return "No todos yet. Add one with /add <title>."
    lines = ["Todos:"]
    for t in todos:
        mark = "x" if t.completed else " "
        pending = " (pending)" if t.speculative else ""
        lines.append(f"  [{mark}] #{t.id} {t.title}{pending}")
    return "\n".join(lines)


async def cmd_help(session: ConsoleSession, args: list[str]) -> str:
    return registry.build_help()


async def cmd_list(session: ConsoleSession, args: list[str]) -> str:
    return format_todos(session)


async def cmd_add(session: ConsoleSession, args: list[str]) -> str:
    title = " ".join(args).strip()
    if not title:
        return "Usage: /add <title>"
    if len(title) > session.settings.title_max_chars:
        return f"Title must be at most {session.settings.title_max_chars} characters."
    await session.reconciler.create(title)
    return f"Added: {title}"


async def _set_completed(session: ConsoleSession, args: list[str], completed: bool) -> str:
    todo_id = _parse_id(args[0]) if args else None
    if todo_id is None:
        return f"Usage: /{'done' if completed else 'undo'} <id>"
    if not await session.reconciler.update(todo_id, completed=completed):
        return f"No todo #{todo_id}."
    return f"#{todo_id} marked {'done' if completed else 'not done'}."


async def cmd_done(session: ConsoleSession, args: list[str]) -> str:
    return await _set_completed(session, args, True)


async def cmd_undo(session: ConsoleSession, args: list[str]) -> str:
    return await _set_completed(session, args, False)


async def cmd_rename(session: ConsoleSession, args: list[str]) -> str:
    todo_id = _parse_id(args[0]) if args else None
    title = " ".join(args[1:]).strip()
    if todo_id is None or not title:
        return "Usage: /rename <id> <new title>"
    if not await session.reconciler.update(todo_id, title=title):
        return f"No todo #{todo_id}."
    return f"#{todo_id} renamed."


async def cmd_rm(session: ConsoleSession, args: list[str]) -> str:
    todo_id = _parse_id(args[0]) if args else None
    if todo_id is None:
        return "Usage: /rm <id>"
    if not await session.reconciler.delete(todo_id):
        return f"No todo #{todo_id}."
    return f"#{todo_id} deleted."


async def cmd_status(session: ConsoleSession, args: list[str]) -> str:
    rec = session.reconciler
    lines = [
        "Status:",
        f"  Connection: {session.transport.status}",
        f"  Todos: {len(rec.todos)} ({len(rec.pending)} pending)",
    ]
    if rec.last_error is not None:
        origin = f" [{rec.last_error.original_type}]" if rec.last_error.original_type else ""
        lines.append(f"  Last server error{origin}: {rec.last_error.message}")
    suggestions = session.chat.state.suggestions
    if suggestions:
        lines.append("  Suggestions:")
        for s in suggestions:
            mark = "accepted" if s.get("accepted") else f"/accept {s.get('id')}"
            lines.append(f"    - {s.get('title')} ({mark})")
    return "\n".join(lines)


async def cmd_accept(
    session: ConsoleSession, args: list[str], emit: CommandEmitter | None = None
) -> str:
    suggestion_id = _parse_id(args[0]) if args else None
    if suggestion_id is None or suggestion_id <= 0:
        return "Usage: /accept <suggestion id>"
    if emit:
        emit(f"Accepting suggestion #{suggestion_id}...")
    try:
        result = await session.chat.accept_suggestion(suggestion_id)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            return f"No suggestion #{suggestion_id}."
        logger.info("Accept failed (HTTP %s)", e.response.status_code)
        return "Could not accept the suggestion."
    except httpx.HTTPError as e:
        logger.info("Accept failed (%s)", e.__class__.__name__)
        return "Could not reach the server."

    if result.get("todo") is None:
        return f"Suggestion #{suggestion_id} was already accepted."
    return f"Added from suggestion: {result['todo']['title']}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="Show the todo list.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a todo: /add <title>.")
registry.register("done", cmd_done, help_text="Mark a todo as done: /done <id>.")
registry.register("undo", cmd_undo, help_text="Mark a todo as not done: /undo <id>.")
registry.register("rename", cmd_rename, help_text="Rename a todo: /rename <id> <title>.")
registry.register("rm", cmd_rm, help_text="Delete a todo: /rm <id>.", aliases=["del"])
registry.register("status", cmd_status, help_text="Show connection, pending creates and suggestions.")
registry.register("accept", cmd_accept, help_text="Accept a chat suggestion: /accept <id>.")
