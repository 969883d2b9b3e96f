# tests/test_commands.py

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest

from todo_chat.cli.commands import CommandRegistry, registry
from todo_chat.client.chat_stream import ChatClient
from todo_chat.client.reconciler import TodoReconciler
from todo_chat.client.transport import ConnectionStatus
from todo_chat.core import messages as m


@pytest.fixture()
def sent() -> list:
    return []


@pytest.fixture()
def session(sent: list) -> SimpleNamespace:
    async def send(msg) -> bool:
        sent.append(msg)
        return True

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/chat/suggestions/1/accept":
            return httpx.Response(
                200, json={"suggestion": {"id": 1, "accepted": True}, "todo": {"id": 9, "title": "Stretch"}}
            )
        if request.url.path == "/api/chat/suggestions/2/accept":
            return httpx.Response(200, json={"suggestion": {"id": 2, "accepted": True}, "todo": None})
        return httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": "nope"}})

    http = httpx.AsyncClient(base_url="http://test", transport=httpx.MockTransport(handler))
    return SimpleNamespace(
        settings=SimpleNamespace(title_max_chars=20),
        transport=SimpleNamespace(status=ConnectionStatus.CONNECTED),
        reconciler=TodoReconciler(send),
        chat=ChatClient("http://test", client=http),
    )


@pytest.mark.asyncio
async def test_registry_routes_2_and_3_param_handlers(session) -> None:
    reg = CommandRegistry()
    notes: list[str] = []

    async def two(session, args):
        return f"two:{','.join(args)}"

    async def three(session, args, emit):
        if emit is not None:
            emit("working")
        return "three"

    reg.register("two", two, "2 params", aliases=["2"])
    reg.register("three", three, "3 params")

    assert await reg.handle(session, "/two a b") == "two:a,b"
    assert await reg.handle(session, "/2") == "two:"
    assert await reg.handle(session, "/THREE", emit=notes.append) == "three"
    assert notes == ["working"]


@pytest.mark.asyncio
async def test_registry_non_command_unknown_and_empty(session) -> None:
    reg = CommandRegistry()
    assert await reg.handle(session, "hello") is None
    assert "Unknown command" in (await reg.handle(session, "/nope") or "")
    assert "Empty command" in (await reg.handle(session, "/") or "")


@pytest.mark.asyncio
async def test_help_lists_commands(session) -> None:
    text = await registry.handle(session, "/help")
    assert text is not None
    for name in ("/add", "/done", "/rm", "/accept"):
        assert name in text


@pytest.mark.asyncio
async def test_add_list_and_edit(session, sent: list) -> None:
    assert await registry.handle(session, "/add Buy milk") == "Added: Buy milk"
    assert isinstance(sent[0], m.TodoCreate)

    listing = await registry.handle(session, "/ls")
    assert "Buy milk (pending)" in listing

    session.reconciler.apply(
        m.TodoSync(
            data=[
                m.Todo(
                    id=4,
                    title="Walk dog",
                    completed=False,
                    created_at="2024-01-01T00:00:00.000Z",
                    updated_at="2024-01-01T00:00:00.000Z",
                )
            ]
        )
    )
    assert await registry.handle(session, "/done 4") == "#4 marked done."
    assert await registry.handle(session, "/rename 4 Walk the dog") == "#4 renamed."
    assert await registry.handle(session, "/del 4") == "#4 deleted."
    assert [type(s) for s in sent[1:]] == [m.TodoUpdate, m.TodoUpdate, m.TodoDelete]


@pytest.mark.asyncio
async def test_usage_and_missing_ids(session, sent: list) -> None:
    assert await registry.handle(session, "/add") == "Usage: /add <title>"
    assert "at most 20" in await registry.handle(session, "/add " + "x" * 21)
    assert await registry.handle(session, "/done") == "Usage: /done <id>"
    assert await registry.handle(session, "/undo abc") == "Usage: /undo <id>"
    assert await registry.handle(session, "/rm 77") == "No todo #77."
    assert sent == []


@pytest.mark.asyncio
async def test_status_reports_connection_and_errors(session) -> None:
    session.reconciler.apply(m.error_message("Todo with id 3 not found", "todo:update"))

    text = await registry.handle(session, "/status")

    assert "Connection: connected" in text
    assert "[todo:update]" in text


@pytest.mark.asyncio
async def test_accept(session) -> None:
    notes: list[str] = []
    assert await registry.handle(session, "/accept 1", emit=notes.append) == "Added from suggestion: Stretch"
    assert notes == ["Accepting suggestion #1..."]
    assert await registry.handle(session, "/accept 2") == "Suggestion #2 was already accepted."
    assert await registry.handle(session, "/accept 3") == "No suggestion #3."
    assert await registry.handle(session, "/accept") == "Usage: /accept <suggestion id>"
    await session.chat.aclose()
