# tests/test_chat_orchestrator.py

from __future__ import annotations

import pytest

from todo_chat.core.chat import ChatOrchestrator, ChatPhase, format_sse
from todo_chat.core.errors import UpstreamError
from todo_chat.tasks.task_models import ChatRole
from todo_chat.tasks.task_service import TaskService
from todo_chat.tasks.task_store import TaskStore

from .fakes import FakeCompletionProvider


async def _collect(orchestrator: ChatOrchestrator, content: object, **kwargs) -> list[dict]:
    return [event async for event in orchestrator.stream_reply(content, **kwargs)]


def _visible(events: list[dict]) -> str:
    return "".join(e["content"] for e in events if e["type"] == "chunk")


@pytest.mark.asyncio
async def test_happy_path_hides_marker_and_stores_suggestion(
    store: TaskStore, tasks: TaskService
) -> None:
    provider = FakeCompletionProvider(["Sure! ", "[SUGGEST_", 'TODO: "Buy', ' milk"]', " Anything else?"])
    orchestrator = ChatOrchestrator(store, tasks, provider)

    events = await _collect(orchestrator, "  I need groceries  ")

    assert _visible(events) == "Sure!  Anything else?"
    assert [e["type"] for e in events[-2:]] == ["suggestions", "done"]
    (item,) = events[-2]["items"]
    assert item["title"] == "Buy milk"
    assert item["accepted"] is False

    user, assistant = store.list_chat_messages()
    assert (user.role, user.content) == (ChatRole.USER, "I need groceries")
    assert assistant.role is ChatRole.ASSISTANT
    assert "SUGGEST_TODO" not in assistant.content
    assert item["chatMessageId"] == assistant.id


@pytest.mark.asyncio
async def test_escaped_quote_in_title(store: TaskStore, tasks: TaskService) -> None:
    provider = FakeCompletionProvider([r'[SUGGEST_TODO: "Read \"Dune\""]'])
    events = await _collect(ChatOrchestrator(store, tasks, provider), "books?")

    assert [i["title"] for i in events[-2]["items"]] == ['Read "Dune"']
    assert _visible(events) == ""


@pytest.mark.asyncio
async def test_suggestions_event_is_sent_even_when_empty(
    store: TaskStore, tasks: TaskService
) -> None:
    events = await _collect(ChatOrchestrator(store, tasks, FakeCompletionProvider(["hi"])), "hello")
    assert events == [
        {"type": "chunk", "content": "hi"},
        {"type": "suggestions", "items": []},
        {"type": "done"},
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("", "Message content is required"),
        ("   ", "Message content is required"),
        (None, "Message content is required"),
        ("x" * 4001, "Message must be at most 4000 characters"),
    ],
)
async def test_invalid_input_persists_nothing(
    store: TaskStore, tasks: TaskService, content, message
) -> None:
    provider = FakeCompletionProvider()
    events = await _collect(ChatOrchestrator(store, tasks, provider), content)

    assert events == [{"type": "error", "message": message}]
    assert store.list_chat_messages() == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_upstream_failure_mid_stream_keeps_only_user_message(
    store: TaskStore, tasks: TaskService
) -> None:
    provider = FakeCompletionProvider(
        ["partial ", "answer"], error=UpstreamError("The model stopped responding"), fail_after=1
    )
    events = await _collect(ChatOrchestrator(store, tasks, provider), "hello")

    assert events == [
        {"type": "chunk", "content": "partial "},
        {"type": "error", "message": "The model stopped responding"},
    ]
    (only,) = store.list_chat_messages()
    assert only.role is ChatRole.USER


@pytest.mark.asyncio
async def test_unexpected_failure_is_sanitized(store: TaskStore, tasks: TaskService) -> None:
    provider = FakeCompletionProvider(
        [], error=RuntimeError("cannot open /etc/secret/key.pem with api_key=sk-abc123")
    )
    events = await _collect(ChatOrchestrator(store, tasks, provider), "hello")

    (err,) = events
    assert err["type"] == "error"
    assert "/etc/secret" not in err["message"]
    assert "sk-abc123" not in err["message"]


@pytest.mark.asyncio
async def test_context_contains_todos_and_history(store: TaskStore, tasks: TaskService) -> None:
    done = tasks.create("Pay rent")
    tasks.update(done.id, completed=True)
    tasks.create("Walk dog")
    store.create_chat_message(ChatRole.USER, "earlier question")
    store.create_chat_message(ChatRole.ASSISTANT, "earlier answer")
    provider = FakeCompletionProvider(["ok"])

    await _collect(ChatOrchestrator(store, tasks, provider, history_limit=2), "new question")

    ((system_context, history),) = provider.calls
    assert "- [x] Pay rent" in system_context
    assert "- [ ] Walk dog" in system_context
    assert "SUGGEST_TODO" in system_context
    assert history == [
        {"role": "assistant", "content": "earlier answer"},
        {"role": "user", "content": "new question"},
    ]


@pytest.mark.asyncio
async def test_abandoned_stream_closes_provider_and_persists_nothing(
    store: TaskStore, tasks: TaskService
) -> None:
    provider = FakeCompletionProvider(["one ", "two ", "three"])
    gen = ChatOrchestrator(store, tasks, provider).stream_reply("hello")

    first = await gen.__anext__()
    assert first == {"type": "chunk", "content": "one "}
    await gen.aclose()

    assert provider.closed is True
    assert provider.finished is False
    (only,) = store.list_chat_messages()
    assert only.role is ChatRole.USER


@pytest.mark.asyncio
async def test_phase_sequence(store: TaskStore, tasks: TaskService) -> None:
    phases: list[ChatPhase] = []
    await _collect(
        ChatOrchestrator(store, tasks, FakeCompletionProvider(["hi"])), "hello", on_phase=phases.append
    )

    assert phases == [
        ChatPhase.RECEIVING_INPUT,
        ChatPhase.PERSISTING_USER_MSG,
        ChatPhase.BUILDING_CONTEXT,
        ChatPhase.STREAMING_COMPLETION,
        ChatPhase.EXTRACTING_SUGGESTIONS,
        ChatPhase.PERSISTING_OUTPUT,
        ChatPhase.DONE,
    ]


def test_format_sse() -> None:
    assert format_sse({"type": "done"}) == 'data: {"type": "done"}\n\n'
    assert format_sse({"type": "chunk", "content": "é"}) == 'data: {"type": "chunk", "content": "é"}\n\n'
