# tests/test_http_app.py

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from todo_chat.cli.bootstrap import create_initial_state
from todo_chat.core.state import AppState
from todo_chat.server.http_app import SlidingWindowRateLimiter, create_app

from .fakes import FakeCompletionProvider, FakePeer


@pytest.fixture()
def provider() -> FakeCompletionProvider:
    return FakeCompletionProvider(["Try this: ", '[SUGGEST_TODO: "Stretch"]'])


@pytest.fixture()
def state(settings: SimpleNamespace, provider: FakeCompletionProvider) -> AppState:
    return create_initial_state(settings=settings, llm=provider)  # type: ignore[arg-type]


@pytest.fixture()
def client(state: AppState) -> TestClient:
    return TestClient(create_app(state))


def _events(resp) -> list[dict]:
    return [
        json.loads(line[len("data: ") :])
        for line in resp.text.splitlines()
        if line.startswith("data: ")
    ]


def test_health(client: TestClient) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}


def test_todo_crud(client: TestClient) -> None:
    created = client.post("/api/todos", json={"title": "  Buy milk "})
    assert created.status_code == 201
    todo = created.json()
    assert todo["title"] == "Buy milk"
    assert todo["completed"] is False
    assert set(todo) == {"id", "title", "completed", "createdAt", "updatedAt"}

    listed = client.get("/api/todos").json()
    assert [t["id"] for t in listed] == [todo["id"]]

    patched = client.patch(f"/api/todos/{todo['id']}", json={"completed": True})
    assert patched.status_code == 200
    assert patched.json()["completed"] is True

    deleted = client.delete(f"/api/todos/{todo['id']}")
    assert deleted.status_code == 204
    assert client.get("/api/todos").json() == []


@pytest.mark.parametrize("body", [{}, {"title": ""}, {"title": "   "}, {"title": 12}, {"title": "x" * 501}])
def test_create_validation(client: TestClient, body: dict) -> None:
    resp = client.post("/api/todos", json=body)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_update_and_delete_errors(client: TestClient) -> None:
    missing = client.patch("/api/todos/999", json={"completed": True})
    assert missing.status_code == 404
    assert missing.json() == {
        "error": {"code": "NOT_FOUND", "message": "Todo with id 999 not found"}
    }

    assert client.delete("/api/todos/999").status_code == 404
    assert client.delete("/api/todos/abc").status_code == 400
    assert client.patch("/api/todos/0", json={"completed": True}).status_code == 400

    todo = client.post("/api/todos", json={"title": "x"}).json()
    bad = client.patch(f"/api/todos/{todo['id']}", json={"completed": "yes"})
    assert bad.status_code == 400


def test_rest_writes_reach_websocket_peers(client: TestClient, state: AppState) -> None:
    peer = FakePeer()
    state.registry.register(peer)

    todo = client.post("/api/todos", json={"title": "From REST"}).json()
    client.delete(f"/api/todos/{todo['id']}")

    created, deleted = peer.messages()
    assert created == {"type": "todo:created", "data": todo}
    assert deleted == {"type": "todo:deleted", "data": {"id": todo["id"]}}


def test_chat_message_streams_sse(client: TestClient) -> None:
    resp = client.post("/api/chat/message", json={"content": "I feel stiff"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = _events(resp)
    assert [e["type"] for e in events] == ["chunk", "suggestions", "done"]
    assert events[0]["content"] == "Try this: "
    assert [s["title"] for s in events[1]["items"]] == ["Stretch"]

    history = client.get("/api/chat").json()
    assert [m["role"] for m in history] == ["user", "assistant"]
    assert history[1]["content"] == "Try this:"


def test_chat_validation_error_arrives_as_event(client: TestClient) -> None:
    resp = client.post("/api/chat/message", json={"content": "  "})

    assert resp.status_code == 200
    assert _events(resp) == [{"type": "error", "message": "Message content is required"}]
    assert client.get("/api/chat").json() == []


def test_accept_suggestion_creates_todo_once(client: TestClient, state: AppState) -> None:
    events = _events(client.post("/api/chat/message", json={"content": "hi"}))
    (suggestion,) = events[1]["items"]
    peer = FakePeer()
    state.registry.register(peer)

    first = client.post(f"/api/chat/suggestions/{suggestion['id']}/accept")
    assert first.status_code == 200
    body = first.json()
    assert body["suggestion"]["accepted"] is True
    assert body["todo"]["title"] == "Stretch"
    assert peer.types() == ["todo:created"]

    again = client.post(f"/api/chat/suggestions/{suggestion['id']}/accept")
    assert again.status_code == 200
    assert again.json()["todo"] is None
    assert len(client.get("/api/todos").json()) == 1
    assert peer.types() == ["todo:created"]


def test_accept_unknown_suggestion(client: TestClient) -> None:
    resp = client.post("/api/chat/suggestions/4242/accept")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"
    assert client.post("/api/chat/suggestions/nope/accept").status_code == 400


def test_clear_chat(client: TestClient) -> None:
    client.post("/api/chat/message", json={"content": "hi"})
    assert client.delete("/api/chat").status_code == 204
    assert client.get("/api/chat").json() == []


def test_chat_is_rate_limited(settings: SimpleNamespace, provider: FakeCompletionProvider) -> None:
    settings.chat_rate_limit_requests = 2
    client = TestClient(create_app(create_initial_state(settings=settings, llm=provider)))  # type: ignore[arg-type]

    assert client.post("/api/chat/message", json={"content": "1"}).status_code == 200
    assert client.post("/api/chat/message", json={"content": "2"}).status_code == 200
    limited = client.post("/api/chat/message", json={"content": "3"})

    assert limited.status_code == 429
    assert limited.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    # other routes are not limited
    assert client.get("/api/chat").status_code == 200


def test_sliding_window_rate_limiter() -> None:
    now = [0.0]
    limiter = SlidingWindowRateLimiter(2, 10.0, clock=lambda: now[0])

    assert limiter.hit("a") and limiter.hit("a")
    assert limiter.hit("a") is False
    assert limiter.hit("b") is True

    now[0] = 10.5
    assert limiter.hit("a") is True


def test_rate_limiter_forgets_idle_keys() -> None:
    now = [0.0]
    limiter = SlidingWindowRateLimiter(2, 10.0, clock=lambda: now[0])
    for i in range(50):
        limiter.hit(f"client-{i}")
    assert len(limiter) == 50

    now[0] = 11.0
    assert limiter.hit("late") is True
    assert len(limiter) == 1

    # the key being hit keeps its own window
    now[0] = 12.0
    assert limiter.hit("late") and limiter.hit("late") is False


def test_unexpected_errors_are_sanitized(state: AppState, monkeypatch) -> None:
    def boom():
        raise RuntimeError("sqlite failed at /srv/app/data/todo.sqlite3")

    monkeypatch.setattr(state.tasks, "list", boom)
    client = TestClient(create_app(state), raise_server_exceptions=False)

    resp = client.get("/api/todos")

    assert resp.status_code == 500
    err = resp.json()["error"]
    assert err["code"] == "INTERNAL_ERROR"
    assert "/srv/app" not in err["message"]
