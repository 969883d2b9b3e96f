# tests/test_messages.py

from __future__ import annotations

import json

import pytest

from todo_chat.core import messages as m
from todo_chat.core.errors import MalformedInputError, SchemaViolationError
from todo_chat.tasks.task_models import Task


def _task(todo_id: int = 1, title: str = "Buy milk", completed: bool = False) -> Task:
    return Task(id=todo_id, title=title, completed=completed, created_at=0.0, updated_at=1.5)


def test_parse_create_trims_title_and_reads_temp_id() -> None:
    msg = m.parse_client_message(
        json.dumps({"type": "todo:create", "tempId": "t-1", "data": {"title": "  Buy milk  "}})
    )

    assert isinstance(msg, m.TodoCreate)
    assert msg.temp_id == "t-1"
    assert msg.data.title == "Buy milk"


def test_parse_update_allows_partial_fields() -> None:
    msg = m.parse_client_message('{"type":"todo:update","data":{"id":3,"completed":true}}')

    assert isinstance(msg, m.TodoUpdate)
    assert msg.data.id == 3
    assert msg.data.completed is True
    assert msg.data.title is None


def test_parse_accepts_binary_utf8() -> None:
    msg = m.parse_client_message(b'{"type":"todo:delete","data":{"id":7}}')
    assert isinstance(msg, m.TodoDelete)
    assert msg.data.id == 7


@pytest.mark.parametrize("raw", ["not json", "{", b"\xff\xfe\x00garbage", ""])
def test_parse_rejects_malformed_json(raw) -> None:
    with pytest.raises(MalformedInputError) as exc:
        m.parse_client_message(raw)
    assert str(exc.value) == "Invalid JSON"


def test_unknown_type_reports_original_type() -> None:
    with pytest.raises(SchemaViolationError) as exc:
        m.parse_client_message('{"type":"todo:explode","data":{}}')
    assert exc.value.original_type == "todo:explode"


def test_non_object_payload_has_no_original_type() -> None:
    with pytest.raises(SchemaViolationError) as exc:
        m.parse_client_message("[1, 2, 3]")
    assert exc.value.original_type is None


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "todo:create", "tempId": "t", "data": {"title": ""}},
        {"type": "todo:create", "tempId": "t", "data": {"title": "   "}},
        {"type": "todo:create", "tempId": "t", "data": {"title": "x" * 501}},
        {"type": "todo:create", "tempId": "", "data": {"title": "ok"}},
        {"type": "todo:create", "data": {"title": "ok"}},
        {"type": "todo:create", "tempId": "t", "data": {"title": 42}},
        {"type": "todo:update", "data": {"id": True}},
        {"type": "todo:update", "data": {"id": 1.5}},
        {"type": "todo:update", "data": {"id": 0}},
        {"type": "todo:update", "data": {"id": "1"}},
        {"type": "todo:update", "data": {"id": 1, "completed": "yes"}},
        {"type": "todo:delete", "data": {"id": -4}},
    ],
)
def test_schema_violations_keep_original_type(payload) -> None:
    with pytest.raises(SchemaViolationError) as exc:
        m.parse_client_message(json.dumps(payload))
    assert exc.value.original_type == payload["type"]


def test_title_at_limit_is_accepted() -> None:
    msg = m.parse_client_message(
        json.dumps({"type": "todo:create", "tempId": "t", "data": {"title": "x" * 500}})
    )
    assert len(msg.data.title) == 500


def test_client_messages_are_immutable() -> None:
    msg = m.parse_client_message('{"type":"todo:delete","data":{"id":1}}')
    with pytest.raises(Exception):
        msg.data.id = 2  # type: ignore[misc]


def test_created_message_omits_temp_id_when_absent() -> None:
    payload = json.loads(m.dump_message(m.created_message(_task())))

    assert payload["type"] == "todo:created"
    assert "tempId" not in payload
    assert payload["data"] == {
        "id": 1,
        "title": "Buy milk",
        "completed": False,
        "createdAt": "1970-01-01T00:00:00.000Z",
        "updatedAt": "1970-01-01T00:00:01.500Z",
    }


def test_created_message_carries_temp_id_for_sender() -> None:
    payload = json.loads(m.dump_message(m.created_message(_task(), "t-9")))
    assert payload["tempId"] == "t-9"


def test_error_message_shape() -> None:
    payload = json.loads(m.dump_message(m.error_message("Todo with id 9 not found", "todo:update")))
    assert payload == {
        "type": "error",
        "data": {"message": "Todo with id 9 not found", "originalType": "todo:update"},
    }

    bare = json.loads(m.dump_message(m.error_message("Invalid JSON")))
    assert bare == {"type": "error", "data": {"message": "Invalid JSON"}}


def test_server_messages_parse_back_on_the_client() -> None:
    raw = m.dump_message(m.sync_message([_task(1), _task(2, "Walk dog", True)]))
    msg = m.parse_server_message(raw)

    assert isinstance(msg, m.TodoSync)
    assert [t.id for t in msg.data] == [1, 2]
    assert msg.data[1].completed is True


def test_server_parser_rejects_client_messages() -> None:
    with pytest.raises(SchemaViolationError) as exc:
        m.parse_server_message('{"type":"todo:create","tempId":"t","data":{"title":"x"}}')
    assert exc.value.original_type == "todo:create"


def test_unknown_keys_are_dropped() -> None:
    msg = m.parse_client_message(
        json.dumps({"type": "todo:delete", "data": {"id": 1, "extra": 1}, "sentAt": "now"})
    )
    assert isinstance(msg, m.TodoDelete)
    assert msg.data.id == 1
    assert "extra" not in msg.data.model_dump()


def test_snake_case_temp_id_is_not_accepted() -> None:
    with pytest.raises(SchemaViolationError) as exc:
        m.parse_client_message(
            json.dumps({"type": "todo:create", "temp_id": "t-1", "data": {"title": "ok"}})
        )
    assert exc.value.original_type == "todo:create"


def test_create_message_dumps_camel_case() -> None:
    payload = json.loads(m.dump_message(m.create_message("Buy milk", "t-9")))
    assert payload == {"type": "todo:create", "tempId": "t-9", "data": {"title": "Buy milk"}}
