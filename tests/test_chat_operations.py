"""Tests for append-only chat storage."""

import pytest

from db import chat_operations
from shared.exceptions import ProjectNotFoundError


def _msg(msg_id, text, timestamp, role="user"):
    return {"id": msg_id, "role": role, "text": text, "timestamp": timestamp}


def test_messages_are_inserted_once(remote_project):
    first = chat_operations.append_messages("p1", [
        _msg("m1", "hi", "2024-01-01T10:00:00Z"),
        _msg("m2", "hello", "2024-01-01T10:00:05Z", role="model"),
    ])
    second = chat_operations.append_messages("p1", [
        _msg("m1", "edited text is ignored", "2024-01-01T10:00:00Z"),
        _msg("m3", "next", "2024-01-01T10:01:00Z"),
    ])

    messages = chat_operations.get_messages("p1")
    assert (first, second) == (2, 1)
    assert [m["id"] for m in messages] == ["m1", "m2", "m3"]
    assert messages[0]["text"] == "hi"


def test_messages_are_ordered_by_timestamp(remote_project):
    chat_operations.append_messages("p1", [
        _msg("late", "b", "2024-01-02T00:00:00Z"),
        _msg("early", "a", "2024-01-01T00:00:00Z"),
    ])

    assert [m["id"] for m in chat_operations.get_messages("p1")] == ["early", "late"]
    assert len(chat_operations.get_messages("p1", limit=1)) == 1


def test_save_never_removes_messages(remote_project):
    chat_operations.append_messages("p1", [_msg("m1", "hi", "2024-01-01T00:00:00Z")])
    chat_operations.append_messages("p1", [])

    assert chat_operations.count_messages("p1") == 1


def test_unknown_project_raises():
    with pytest.raises(ProjectNotFoundError):
        chat_operations.append_messages("ghost", [_msg("m1", "hi", "2024-01-01T00:00:00Z")])


def test_invalid_message_writes_nothing(remote_project):
    with pytest.raises(ValueError):
        chat_operations.append_messages("p1", [
            _msg("ok", "fine", "2024-01-01T00:00:00Z"),
            _msg("bad", "who?", "2024-01-01T00:00:00Z", role="system"),
        ])
    with pytest.raises(ValueError):
        chat_operations.append_messages("p1", [{"role": "user", "text": "no id"}])

    assert chat_operations.count_messages("p1") == 0
