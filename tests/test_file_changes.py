"""Tests for <file_changes> extraction and parsing."""

import pytest

from features.workspace import extract_file_changes, parse_file_changes
from shared.exceptions import FileChangesError


def test_extracts_block_from_reply():
    reply = (
        "Here you go.\n"
        '<file_changes>[{"path": "a.js", "content": "x"}]</file_changes>\n'
        "Anything else?"
    )
    assert extract_file_changes(reply) == '[{"path": "a.js", "content": "x"}]'


def test_strips_code_fence_inside_block():
    reply = '<file_changes>\n```json\n[{"path": "a.js", "content": "x"}]\n```\n</file_changes>'
    assert extract_file_changes(reply) == '[{"path": "a.js", "content": "x"}]'


@pytest.mark.parametrize("reply", ["", "no changes here", "<file_changes></file_changes>"])
def test_no_block_gives_none(reply):
    assert extract_file_changes(reply) is None


def test_parse_skips_entries_without_path():
    changes = parse_file_changes(
        '[{"path": "a.js", "content": "x"}, {"content": "orphan"}, "junk", {"path": "b.js"}]'
    )
    assert changes == [
        {"path": "a.js", "content": "x"},
        {"path": "b.js", "content": ""},
    ]


def test_parse_coerces_content_to_text():
    assert parse_file_changes('[{"path": "n.json", "content": 42}]') == [
        {"path": "n.json", "content": "42"},
    ]


@pytest.mark.parametrize("text", ["{not json", '{"path": "a.js"}'])
def test_parse_rejects_invalid_payloads(text):
    with pytest.raises(FileChangesError):
        parse_file_changes(text)
