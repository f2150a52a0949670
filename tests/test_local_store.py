"""Tests for the local embedded store."""

import sqlite3

import pytest

from db import local_store
from shared.constants import LOCAL_SCHEMA_VERSION
from shared.exceptions import LocalStoreError
from shared.models import ChatMessage, ProjectMetadata, parse_timestamp


def _tables(path) -> set:
    conn = sqlite3.connect(str(path))
    try:
        return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    finally:
        conn.close()


def test_init_creates_all_containers():
    assert local_store.init_local_store() == LOCAL_SCHEMA_VERSION
    assert {"projects_meta", "files_store", "chat_store", "settings", "app_logs"} <= _tables(
        local_store.LOCAL_DB_PATH
    )


def test_older_store_is_upgraded():
    conn = sqlite3.connect(str(local_store.LOCAL_DB_PATH))
    conn.execute("CREATE TABLE projects_meta (id TEXT PRIMARY KEY, payload TEXT NOT NULL)")
    conn.execute("INSERT INTO projects_meta VALUES ('keep', '{\"id\": \"keep\", \"name\": \"Kept\"}')")
    conn.execute("CREATE TABLE files_store (project_id TEXT PRIMARY KEY, payload TEXT NOT NULL)")
    conn.execute("PRAGMA user_version = 1")
    conn.commit()
    conn.close()

    assert local_store.init_local_store() == LOCAL_SCHEMA_VERSION
    assert "chat_store" in _tables(local_store.LOCAL_DB_PATH)
    assert local_store.get_project("keep").name == "Kept"


def test_metadata_round_trip_and_order():
    old = ProjectMetadata(name="Old", id="old", last_opened=parse_timestamp("2020-01-01T00:00:00Z"))
    new = ProjectMetadata(name="New", id="new", description="fresh")
    local_store.save_project_metadata(old)
    local_store.save_project_metadata(new)

    projects = local_store.list_projects()

    assert [p.id for p in projects] == ["new", "old"]
    assert projects[0].description == "fresh"
    assert local_store.get_project("missing") is None


def test_state_round_trip():
    payload = {
        "rootNodes": [{"id": "a", "name": "a", "type": "file", "path": "a", "content": "1", "isOpen": False}],
        "knowledgeBase": "notes",
        "clipboardItems": [{"id": "c1", "content": "x"}],
    }
    local_store.save_project_state("p1", payload)

    record = local_store.load_project_state("p1")

    assert record["rootNodes"] == payload["rootNodes"]
    assert record["knowledgeBase"] == "notes"
    assert record["clipboardItems"] == payload["clipboardItems"]
    assert record["activeFileId"] is None
    assert local_store.load_project_state("missing") is None


def test_missing_knowledge_base_keeps_the_stored_one():
    local_store.save_project_state("p1", {"rootNodes": [], "knowledgeBase": "notes"})

    local_store.save_project_state("p1", {"rootNodes": [], "knowledgeBase": None})
    assert local_store.load_project_state("p1")["knowledgeBase"] == "notes"

    local_store.save_project_state("p1", {"rootNodes": [], "knowledgeBase": ""})
    assert local_store.load_project_state("p1")["knowledgeBase"] == ""


def test_chat_history_is_append_only():
    m1 = ChatMessage(role="user", text="hi", id="m1")
    m2 = ChatMessage(role="model", text="hello", id="m2")

    assert local_store.save_chat_history("p1", [m1]) == 1
    assert local_store.save_chat_history("p1", [m1, m2, m2]) == 1

    history = local_store.load_chat_history("p1")
    assert [m.id for m in history] == ["m1", "m2"]
    assert local_store.load_chat_history("missing") == []


def test_delete_cascades_to_files_and_chat():
    local_store.save_project_metadata(ProjectMetadata(name="Gone", id="p1"))
    local_store.save_project_state("p1", {"rootNodes": []})
    local_store.save_chat_history("p1", [ChatMessage(role="user", text="hi")])

    assert local_store.delete_project("p1") is True
    assert local_store.get_project("p1") is None
    assert local_store.load_project_state("p1") is None
    assert local_store.load_chat_history("p1") == []
    assert local_store.delete_project("p1") is False


def test_corrupt_record_raises_local_store_error():
    local_store.init_local_store()
    conn = sqlite3.connect(str(local_store.LOCAL_DB_PATH))
    conn.execute("INSERT INTO files_store VALUES ('p1', '{broken')")
    conn.commit()
    conn.close()

    with pytest.raises(LocalStoreError):
        local_store.load_project_state("p1")


def test_unopenable_store_raises(tmp_path, monkeypatch):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    monkeypatch.setattr(local_store, "LOCAL_DB_PATH", blocker / "local.db")

    with pytest.raises(LocalStoreError):
        local_store.init_local_store()
