"""Tests for the tool functions exposed through gr.api."""

import io
import zipfile

import pytest

import api
from services.persistence import PersistenceGateway


@pytest.fixture
def local_api():
    api.configure(PersistenceGateway(remote=None))
    yield api


@pytest.fixture
def remote_api(remote_client):
    api.configure(PersistenceGateway(remote=remote_client))
    yield api


@pytest.mark.asyncio
async def test_project_tools(local_api):
    created = await local_api.create_project("Tools", "via api")
    assert (await local_api.create_project("  "))["error"]

    projects = await local_api.list_projects()
    assert [p["id"] for p in projects] == [created["id"]]

    assert (await local_api.delete_project(created["id"]))["deleted"] is True
    assert await local_api.list_projects() == []


@pytest.mark.asyncio
async def test_unknown_project(local_api):
    assert await local_api.open_project("ghost") == {"error": "Project not found"}
    assert await local_api.get_file_tree("ghost") == []
    assert await local_api.get_project_context("ghost") == ""
    assert (await local_api.close_project("ghost"))["closed"] is False


@pytest.mark.asyncio
async def test_workspace_tools_round_trip(remote_api, tmp_path):
    project = await remote_api.create_project("Site")
    pid = project["id"]
    archive = tmp_path / "site.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("src/", "")
        zf.writestr("src/a.js", "x")
        zf.writestr("readme.md", "y")

    imported = await remote_api.import_file(pid, str(archive))
    assert imported["imported"] == 2
    assert (await remote_api.toggle_folder(pid, "src/"))["changed"] is True
    assert (await remote_api.edit_file(pid, "src/a.js", "z"))["changed"] is True
    assert (await remote_api.apply_file_changes(pid, '[{"path": "notes.txt", "content": "n"}]'))["applied"] == 1
    assert (await remote_api.remove_node(pid, "readme.md"))["removed"] is True
    await remote_api.set_knowledge_base(pid, "Plain notes")
    item = await remote_api.add_clipboard_item(pid, "cache results", item_type="prompt_tool", relevance="high")
    await remote_api.add_chat_message(pid, "user", "hello")
    assert (await remote_api.add_chat_message(pid, "bot", "x"))["error"]

    assert (await remote_api.close_project(pid))["closed"] is True

    opened = await remote_api.open_project(pid)
    assert [n["path"] for n in opened["rootNodes"]] == ["src", "notes.txt"]
    assert opened["rootNodes"][0]["isOpen"] is True
    assert opened["rootNodes"][0]["children"][0]["content"] == "z"
    assert "General Context" in opened["knowledgeBase"]
    assert [c["id"] for c in opened["clipboardItems"]] == [item["id"]]
    assert opened["clipboardItems"][0]["type"] == "prompt_tool"
    assert [m["text"] for m in await remote_api.get_chat_history(pid)] == ["hello"]
    assert "FILE: src/a.js\nz" in await remote_api.get_project_context(pid)


@pytest.mark.asyncio
async def test_import_missing_file(local_api, tmp_path):
    project = await local_api.create_project("Files")

    result = await local_api.import_file(project["id"], str(tmp_path / "absent.zip"))

    assert "error" in result
