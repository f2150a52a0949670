"""Tests for the project registry and open-project sessions."""

import io
import zipfile

import pytest

from db import chat_operations, operations
from services.persistence import PersistenceGateway
from services.registry import ProjectRegistry, compute_stats
from services.workspace import ProjectSession
from shared.models import ChatMessage, ClipboardItem, FileNode, FolderNode, ProjectMetadata


def _zip(entries: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buf.getvalue()


ARCHIVE = _zip({"src/": "", "src/a.js": "x", "readme.md": "y"})


async def _open(gateway: PersistenceGateway, project: ProjectMetadata) -> ProjectSession:
    session = ProjectSession(project, gateway)
    await session.open()
    return session


# --- registry ---

def test_compute_stats_counts_files_messages_and_tasks():
    roots = [
        FolderNode(id="d/", name="d", path="d", children=[
            FileNode(id="d/a", name="a", path="d/a", content=""),
            FileNode(id="d/b", name="b", path="d/b", content=""),
        ]),
        FileNode(id="c", name="c", path="c", content=""),
    ]
    messages = [ChatMessage(role="user", text="hi")]

    stats = compute_stats(roots, messages, [{"id": "1"}, {"id": "2"}])

    assert (stats.files_count, stats.chats_count, stats.tasks_count) == (3, 1, 2)


@pytest.mark.asyncio
async def test_registry_create_list_delete():
    registry = ProjectRegistry(PersistenceGateway(remote=None))

    created = await registry.create("  Shop  ", "online store")
    listed = await registry.list()

    assert created.name == "Shop"
    assert [p.id for p in listed] == [created.id]
    assert (await registry.get(created.id)).description == "online store"
    assert await registry.delete(created.id) is True
    assert await registry.delete(created.id) is False
    with pytest.raises(ValueError):
        await registry.create(" ")


# --- sessions ---

@pytest.mark.asyncio
async def test_import_persists_and_reloads(remote_client, remote_project):
    gateway = PersistenceGateway(remote=remote_client)
    project = ProjectMetadata.from_dict(remote_project)
    session = await _open(gateway, project)

    imported = session.import_upload("site.zip", ARCHIVE)
    await session.flush()

    assert [n.id for n in imported] == ["src/", "readme.md"]
    reopened = await _open(gateway, project)
    assert reopened.tree.roots == session.tree.roots
    stats = operations.get_project("p1")["stats"]
    assert stats["filesCount"] == 2
    assert stats["tasksCount"] == 1


@pytest.mark.asyncio
async def test_zip_replaces_tree_and_single_file_appends():
    gateway = PersistenceGateway(remote=None)
    session = await _open(gateway, ProjectMetadata(name="Local", id="l1"))

    session.import_upload("schema.sql", b"CREATE TABLE t (id INT);")
    session.import_upload("site.zip", ARCHIVE)
    session.import_upload("data.sql", b"INSERT INTO t VALUES (1);")
    await session.flush()

    assert [n.path for n in session.tree.roots] == ["src", "readme.md", "/data.sql"]


@pytest.mark.asyncio
async def test_reuploading_a_file_overwrites_it():
    gateway = PersistenceGateway(remote=None)
    session = await _open(gateway, ProjectMetadata(name="Local", id="l1"))

    [first] = session.import_upload("a.sql", b"x")
    [second] = session.import_upload("a.sql", b"y")
    await session.flush()

    assert second.id == first.id
    assert [(n.path, n.content) for n in session.tree.roots] == [("/a.sql", "y")]
    reopened = await _open(gateway, ProjectMetadata(name="Local", id="l1"))
    assert [(n.path, n.content) for n in reopened.tree.roots] == [("/a.sql", "y")]


@pytest.mark.asyncio
async def test_corrupt_upload_is_ignored():
    session = await _open(PersistenceGateway(remote=None), ProjectMetadata(name="L", id="l1"))

    assert session.import_upload("broken.zip", b"nope") == []
    assert session.tree.roots == []


@pytest.mark.asyncio
async def test_edits_and_removals_survive_reload(remote_client, remote_project):
    gateway = PersistenceGateway(remote=remote_client)
    project = ProjectMetadata.from_dict(remote_project)
    session = await _open(gateway, project)
    session.import_upload("site.zip", ARCHIVE)

    assert session.toggle_folder("src/") is True
    assert session.edit_file("src/a.js", "z") is True
    assert session.edit_file("src", "folders have no content") is False
    assert session.remove_node("readme.md") is True
    await session.flush()

    reopened = await _open(gateway, project)
    [src] = reopened.tree.roots
    assert src.is_open is True
    assert src.children[0].content == "z"


@pytest.mark.asyncio
async def test_assistant_file_changes_are_applied():
    session = await _open(PersistenceGateway(remote=None), ProjectMetadata(name="L", id="l1"))
    session.import_upload("site.zip", ARCHIVE)
    reply = (
        "Updated the entry point.\n"
        '<file_changes>[{"path": "src/a.js", "content": "console.log(1)"},'
        ' {"path": "docs/new.md", "content": "# New"}]</file_changes>'
    )

    assert session.apply_file_changes(reply) == 2
    assert session.apply_file_changes("<file_changes>{oops</file_changes>") == 0
    assert session.tree.find_by_path("src/a.js").content == "console.log(1)"
    assert session.tree.roots[-1].path == "docs/new.md"
    assert "FILE: docs/new.md\n# New" in session.project_context()


@pytest.mark.asyncio
async def test_side_collections_are_persisted(failing_client):
    gateway = PersistenceGateway(remote=failing_client)
    project = ProjectMetadata(name="Offline", id="o1")
    session = await _open(gateway, project)

    session.set_knowledge_base('[{"title": "Goal", "content": "Build X"}]')
    kept = session.add_clipboard_item(ClipboardItem(content="keep"))
    dropped = session.add_clipboard_item(ClipboardItem(content="drop"))
    assert session.remove_clipboard_item(dropped.id) is True
    assert session.remove_clipboard_item("unknown") is False
    session.add_chat_message("user", "hello")
    session.add_chat_message("model", "hi there")
    with pytest.raises(ValueError):
        session.add_chat_message("system", "nope")
    await session.close()

    reopened = await _open(gateway, project)
    assert '"Goal"' in reopened.knowledge_base
    assert [c.id for c in reopened.clipboard_items] == [kept.id]
    assert [m.text for m in reopened.messages] == ["hello", "hi there"]
    assert project.stats.chats_count == 2


@pytest.mark.asyncio
async def test_chat_messages_reach_remote(remote_client, remote_project):
    gateway = PersistenceGateway(remote=remote_client)
    session = await _open(gateway, ProjectMetadata.from_dict(remote_project))

    session.add_chat_message("user", "one")
    session.add_chat_message("model", "two")
    await session.flush()

    assert chat_operations.count_messages("p1") == 2


@pytest.mark.asyncio
async def test_select_file_is_not_persisted():
    gateway = PersistenceGateway(remote=None)
    project = ProjectMetadata(name="L", id="l1")
    session = await _open(gateway, project)
    session.import_upload("site.zip", ARCHIVE)

    assert session.select_file("src/") is None
    assert session.select_file("readme.md").id == "readme.md"
    await session.flush()

    reopened = await _open(gateway, project)
    assert reopened.active_file_id is None


@pytest.mark.asyncio
async def test_mutations_before_open_are_not_saved():
    gateway = PersistenceGateway(remote=None)
    session = ProjectSession(ProjectMetadata(name="L", id="l1"), gateway)

    session.set_knowledge_base("early")
    await session.flush()

    assert await gateway.load("l1") is None
