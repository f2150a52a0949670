"""
AutoCoder API Layer - workspace operations as plain functions.
All functions are exposed via gr.api() in app.py for MCP tool access.

One ProjectSession is kept per opened project; the persistence gateway is
built from settings on first use (see configure() to inject one).
"""

import logging
from pathlib import Path
from typing import Optional

from services.persistence import PersistenceGateway
from services.registry import ProjectRegistry
from services.workspace import ProjectSession
from shared.models import ClipboardItem, nodes_to_dicts

logger = logging.getLogger(__name__)

_gateway: Optional[PersistenceGateway] = None
_sessions: dict[str, ProjectSession] = {}


def configure(gateway: Optional[PersistenceGateway]):
    """Replace the gateway and forget all open sessions."""
    global _gateway
    _gateway = gateway
    _sessions.clear()


def _get_gateway() -> PersistenceGateway:
    global _gateway
    if _gateway is None:
        _gateway = PersistenceGateway.from_settings()
    return _gateway


def _registry() -> ProjectRegistry:
    return ProjectRegistry(_get_gateway())


async def _session(project_id: str) -> Optional[ProjectSession]:
    session = _sessions.get(project_id)
    if session is not None:
        return session
    project = await _registry().get(project_id)
    if project is None:
        return None
    session = ProjectSession(project, _get_gateway())
    await session.open()
    _sessions[project_id] = session
    return session


def _summary(session: ProjectSession) -> dict:
    return {
        "id": session.project_id,
        "name": session.project.name,
        "stats": session.stats().to_dict(),
    }


_NOT_FOUND = {"error": "Project not found"}


# =============================================================================
# PROJECTS
# =============================================================================

async def list_projects() -> list:
    """
    List all projects, most recently opened first.

    Returns:
        List of project dicts with id, name, description, timestamps and stats
    """
    return [p.to_dict() for p in await _registry().list()]


async def create_project(name: str, description: str = "") -> dict:
    """
    Create a new empty project.

    Args:
        name: Project name (required)
        description: Optional description

    Returns:
        The created project dict, or a dict with an error message
    """
    try:
        project = await _registry().create(name, description)
    except ValueError as e:
        return {"error": str(e)}
    if project is None:
        return {"error": "Project could not be stored"}
    return project.to_dict()


async def delete_project(project_id: str) -> dict:
    """
    Delete a project with its files, knowledge base, clipboard and chat.

    Args:
        project_id: The project ID

    Returns:
        Dict with 'deleted' flag
    """
    session = _sessions.pop(project_id, None)
    if session is not None:
        await session.close()
    return {"deleted": await _registry().delete(project_id)}


async def open_project(project_id: str) -> dict:
    """
    Open (load) a project and return its tree.

    Args:
        project_id: The project ID

    Returns:
        Dict with project summary, rootNodes, knowledgeBase and clipboardItems
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    return {**_summary(session), **session.state().to_dict()}


async def close_project(project_id: str) -> dict:
    """
    Wait for pending saves of a project and drop it from memory.

    Args:
        project_id: The project ID

    Returns:
        Dict with 'closed' flag
    """
    session = _sessions.pop(project_id, None)
    if session is None:
        return {"closed": False}
    await session.close()
    return {"closed": True}


# =============================================================================
# FILE TREE
# =============================================================================

async def import_file(project_id: str, file_path: str) -> dict:
    """
    Import a file into a project. A .zip archive replaces the whole tree,
    any other file is added at the root.

    Args:
        project_id: The project ID
        file_path: Path of the uploaded file on the server

    Returns:
        Dict with number of imported nodes and project stats
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    path = Path(file_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        return {"error": f"Cannot read {file_path}: {e}"}
    nodes = session.import_upload(path.name, data)
    return {**_summary(session), "imported": len(nodes)}


async def toggle_folder(project_id: str, node_id: str) -> dict:
    """
    Expand or collapse a folder.

    Args:
        project_id: The project ID
        node_id: ID of the folder node

    Returns:
        Dict with 'changed' flag
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    return {"changed": session.toggle_folder(node_id)}


async def edit_file(project_id: str, path: str, content: str) -> dict:
    """
    Write content to the file at a path, creating it at the root if missing.

    Args:
        project_id: The project ID
        path: Full path of the file within the project
        content: New file content

    Returns:
        Dict with 'changed' flag
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    return {"changed": session.edit_file(path, content)}


async def apply_file_changes(project_id: str, text: str) -> dict:
    """
    Apply file changes proposed by the assistant.

    Args:
        project_id: The project ID
        text: Assistant reply containing a <file_changes> block, or a bare
            JSON array of {path, content} objects

    Returns:
        Dict with number of applied changes
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    return {"applied": session.apply_file_changes(text)}


async def remove_node(project_id: str, node_id: str) -> dict:
    """
    Remove a file or folder (with its subtree) from a project.

    Args:
        project_id: The project ID
        node_id: ID of the node to remove

    Returns:
        Dict with 'removed' flag
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    return {"removed": session.remove_node(node_id)}


async def get_file_tree(project_id: str) -> list:
    """
    Get the file tree of a project.

    Args:
        project_id: The project ID

    Returns:
        Nested list of node dicts (empty if the project does not exist)
    """
    session = await _session(project_id)
    return nodes_to_dicts(session.tree.roots) if session else []


async def get_project_context(project_id: str) -> str:
    """
    Get the full text of every non-binary file, as context for an assistant.

    Args:
        project_id: The project ID

    Returns:
        Concatenated 'FILE: <path>' sections
    """
    session = await _session(project_id)
    return session.project_context() if session else ""


# =============================================================================
# KNOWLEDGE, CLIPBOARD, CHAT
# =============================================================================

async def set_knowledge_base(project_id: str, knowledge_base: str) -> dict:
    """
    Replace the knowledge base of a project.

    Args:
        project_id: The project ID
        knowledge_base: JSON array of {title, content, category} entries,
            or free text (stored as one general entry)

    Returns:
        Dict with 'saved' flag
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    session.set_knowledge_base(knowledge_base)
    return {"saved": True}


async def add_clipboard_item(
    project_id: str,
    content: str,
    item_type: str = "idea",
    summary: str = "",
    relevance: str = "medium",
) -> dict:
    """
    Add an item to the project clipboard.

    Args:
        project_id: The project ID
        content: Clipboard text
        item_type: idea, prompt_tool, prompt_helper, link_tool, link_article,
            link_video, video_tutorial or irrelevant
        summary: Short summary
        relevance: high, medium or low

    Returns:
        The stored clipboard item dict
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    item = ClipboardItem.from_dict({
        "content": content, "type": item_type, "summary": summary, "relevance": relevance,
    })
    return session.add_clipboard_item(item).to_dict()


async def remove_clipboard_item(project_id: str, item_id: str) -> dict:
    """
    Remove an item from the project clipboard.

    Args:
        project_id: The project ID
        item_id: Clipboard item ID

    Returns:
        Dict with 'removed' flag
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    return {"removed": session.remove_clipboard_item(item_id)}


async def add_chat_message(project_id: str, role: str, text: str) -> dict:
    """
    Append a message to the project chat history.

    Args:
        project_id: The project ID
        role: 'user' or 'model'
        text: Message text

    Returns:
        The stored message dict
    """
    session = await _session(project_id)
    if session is None:
        return _NOT_FOUND
    try:
        return session.add_chat_message(role, text).to_dict()
    except ValueError as e:
        return {"error": str(e)}


async def get_chat_history(project_id: str) -> list:
    """
    Get the chat history of a project, oldest first.

    Args:
        project_id: The project ID

    Returns:
        List of message dicts
    """
    session = await _session(project_id)
    return [m.to_dict() for m in session.messages] if session else []


__all__ = [
    'list_projects', 'create_project', 'delete_project', 'open_project', 'close_project',
    'import_file', 'toggle_folder', 'edit_file', 'apply_file_changes', 'remove_node',
    'get_file_tree', 'get_project_context',
    'set_knowledge_base', 'add_clipboard_item', 'remove_clipboard_item',
    'add_chat_message', 'get_chat_history',
]
