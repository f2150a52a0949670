"""
Database operations for the AutoCoder project store.
CRUD functions for Projects plus full-replace saves of project state
(file nodes, knowledge entries, clipboard items).
Each function has docstrings and type hints so it can be exposed as a tool.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from db.codec import (
    FlatRecord,
    flatten,
    parse_clipboard_items,
    parse_knowledge_base,
    rebuild,
    serialize_knowledge_base,
)
from shared.constants import CLIPBOARD_SENTINEL_NAME
from shared.exceptions import ProjectNotFoundError
from shared.models import (
    ClipboardItem,
    KnowledgeEntry,
    format_timestamp,
    new_id,
    nodes_from_dicts,
    nodes_to_dicts,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

# Database path
DB_PATH = Path(__file__).parent / "autocoder.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    last_opened TEXT NOT NULL,
    tasks_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS file_nodes (
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    id TEXT NOT NULL,
    parent_id TEXT,
    name TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('file', 'folder')),
    path TEXT NOT NULL,
    content TEXT,
    is_open INTEGER NOT NULL DEFAULT 0,
    position INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (project_id, id)
);

CREATE TABLE IF NOT EXISTS knowledge_entries (
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    id TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL DEFAULT 'general',
    position INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (project_id, id)
);

CREATE TABLE IF NOT EXISTS clipboard_items (
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    id TEXT NOT NULL,
    content TEXT NOT NULL,
    type TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    relevance TEXT NOT NULL DEFAULT 'medium',
    timestamp TEXT NOT NULL,
    pipeline_stage TEXT,
    metadata TEXT,
    linked_plan_node_id TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (project_id, id)
);

CREATE TABLE IF NOT EXISTS chat_messages (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK (role IN ('user', 'model')),
    text TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    metadata TEXT
);

CREATE INDEX IF NOT EXISTS idx_file_nodes_project ON file_nodes(project_id, position);
CREATE INDEX IF NOT EXISTS idx_chat_messages_project ON chat_messages(project_id, timestamp);
"""


@contextmanager
def get_connection():
    """Get database connection with proper settings."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_database():
    """Create all tables and indexes if they don't exist yet."""
    with get_connection() as conn:
        conn.executescript(SCHEMA)
        conn.commit()
    logger.info("Project store ready at %s", DB_PATH)


def _project_exists(conn: sqlite3.Connection, project_id: str) -> bool:
    return conn.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,)).fetchone() is not None


_PROJECT_SELECT = """
    SELECT p.*,
        (SELECT COUNT(*) FROM file_nodes f
            WHERE f.project_id = p.id AND f.type = 'file' AND f.name != ?) AS files_count,
        (SELECT COUNT(*) FROM chat_messages c WHERE c.project_id = p.id) AS chats_count
    FROM projects p
"""


def _project_row_to_dict(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row["description"],
        "createdAt": row["created_at"],
        "lastOpened": row["last_opened"],
        "stats": {
            "filesCount": row["files_count"],
            "chatsCount": row["chats_count"],
            "tasksCount": row["tasks_count"],
        },
    }


# =============================================================================
# PROJECTS CRUD
# =============================================================================

def create_project(name: str, project_id: str = "", description: str = "") -> dict:
    """
    Create a new project.

    Args:
        name: Project name (required, surrounding whitespace is trimmed)
        project_id: Optional client-generated ID; a UUID is generated when empty
        description: Optional description

    Returns:
        The created project metadata dict (with zeroed stats)

    Raises:
        ValueError: Blank name, or a project with this ID already exists
    """
    if not name or not str(name).strip():
        raise ValueError("Project name is required.")
    project_id = project_id or new_id()
    now = format_timestamp(utcnow())
    with get_connection() as conn:
        try:
            conn.execute("""
                INSERT INTO projects (id, name, description, created_at, last_opened)
                VALUES (?, ?, ?, ?, ?)
            """, (project_id, str(name).strip(), description or None, now, now))
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Project {project_id} already exists") from e
        conn.commit()
    logger.info("Created project %s (%s)", project_id, name)
    return get_project(project_id)


def get_project(project_id: str) -> dict:
    """
    Get a single project by ID.

    Args:
        project_id: The unique project ID

    Returns:
        Dict with project metadata and stats, or empty dict if not found
    """
    with get_connection() as conn:
        row = conn.execute(
            _PROJECT_SELECT + " WHERE p.id = ?", (CLIPBOARD_SENTINEL_NAME, project_id)
        ).fetchone()
        return _project_row_to_dict(row) if row else {}


def list_projects(limit: int = 100) -> list:
    """
    List projects, most recently opened first.

    Stats are derived on read: file nodes and chat messages are counted,
    the task count is the last value reported by the client.

    Args:
        limit: Maximum number of projects to return

    Returns:
        List of project metadata dicts
    """
    with get_connection() as conn:
        rows = conn.execute(
            _PROJECT_SELECT + " ORDER BY p.last_opened DESC LIMIT ?",
            (CLIPBOARD_SENTINEL_NAME, limit),
        ).fetchall()
        return [_project_row_to_dict(row) for row in rows]


def update_project(
    project_id: str,
    name: str = "",
    description: str = "",
    tasks_count: int = -1,
    last_opened: str = "",
) -> bool:
    """
    Update project metadata and mark it as opened.

    Args:
        project_id: The project ID to update
        name: New name (optional, empty string = no change)
        description: New description (optional)
        tasks_count: Task/plan node count reported by the client (-1 = no change)
        last_opened: ISO timestamp (optional, defaults to now)

    Returns:
        True if the project exists and was updated
    """
    updates = ["last_opened = ?"]
    params: list = [format_timestamp(parse_timestamp(last_opened or None))]
    if name and name.strip():
        updates.append("name = ?")
        params.append(name.strip())
    if description:
        updates.append("description = ?")
        params.append(description)
    if tasks_count >= 0:
        updates.append("tasks_count = ?")
        params.append(tasks_count)

    params.append(project_id)
    with get_connection() as conn:
        cursor = conn.execute(f"UPDATE projects SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
        return cursor.rowcount > 0


def delete_project(project_id: str) -> bool:
    """
    Delete a project and, by cascade, its files, knowledge, clipboard and chat.

    Args:
        project_id: The project ID to delete

    Returns:
        True if a project was deleted, False if it did not exist
    """
    with get_connection() as conn:
        cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        conn.commit()
        deleted = cursor.rowcount > 0
    if deleted:
        logger.info("Deleted project %s", project_id)
    return deleted


# =============================================================================
# PROJECT STATE
# =============================================================================

def save_project_state(
    project_id: str,
    root_nodes: list,
    knowledge_base: Optional[str] = None,
    clipboard_items: Optional[list] = None,
) -> dict:
    """
    Persist the complete current state of a project (full replace).

    Every submitted node is upserted by ID and every stored node of the
    project whose ID was not submitted is deleted. Knowledge entries and
    clipboard items are deleted and re-inserted wholesale when provided.
    Everything runs in one transaction.

    Args:
        project_id: The project ID
        root_nodes: Nested node dicts (wire shape) for the whole tree
        knowledge_base: Serialized knowledge base (None = leave untouched)
        clipboard_items: Clipboard item dicts (None = leave untouched)

    Returns:
        Dict with counts: upserted, deleted, knowledge, clipboard

    Raises:
        ProjectNotFoundError: Unknown project
        InvalidNodeError: Malformed or duplicate nodes
    """
    records = flatten(nodes_from_dicts(root_nodes))
    now = format_timestamp(utcnow())
    summary = {"upserted": len(records), "deleted": 0, "knowledge": None, "clipboard": None}

    with get_connection() as conn:
        if not _project_exists(conn, project_id):
            raise ProjectNotFoundError(f"Project {project_id} not found")

        conn.execute("UPDATE projects SET last_opened = ? WHERE id = ?", (now, project_id))

        conn.executemany("""
            INSERT INTO file_nodes
                (project_id, id, parent_id, name, type, path, content, is_open, position, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(project_id, id) DO UPDATE SET
                parent_id = excluded.parent_id,
                name = excluded.name,
                type = excluded.type,
                path = excluded.path,
                content = excluded.content,
                is_open = excluded.is_open,
                position = excluded.position,
                updated_at = excluded.updated_at
        """, [
            (project_id, r.id, r.parent_id, r.name, r.type, r.path, r.content,
             int(r.is_open), r.position, now, now)
            for r in records
        ])

        submitted = {r.id for r in records}
        stale = [
            row["id"] for row in conn.execute(
                "SELECT id, name FROM file_nodes WHERE project_id = ?", (project_id,)
            )
            if row["id"] not in submitted
            # legacy clipboard rows survive until the clipboard is saved on its own
            and (clipboard_items is not None or row["name"] != CLIPBOARD_SENTINEL_NAME)
        ]
        conn.executemany(
            "DELETE FROM file_nodes WHERE project_id = ? AND id = ?",
            [(project_id, node_id) for node_id in stale],
        )
        summary["deleted"] = len(stale)

        if knowledge_base is not None:
            entries = parse_knowledge_base(knowledge_base)
            conn.execute("DELETE FROM knowledge_entries WHERE project_id = ?", (project_id,))
            conn.executemany("""
                INSERT OR REPLACE INTO knowledge_entries
                    (project_id, id, title, content, category, position, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, [
                (project_id, e.id, e.title, e.content, e.category, i, format_timestamp(e.updated_at))
                for i, e in enumerate(entries)
            ])
            summary["knowledge"] = len(entries)

        if clipboard_items is not None:
            items = parse_clipboard_items(clipboard_items)
            conn.execute("DELETE FROM clipboard_items WHERE project_id = ?", (project_id,))
            conn.executemany("""
                INSERT OR REPLACE INTO clipboard_items
                    (project_id, id, content, type, summary, relevance, timestamp,
                     pipeline_stage, metadata, linked_plan_node_id, position)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (project_id, c.id, c.content, c.type, c.summary, c.relevance,
                 format_timestamp(c.timestamp), c.pipeline_stage,
                 json.dumps(c.metadata) if c.metadata else None, c.linked_plan_node_id, i)
                for i, c in enumerate(items)
            ])
            summary["clipboard"] = len(items)

        conn.commit()

    logger.debug("Saved state of %s: %s", project_id, summary)
    return summary


def load_project_state(project_id: str) -> dict:
    """
    Load the state of a project as a nested tree.

    Args:
        project_id: The project ID

    Returns:
        Dict with rootNodes, activeFileId (always None), knowledgeBase
        (serialized entries) and clipboardItems; empty dict if not found
    """
    with get_connection() as conn:
        if not _project_exists(conn, project_id):
            return {}
        node_rows = conn.execute(
            "SELECT * FROM file_nodes WHERE project_id = ? ORDER BY position, rowid", (project_id,)
        ).fetchall()
        kb_rows = conn.execute(
            "SELECT * FROM knowledge_entries WHERE project_id = ? ORDER BY position", (project_id,)
        ).fetchall()
        clip_rows = conn.execute(
            "SELECT * FROM clipboard_items WHERE project_id = ? ORDER BY position", (project_id,)
        ).fetchall()

    roots, legacy_clipboard = rebuild([_row_to_record(row) for row in node_rows])

    entries = [
        KnowledgeEntry(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            category=row["category"],
            updated_at=parse_timestamp(row["updated_at"]),
        )
        for row in kb_rows
    ]
    clipboard = [_clipboard_row_to_dict(row) for row in clip_rows]
    if not clipboard and legacy_clipboard:
        clipboard = [item.to_dict() for item in legacy_clipboard]

    return {
        "rootNodes": nodes_to_dicts(roots),
        "activeFileId": None,
        "knowledgeBase": serialize_knowledge_base(entries),
        "clipboardItems": clipboard,
    }


def _row_to_record(row: sqlite3.Row) -> FlatRecord:
    return FlatRecord(
        id=row["id"],
        parent_id=row["parent_id"],
        name=row["name"],
        type=row["type"],
        path=row["path"],
        content=row["content"],
        is_open=bool(row["is_open"]),
        position=row["position"],
    )


def _clipboard_row_to_dict(row: sqlite3.Row) -> dict:
    return ClipboardItem(
        id=row["id"],
        content=row["content"],
        type=row["type"],
        summary=row["summary"],
        relevance=row["relevance"],
        timestamp=parse_timestamp(row["timestamp"]),
        pipeline_stage=row["pipeline_stage"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        linked_plan_node_id=row["linked_plan_node_id"],
    ).to_dict()


# =============================================================================
# STATS
# =============================================================================

def get_stats() -> dict:
    """
    Get store-wide statistics.

    Returns:
        Dict with total_projects, total_nodes, total_files, total_messages,
        total_knowledge_entries
    """
    with get_connection() as conn:
        def count(sql: str, params: tuple = ()) -> int:
            return conn.execute(sql, params).fetchone()[0]

        return {
            "total_projects": count("SELECT COUNT(*) FROM projects"),
            "total_nodes": count("SELECT COUNT(*) FROM file_nodes"),
            "total_files": count(
                "SELECT COUNT(*) FROM file_nodes WHERE type = 'file' AND name != ?",
                (CLIPBOARD_SENTINEL_NAME,),
            ),
            "total_messages": count("SELECT COUNT(*) FROM chat_messages"),
            "total_knowledge_entries": count("SELECT COUNT(*) FROM knowledge_entries"),
        }
