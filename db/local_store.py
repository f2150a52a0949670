"""
Local embedded store.

Fallback persistence used when the remote project store cannot be reached.
One SQLite file holds one JSON record per project in each container:

    projects_meta  - project metadata (id, name, stats, timestamps)
    files_store    - tree + knowledge base + clipboard of a project
    chat_store     - chat history of a project

plus the ``settings`` and ``app_logs`` tables used by services. The schema
version lives in ``PRAGMA user_version``; containers introduced after the
stored version are created on first use.
"""

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from shared.constants import LOCAL_SCHEMA_VERSION
from shared.exceptions import LocalStoreError
from shared.models import ChatMessage, ProjectMetadata

# Database path
LOCAL_DB_PATH = Path(__file__).parent / "local_cache.db"

# version -> statements creating what that version introduced
_MIGRATIONS = {
    1: [
        "CREATE TABLE IF NOT EXISTS projects_meta (id TEXT PRIMARY KEY, payload TEXT NOT NULL)",
        "CREATE TABLE IF NOT EXISTS files_store (project_id TEXT PRIMARY KEY, payload TEXT NOT NULL)",
    ],
    2: [
        "CREATE TABLE IF NOT EXISTS chat_store (project_id TEXT PRIMARY KEY, payload TEXT NOT NULL)",
    ],
    3: [
        """CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )""",
        """CREATE TABLE IF NOT EXISTS app_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            level TEXT NOT NULL,
            project_id TEXT,
            module TEXT,
            function TEXT,
            message TEXT,
            metadata TEXT
        )""",
    ],
    # v4 added clipboardItems to files_store payloads; no container change
    4: [],
}


def _ensure_schema(conn: sqlite3.Connection):
    current = conn.execute("PRAGMA user_version").fetchone()[0]
    if current >= LOCAL_SCHEMA_VERSION:
        return
    for version in range(current + 1, LOCAL_SCHEMA_VERSION + 1):
        for statement in _MIGRATIONS.get(version, []):
            conn.execute(statement)
    conn.execute(f"PRAGMA user_version = {LOCAL_SCHEMA_VERSION}")
    conn.commit()


@contextmanager
def get_connection():
    """Connection to the local store, schema initialized.

    Raises:
        LocalStoreError: Any SQLite failure inside the block.
    """
    try:
        LOCAL_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(LOCAL_DB_PATH), timeout=5)
    except (OSError, sqlite3.Error) as e:
        raise LocalStoreError(f"Cannot open local store: {e}") from e
    conn.row_factory = sqlite3.Row
    try:
        _ensure_schema(conn)
        yield conn
    except sqlite3.Error as e:
        raise LocalStoreError(f"Local store failure: {e}") from e
    finally:
        conn.close()


def init_local_store() -> int:
    """Create or upgrade the local store. Returns the schema version."""
    with get_connection() as conn:
        return conn.execute("PRAGMA user_version").fetchone()[0]


def _put(conn: sqlite3.Connection, table: str, key_column: str, key: str, payload: dict):
    conn.execute(
        f"INSERT INTO {table} ({key_column}, payload) VALUES (?, ?) "
        f"ON CONFLICT({key_column}) DO UPDATE SET payload = excluded.payload",
        (key, json.dumps(payload, ensure_ascii=False)),
    )


def _get(conn: sqlite3.Connection, table: str, key_column: str, key: str) -> Optional[dict]:
    row = conn.execute(f"SELECT payload FROM {table} WHERE {key_column} = ?", (key,)).fetchone()
    if row is None:
        return None
    try:
        return json.loads(row["payload"])
    except json.JSONDecodeError as e:
        raise LocalStoreError(f"Corrupt {table} record for {key}: {e}") from e


# =============================================================================
# PROJECTS
# =============================================================================

def save_project_metadata(project: ProjectMetadata):
    with get_connection() as conn:
        _put(conn, "projects_meta", "id", project.id, project.to_dict())
        conn.commit()


def get_project(project_id: str) -> Optional[ProjectMetadata]:
    with get_connection() as conn:
        payload = _get(conn, "projects_meta", "id", project_id)
    return ProjectMetadata.from_dict(payload) if payload else None


def list_projects() -> list[ProjectMetadata]:
    """All locally known projects, most recently opened first."""
    with get_connection() as conn:
        rows = conn.execute("SELECT payload FROM projects_meta").fetchall()
    projects = []
    for row in rows:
        try:
            projects.append(ProjectMetadata.from_dict(json.loads(row["payload"])))
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise LocalStoreError(f"Corrupt projects_meta record: {e}") from e
    return sorted(projects, key=lambda p: p.last_opened, reverse=True)


def delete_project(project_id: str) -> bool:
    """Delete a project's metadata, files and chat in one transaction."""
    with get_connection() as conn:
        deleted = 0
        for table, key_column in (
            ("projects_meta", "id"),
            ("files_store", "project_id"),
            ("chat_store", "project_id"),
        ):
            deleted += conn.execute(f"DELETE FROM {table} WHERE {key_column} = ?", (project_id,)).rowcount
        conn.commit()
    return deleted > 0


# =============================================================================
# PROJECT STATE
# =============================================================================

def save_project_state(project_id: str, payload: dict):
    """Overwrite the files record of a project.

    A ``knowledgeBase`` of None keeps the stored one, as the remote store
    does; an empty string clears it.

    Args:
        project_id: The project ID
        payload: Save body ``{rootNodes, knowledgeBase, clipboardItems}``
    """
    with get_connection() as conn:
        knowledge_base = payload.get("knowledgeBase")
        if knowledge_base is None:
            previous = _get(conn, "files_store", "project_id", project_id) or {}
            knowledge_base = previous.get("knowledgeBase") or ""
        record = {
            "projectId": project_id,
            "rootNodes": payload.get("rootNodes") or [],
            "activeFileId": None,
            "knowledgeBase": knowledge_base,
            "clipboardItems": payload.get("clipboardItems") or [],
        }
        _put(conn, "files_store", "project_id", project_id, record)
        conn.commit()


def load_project_state(project_id: str) -> Optional[dict]:
    """Files record of a project, or None when nothing was saved locally."""
    with get_connection() as conn:
        return _get(conn, "files_store", "project_id", project_id)


# =============================================================================
# CHAT HISTORY
# =============================================================================

def save_chat_history(project_id: str, messages: list[ChatMessage]) -> int:
    """Append messages not stored yet (by id). Returns how many were added."""
    with get_connection() as conn:
        record = _get(conn, "chat_store", "project_id", project_id) or {
            "projectId": project_id,
            "messages": [],
        }
        known = {m.get("id") for m in record["messages"]}
        added = []
        for message in messages:
            if message.id not in known:
                known.add(message.id)
                added.append(message.to_dict())
        if added:
            record["messages"].extend(added)
            _put(conn, "chat_store", "project_id", project_id, record)
            conn.commit()
    return len(added)


def load_chat_history(project_id: str) -> list[ChatMessage]:
    with get_connection() as conn:
        record = _get(conn, "chat_store", "project_id", project_id)
    if not record:
        return []
    try:
        return [ChatMessage.from_dict(m) for m in record.get("messages", [])]
    except (KeyError, TypeError, ValueError) as e:
        raise LocalStoreError(f"Corrupt chat record for {project_id}: {e}") from e
