"""
Chat operations for the AutoCoder project store.
Append-only chat history: messages are inserted once and never updated
or removed by a save (only project deletion removes them).
"""

import json
import logging

from db.operations import get_connection
from shared.exceptions import ProjectNotFoundError
from shared.models import ChatMessage, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def append_messages(project_id: str, messages: list) -> int:
    """Insert every message whose ID is not stored yet.

    Args:
        project_id: The project the messages belong to
        messages: Message dicts with id, role, text, timestamp

    Returns:
        Number of messages actually inserted

    Raises:
        ProjectNotFoundError: Unknown project
        ValueError: A message has no id or an invalid role (nothing is written)
    """
    try:
        parsed = [ChatMessage.from_dict(m) for m in messages or []]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed chat message: {e}") from e

    with get_connection() as conn:
        if conn.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,)).fetchone() is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")
        inserted = 0
        for msg in parsed:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO chat_messages (id, project_id, role, text, timestamp, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                msg.id,
                project_id,
                msg.role,
                msg.text,
                format_timestamp(msg.timestamp),
                json.dumps(msg.metadata) if msg.metadata else None,
            ))
            inserted += cursor.rowcount
        conn.commit()

    if inserted:
        logger.debug("Appended %d chat messages to %s", inserted, project_id)
    return inserted


def get_messages(project_id: str, limit: int = 0) -> list:
    """Get the chat history of a project, oldest first.

    Args:
        project_id: The project ID
        limit: Maximum number of messages (0 = all)

    Returns:
        List of message dicts (wire shape)
    """
    query = "SELECT * FROM chat_messages WHERE project_id = ? ORDER BY timestamp ASC, rowid ASC"
    params: list = [project_id]
    if limit > 0:
        query += " LIMIT ?"
        params.append(limit)
    with get_connection() as conn:
        rows = conn.execute(query, params).fetchall()
    return [
        ChatMessage(
            id=row["id"],
            role=row["role"],
            text=row["text"],
            timestamp=parse_timestamp(row["timestamp"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        ).to_dict()
        for row in rows
    ]


def count_messages(project_id: str) -> int:
    """Number of stored messages for a project."""
    with get_connection() as conn:
        return conn.execute(
            "SELECT COUNT(*) FROM chat_messages WHERE project_id = ?", (project_id,)
        ).fetchone()[0]
