"""
File changes proposed by the assistant.

Replies may carry a ``<file_changes>`` block holding a JSON array of
``{"path": ..., "content": ...}`` objects. These helpers pull that payload
out of the reply and validate it before it is applied to the tree by path.
"""

import json
import logging
import re
from typing import Optional

from shared.constants import FILE_CHANGES_PATTERN
from shared.exceptions import FileChangesError

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def extract_file_changes(response_text: str) -> Optional[str]:
    """Return the JSON text inside the first ``<file_changes>`` block, if any.

    Args:
        response_text: The raw assistant reply.

    Returns:
        The block body with any markdown code fence removed, or None.
    """
    if not response_text:
        return None
    match = FILE_CHANGES_PATTERN.search(response_text)
    if not match:
        return None
    body = _FENCE_PATTERN.sub("", match.group(1).strip())
    return body or None


def parse_file_changes(json_text: str) -> list[dict]:
    """Parse a change list into ``[{"path": str, "content": str}]``.

    Entries without a usable path are logged and skipped.

    Raises:
        FileChangesError: The text is not JSON or not a JSON array.
    """
    try:
        data = json.loads(json_text)
    except (TypeError, json.JSONDecodeError) as e:
        raise FileChangesError(f"File changes are not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise FileChangesError("File changes must be a JSON array")

    changes = []
    for item in data:
        path = item.get("path") if isinstance(item, dict) else None
        if not isinstance(path, str) or not path.strip():
            logger.warning("Skipping file change without a path: %r", item)
            continue
        content = item.get("content")
        changes.append({"path": path, "content": "" if content is None else str(content)})
    return changes
