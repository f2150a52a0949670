"""
Reconciliation codec.

Converts between the nested file tree held by a workspace and the flat record
list kept by the stores (one row per node, linked by ``parent_id``), and
parses the auxiliary collections that travel as opaque strings: the knowledge
base and the clipboard.

Older stores kept the clipboard as a hidden file node named
``.vibecode_clipboard.json``. ``flatten`` can still emit that record and
``rebuild`` always strips it, so the sentinel never reaches a caller's tree.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

from shared.constants import (
    CLIPBOARD_SENTINEL_ID,
    CLIPBOARD_SENTINEL_NAME,
    CLIPBOARD_SENTINEL_PATH,
    LEGACY_KNOWLEDGE_ID,
    LEGACY_KNOWLEDGE_TITLE,
    NODE_TYPES,
)
from shared.exceptions import DuplicateNodeError, InvalidNodeError
from shared.models import (
    ClipboardItem,
    FileNode,
    FolderNode,
    KnowledgeEntry,
    ProjectState,
    TreeNode,
    nodes_from_dicts,
    nodes_to_dicts,
)

logger = logging.getLogger(__name__)


@dataclass
class FlatRecord:
    id: str
    parent_id: Optional[str]
    name: str
    type: str
    path: str
    content: Optional[str] = None
    is_open: bool = False
    position: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parentId": self.parent_id,
            "name": self.name,
            "type": self.type,
            "path": self.path,
            "content": self.content,
            "isOpen": self.is_open,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FlatRecord":
        if data.get("type") not in NODE_TYPES:
            raise InvalidNodeError(f"Unknown node type {data.get('type')!r}")
        return cls(
            id=str(data["id"]),
            parent_id=data.get("parentId"),
            name=data.get("name") or "",
            type=data["type"],
            path=data.get("path") or "",
            content=data.get("content"),
            is_open=bool(data.get("isOpen", False)),
            position=int(data.get("position") or 0),
        )


# =============================================================================
# TREE <-> RECORDS
# =============================================================================

def flatten(
    roots: list[TreeNode],
    clipboard_items: Optional[list[ClipboardItem]] = None,
) -> list[FlatRecord]:
    """
    Pre-order flatten of a tree into records with parent references.

    Args:
        roots: Root-level nodes.
        clipboard_items: When given, appended as one sentinel file record.

    Returns:
        Records in pre-order; ``position`` is the index in this list.

    Raises:
        DuplicateNodeError: Two nodes share an id.
    """
    records: list[FlatRecord] = []
    seen: set[str] = set()

    def visit(nodes: list[TreeNode], parent_id: Optional[str]):
        for node in nodes:
            if node.id in seen:
                raise DuplicateNodeError(f"Duplicate node id {node.id!r}")
            seen.add(node.id)
            is_folder = isinstance(node, FolderNode)
            records.append(FlatRecord(
                id=node.id,
                parent_id=parent_id,
                name=node.name,
                type=node.type,
                path=node.path,
                content=None if is_folder else node.content,
                is_open=node.is_open if is_folder else False,
                position=len(records),
            ))
            if is_folder:
                visit(node.children, node.id)

    visit(roots, None)

    if clipboard_items is not None:
        if CLIPBOARD_SENTINEL_ID in seen:
            raise DuplicateNodeError(f"Node id {CLIPBOARD_SENTINEL_ID!r} is reserved")
        records.append(FlatRecord(
            id=CLIPBOARD_SENTINEL_ID,
            parent_id=None,
            name=CLIPBOARD_SENTINEL_NAME,
            type="file",
            path=CLIPBOARD_SENTINEL_PATH,
            content=serialize_clipboard_items(clipboard_items),
            position=len(records),
        ))
    return records


def rebuild(records: list[FlatRecord]) -> tuple[list[TreeNode], Optional[list[ClipboardItem]]]:
    """
    Rebuild a tree from flat records, in record order.

    Sentinel clipboard records are removed from the tree and parsed on their
    own. Records whose parent is missing (or is a file) are promoted to root;
    records only reachable through a cycle are dropped with a warning.

    Returns:
        (root nodes, clipboard items or None when no sentinel was present)
    """
    clipboard_items: Optional[list[ClipboardItem]] = None
    by_id: dict[str, FlatRecord] = {}
    for record in records:
        if record.name == CLIPBOARD_SENTINEL_NAME:
            # a user file with the reserved name collides; last one wins
            clipboard_items = parse_clipboard_items(record.content)
            continue
        if record.id in by_id:
            logger.warning("Duplicate record id %s, keeping the first", record.id)
            continue
        by_id[record.id] = record

    children_of: dict[Optional[str], list[FlatRecord]] = defaultdict(list)
    for record in by_id.values():
        parent_id = record.parent_id
        if parent_id is not None:
            parent = by_id.get(parent_id)
            if parent is None or parent.type != "folder":
                logger.warning("Record %s has no folder %s, promoting to root", record.id, parent_id)
                parent_id = None
        children_of[parent_id].append(record)

    built: set[str] = set()

    def build(record: FlatRecord) -> TreeNode:
        built.add(record.id)
        if record.type == "folder":
            return FolderNode(
                id=record.id,
                name=record.name,
                path=record.path,
                children=[build(c) for c in children_of.get(record.id, []) if c.id not in built],
                is_open=record.is_open,
            )
        return FileNode(id=record.id, name=record.name, path=record.path, content=record.content)

    roots = [build(record) for record in children_of.get(None, [])]
    unreachable = len(by_id) - len(built)
    if unreachable:
        logger.warning("Dropped %d records unreachable from any root", unreachable)
    return roots, clipboard_items


def strip_sentinel(roots: list[TreeNode]) -> list[TreeNode]:
    """Remove sentinel clipboard nodes at any depth."""
    result = []
    for node in roots:
        if node.name == CLIPBOARD_SENTINEL_NAME:
            continue
        if isinstance(node, FolderNode):
            node = FolderNode(
                id=node.id,
                name=node.name,
                path=node.path,
                children=strip_sentinel(node.children),
                is_open=node.is_open,
            )
        result.append(node)
    return result


# =============================================================================
# KNOWLEDGE BASE
# =============================================================================

def parse_knowledge_base(text: Optional[str]) -> list[KnowledgeEntry]:
    """Parse the serialized knowledge base.

    Plain (non-JSON) text is legacy free-form context and becomes one
    ``general`` entry. JSON that is not a list of objects yields ``[]``.
    """
    if text is None or not str(text).strip():
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return [KnowledgeEntry(
            id=LEGACY_KNOWLEDGE_ID,
            title=LEGACY_KNOWLEDGE_TITLE,
            content=str(text),
            category="general",
        )]
    if not isinstance(data, list):
        logger.warning("Knowledge base is not a list, ignoring it")
        return []

    entries = []
    for item in data:
        if not isinstance(item, dict):
            logger.warning("Skipping malformed knowledge entry: %r", item)
            continue
        try:
            entries.append(KnowledgeEntry.from_dict(item))
        except (TypeError, ValueError) as e:
            logger.warning("Skipping malformed knowledge entry: %s", e)
    return entries


def serialize_knowledge_base(entries: list[KnowledgeEntry]) -> str:
    return json.dumps([entry.to_dict() for entry in entries], ensure_ascii=False)


# =============================================================================
# CLIPBOARD
# =============================================================================

def parse_clipboard_items(value) -> list[ClipboardItem]:
    """Parse clipboard items from a JSON string or a list of dicts.

    Never raises: unparsable input yields ``[]`` and bad items are skipped.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Clipboard payload is not valid JSON, using an empty clipboard")
            return []
    if not isinstance(value, list):
        logger.warning("Clipboard payload is not a list, using an empty clipboard")
        return []

    items = []
    for item in value:
        if not isinstance(item, dict):
            continue
        try:
            items.append(ClipboardItem.from_dict(item))
        except (TypeError, ValueError) as e:
            logger.warning("Skipping malformed clipboard item: %s", e)
    return items


def serialize_clipboard_items(items: list[ClipboardItem]) -> str:
    return json.dumps([item.to_dict() for item in items], ensure_ascii=False)


# =============================================================================
# TRANSPORT PAYLOADS
# =============================================================================

def state_to_payload(state: ProjectState) -> dict:
    """Save request body: ``{rootNodes, knowledgeBase, clipboardItems}``."""
    return {
        "rootNodes": nodes_to_dicts(state.root_nodes),
        "knowledgeBase": state.knowledge_base,
        "clipboardItems": [item.to_dict() for item in state.clipboard_items],
    }


def state_from_payload(payload: dict) -> ProjectState:
    """Load response body -> ProjectState. ``activeFileId`` is always None.

    Raises:
        InvalidNodeError: ``payload`` is not an object, or ``rootNodes``
            does not describe a valid tree.
    """
    if not isinstance(payload, dict):
        raise InvalidNodeError(f"Project state must be an object, got {type(payload).__name__}")
    knowledge_base = payload.get("knowledgeBase") or ""
    if not isinstance(knowledge_base, str):
        knowledge_base = json.dumps(knowledge_base, ensure_ascii=False)
    return ProjectState(
        root_nodes=strip_sentinel(nodes_from_dicts(payload.get("rootNodes"))),
        knowledge_base=knowledge_base,
        clipboard_items=parse_clipboard_items(payload.get("clipboardItems")),
        active_file_id=None,
    )
