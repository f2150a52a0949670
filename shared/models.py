"""
Data models shared by the import, tree, codec and persistence layers.

Wire format is camelCase JSON (``isOpen``, ``updatedAt``, ``pipelineStage``...)
so that payloads stay compatible with the browser client and the remote store.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, Optional, Union

from shared.constants import (
    CHAT_ROLES,
    CLIPBOARD_CATEGORIES,
    KNOWLEDGE_CATEGORIES,
    PIPELINE_STAGES,
    RELEVANCE_LEVELS,
)
from shared.exceptions import InvalidNodeError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or datetime into aware UTC.

    None yields the current time. Raises ValueError on unparsable input.
    """
    if value is None or value == "":
        return utcnow()
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        # JS clients occasionally send epoch milliseconds
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# =============================================================================
# FILE TREE
# =============================================================================

@dataclass
class FileNode:
    id: str
    name: str
    path: str
    content: Optional[str] = None  # None for binary files
    type: ClassVar[str] = "file"


@dataclass
class FolderNode:
    id: str
    name: str
    path: str
    children: list["TreeNode"] = field(default_factory=list)
    is_open: bool = False
    type: ClassVar[str] = "folder"


TreeNode = Union[FileNode, FolderNode]


def node_to_dict(node: TreeNode) -> dict:
    """Serialize a node (and its subtree) to the camelCase wire shape."""
    data = {"id": node.id, "name": node.name, "type": node.type, "path": node.path}
    if isinstance(node, FolderNode):
        data["children"] = [node_to_dict(child) for child in node.children]
        data["isOpen"] = node.is_open
    else:
        if node.content is not None:
            data["content"] = node.content
        data["isOpen"] = False
    return data


def node_from_dict(data: dict) -> TreeNode:
    """Build a node from its wire shape.

    Raises:
        InvalidNodeError: unknown type, missing id, or a node carrying both
            file content and children.
    """
    if not isinstance(data, dict):
        raise InvalidNodeError(f"Node must be an object, got {type(data).__name__}")
    node_id = data.get("id")
    if node_id is None or node_id == "":
        raise InvalidNodeError("Node is missing an id")
    node_id = str(node_id)
    path = str(data.get("path") or "")
    name = data.get("name") or path.rstrip("/").split("/")[-1]
    node_type = data.get("type")
    content = data.get("content")
    children = data.get("children")

    if node_type == "file":
        if children:
            raise InvalidNodeError(f"File node {node_id!r} cannot have children")
        return FileNode(
            id=node_id,
            name=name,
            path=path,
            content=None if content is None else str(content),
        )
    if node_type == "folder":
        if content not in (None, ""):
            raise InvalidNodeError(f"Folder node {node_id!r} cannot have content")
        return FolderNode(
            id=node_id,
            name=name,
            path=path,
            children=[node_from_dict(child) for child in children or []],
            is_open=bool(data.get("isOpen", False)),
        )
    raise InvalidNodeError(f"Unknown node type {node_type!r} for node {node_id!r}")


def nodes_to_dicts(nodes: list[TreeNode]) -> list[dict]:
    return [node_to_dict(node) for node in nodes]


def nodes_from_dicts(items) -> list[TreeNode]:
    return [node_from_dict(item) for item in items or []]


# =============================================================================
# KNOWLEDGE / CLIPBOARD / CHAT
# =============================================================================

@dataclass
class KnowledgeEntry:
    title: str
    content: str
    category: str = "general"
    id: str = field(default_factory=new_id)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KnowledgeEntry":
        category = data.get("category") or "general"
        if category not in KNOWLEDGE_CATEGORIES:
            category = "general"
        return cls(
            id=str(data.get("id") or new_id()),
            title=data.get("title") or "Untitled",
            content=data.get("content") or "",
            category=category,
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class ClipboardItem:
    """One triaged clipboard entry; ``type`` is the AI classification."""
    content: str
    type: str = "idea"
    summary: str = ""
    relevance: str = "medium"
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    pipeline_stage: Optional[str] = None
    metadata: Optional[dict] = None
    linked_plan_node_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "content": self.content,
            "type": self.type,
            "summary": self.summary,
            "relevance": self.relevance,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.pipeline_stage:
            data["pipelineStage"] = self.pipeline_stage
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        if self.linked_plan_node_id:
            data["linkedPlanNodeId"] = self.linked_plan_node_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ClipboardItem":
        item_type = data.get("type") or "idea"
        if item_type not in CLIPBOARD_CATEGORIES:
            item_type = "idea"
        relevance = data.get("relevance") or "medium"
        if relevance not in RELEVANCE_LEVELS:
            relevance = "medium"
        stage = data.get("pipelineStage")
        metadata = data.get("metadata")
        return cls(
            id=str(data.get("id") or new_id()),
            content=str(data.get("content") or ""),
            type=item_type,
            summary=data.get("summary") or "",
            relevance=relevance,
            timestamp=parse_timestamp(data.get("timestamp")),
            pipeline_stage=stage if stage in PIPELINE_STAGES else None,
            metadata=metadata if isinstance(metadata, dict) else None,
            linked_plan_node_id=data.get("linkedPlanNodeId"),
        )


@dataclass
class ChatMessage:
    role: str
    text: str
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Optional[dict] = None

    def __post_init__(self):
        if self.role not in CHAT_ROLES:
            raise ValueError(f"Invalid chat role {self.role!r}")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        metadata = data.get("metadata")
        return cls(
            id=str(data["id"]),
            role=data.get("role", ""),
            text=data.get("text") or "",
            timestamp=parse_timestamp(data.get("timestamp")),
            metadata=metadata if isinstance(metadata, dict) else None,
        )


# =============================================================================
# PROJECTS
# =============================================================================

@dataclass
class ProjectStats:
    files_count: int = 0
    chats_count: int = 0
    tasks_count: int = 0

    def to_dict(self) -> dict:
        return {
            "filesCount": self.files_count,
            "chatsCount": self.chats_count,
            "tasksCount": self.tasks_count,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "ProjectStats":
        data = data or {}
        return cls(
            files_count=int(data.get("filesCount") or 0),
            chats_count=int(data.get("chatsCount") or 0),
            tasks_count=int(data.get("tasksCount") or 0),
        )


@dataclass
class ProjectMetadata:
    name: str
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    last_opened: datetime = field(default_factory=utcnow)
    stats: ProjectStats = field(default_factory=ProjectStats)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "createdAt": format_timestamp(self.created_at),
            "lastOpened": format_timestamp(self.last_opened),
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectMetadata":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            description=data.get("description"),
            created_at=parse_timestamp(data.get("createdAt")),
            last_opened=parse_timestamp(data.get("lastOpened")),
            stats=ProjectStats.from_dict(data.get("stats")),
        )


@dataclass
class ProjectState:
    """Everything a project-open needs, as returned by a load."""
    root_nodes: list[TreeNode] = field(default_factory=list)
    knowledge_base: str = ""
    clipboard_items: list[ClipboardItem] = field(default_factory=list)
    active_file_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "rootNodes": nodes_to_dicts(self.root_nodes),
            "activeFileId": self.active_file_id,
            "knowledgeBase": self.knowledge_base,
            "clipboardItems": [item.to_dict() for item in self.clipboard_items],
        }
