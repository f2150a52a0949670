"""Project session - the in-memory state of one open project.

A session owns exactly one WorkspaceTree plus the knowledge base text,
clipboard items, chat history and plan of its project. Every mutation
persists in the background: the full state goes through the gateway's
single-slot ``schedule_save``, new chat messages are appended, and the
project metadata is touched with freshly computed stats. Mutations never
wait for persistence and never raise persistence errors.

Mutating methods must be called from a running event loop.
"""

import asyncio
import copy
import logging
from typing import Optional

from features.archive import import_upload as build_upload_nodes
from features.workspace import WorkspaceTree, extract_file_changes
from services.persistence import PersistenceGateway
from services.registry import ProjectRegistry, compute_stats
from shared.constants import DEFAULT_PLAN
from shared.exceptions import ArchiveImportError, FileChangesError, InvalidNodeError
from shared.models import (
    ChatMessage,
    ClipboardItem,
    FileNode,
    ProjectMetadata,
    ProjectState,
    ProjectStats,
    TreeNode,
)

logger = logging.getLogger(__name__)


class ProjectSession:
    """Open project: owned tree + side collections + background persistence.

    Args:
        project: Metadata of the project being opened
        gateway: Persistence gateway shared by all sessions
        registry: Registry used to touch metadata (built from gateway if omitted)
    """

    def __init__(
        self,
        project: ProjectMetadata,
        gateway: PersistenceGateway,
        registry: Optional[ProjectRegistry] = None,
    ):
        self.project = project
        self.gateway = gateway
        self.registry = registry or ProjectRegistry(gateway)
        self.tree = WorkspaceTree()
        self.knowledge_base = ""
        self.clipboard_items: list[ClipboardItem] = []
        self.messages: list[ChatMessage] = []
        self.plan_nodes: list[dict] = copy.deepcopy(DEFAULT_PLAN)
        self.active_file_id: Optional[str] = None
        self.loaded = False
        self._background: set[asyncio.Task] = set()

    @property
    def project_id(self) -> str:
        return self.project.id

    # --- Lifecycle ---

    async def open(self) -> bool:
        """Load state and chat history. Returns True if stored state was found."""
        state = await self.gateway.load(self.project_id)
        if state is not None:
            self.tree.replace(state.root_nodes)
            self.knowledge_base = state.knowledge_base
            self.clipboard_items = list(state.clipboard_items)
        if self.active_file_id and self.tree.find_by_id(self.active_file_id) is None:
            self.active_file_id = None
        self.messages = await self.gateway.load_chat(self.project_id)
        self.loaded = True
        await self.registry.touch(self.project, self.stats())
        logger.info(
            "Opened project %s: %d files, %d messages",
            self.project_id, self.tree.count_files(), len(self.messages),
        )
        return state is not None

    async def flush(self):
        """Wait for every pending save, chat save and metadata touch."""
        await self.gateway.flush()
        while self._background:
            await asyncio.gather(*list(self._background))

    async def close(self):
        await self.flush()
        self.loaded = False

    # --- Snapshots ---

    def state(self) -> ProjectState:
        return ProjectState(
            root_nodes=self.tree.roots,
            knowledge_base=self.knowledge_base,
            clipboard_items=list(self.clipboard_items),
            active_file_id=self.active_file_id,
        )

    def stats(self) -> ProjectStats:
        return compute_stats(self.tree.roots, self.messages, self.plan_nodes)

    def project_context(self) -> str:
        """Bulk text of every non-binary file, for the AI collaborator."""
        return self.tree.extract_text()

    # --- Persistence ---

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _persist(self):
        if not self.loaded:
            logger.debug("Project %s not loaded yet, skipping save", self.project_id)
            return
        self.gateway.schedule_save(self.project_id, self.state())
        self._spawn(self.gateway.save_chat(self.project_id, list(self.messages)))
        self._spawn(self.registry.touch(self.project, self.stats()))

    # --- Tree mutations ---

    def import_upload(self, filename: str, data) -> list[TreeNode]:
        """Import an upload: a ``.zip`` replaces the tree, any other file is
        added at the root, overwriting the content of a file already at its path.

        Returns:
            The imported nodes (empty when the upload could not be used).
        """
        try:
            nodes = build_upload_nodes(filename, data)
        except ArchiveImportError as e:
            logger.warning("Import of %s failed: %s", filename, e)
            return []
        if filename.lower().endswith(".zip"):
            self.tree.replace(nodes)
            self.active_file_id = None
        else:
            imported = []
            for node in nodes:
                if self.tree.find_by_path(node.path) is None:
                    self.tree.add_nodes([node])
                    imported.append(node)
                    continue
                try:
                    self.tree.apply_path_edit(node.path, node.content)
                except InvalidNodeError as e:
                    logger.warning("Import of %s rejected: %s", filename, e)
                    return []
                imported.append(self.tree.find_by_path(node.path))
            nodes = imported
        self._persist()
        return nodes

    def toggle_folder(self, node_id: str) -> bool:
        changed = self.tree.toggle_open(node_id)
        if changed:
            self._persist()
        return changed

    def select_file(self, node_id: str) -> Optional[FileNode]:
        node = self.tree.find_by_id(node_id)
        if not isinstance(node, FileNode):
            return None
        self.active_file_id = node.id
        return node

    def edit_file(self, path: str, content: str) -> bool:
        try:
            changed = self.tree.apply_path_edit(path, content)
        except InvalidNodeError as e:
            logger.warning("Edit of %s rejected: %s", path, e)
            return False
        if changed:
            self._persist()
        return changed

    def apply_file_changes(self, text: str) -> int:
        """Apply file changes from an assistant reply or a bare JSON array.

        Returns:
            Number of changes applied (0 when nothing could be parsed).
        """
        json_text = extract_file_changes(text) or text
        try:
            applied = self.tree.apply_file_changes(json_text)
        except (FileChangesError, InvalidNodeError) as e:
            logger.warning("File changes for %s not applied: %s", self.project_id, e)
            return 0
        if applied:
            self._persist()
        return applied

    def remove_node(self, node_id: str) -> bool:
        removed = self.tree.remove_node(node_id)
        if removed:
            if self.active_file_id and self.tree.find_by_id(self.active_file_id) is None:
                self.active_file_id = None
            self._persist()
        return removed

    # --- Side collections ---

    def set_knowledge_base(self, text: str):
        self.knowledge_base = text or ""
        self._persist()

    def add_clipboard_item(self, item: ClipboardItem) -> ClipboardItem:
        self.clipboard_items.append(item)
        self._persist()
        return item

    def remove_clipboard_item(self, item_id: str) -> bool:
        before = len(self.clipboard_items)
        self.clipboard_items = [c for c in self.clipboard_items if c.id != item_id]
        if len(self.clipboard_items) == before:
            return False
        self._persist()
        return True

    def add_chat_message(self, role: str, text: str, metadata: Optional[dict] = None) -> ChatMessage:
        """Append a chat message.

        Raises:
            ValueError: Unknown role
        """
        message = ChatMessage(role=role, text=text, metadata=metadata)
        self.messages.append(message)
        self._persist()
        return message

    def set_plan(self, plan_nodes: list[dict]):
        self.plan_nodes = list(plan_nodes or [])
        self._persist()
