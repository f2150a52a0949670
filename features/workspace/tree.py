"""
Workspace tree operations.

Module-level functions are pure: they take a list of root nodes and return a
new list, copying only the nodes on the path to the change. ``WorkspaceTree``
owns the roots of one open project and routes every mutation through those
functions.
"""

import dataclasses
import logging
from typing import Iterator, Optional

from features.archive.builder import is_binary
from features.workspace.file_changes import parse_file_changes
from shared.constants import DEFAULT_NEW_FILE_NAME
from shared.exceptions import InvalidNodeError
from shared.models import FileNode, FolderNode, TreeNode, new_id

logger = logging.getLogger(__name__)


def iter_nodes(roots: list[TreeNode]) -> Iterator[TreeNode]:
    """Pre-order traversal: parent before children, siblings in order."""
    stack = list(reversed(roots))
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, FolderNode):
            stack.extend(reversed(node.children))


def find_by_id(roots: list[TreeNode], node_id: str) -> Optional[TreeNode]:
    return next((n for n in iter_nodes(roots) if n.id == node_id), None)


def find_by_path(roots: list[TreeNode], path: str) -> Optional[TreeNode]:
    return next((n for n in iter_nodes(roots) if n.path == path), None)


def count_files(roots: list[TreeNode]) -> int:
    return sum(1 for n in iter_nodes(roots) if isinstance(n, FileNode))


def _replace(roots: list[TreeNode], match, update) -> tuple[list[TreeNode], bool]:
    """Copy-on-write replace of the first node satisfying ``match``."""
    for i, node in enumerate(roots):
        if match(node):
            replaced = list(roots)
            replaced[i] = update(node)
            return replaced, True
        if isinstance(node, FolderNode):
            children, found = _replace(node.children, match, update)
            if found:
                replaced = list(roots)
                replaced[i] = dataclasses.replace(node, children=children)
                return replaced, True
    return roots, False


def toggle_open(roots: list[TreeNode], node_id: str) -> list[TreeNode]:
    """Flip ``is_open`` on the folder with ``node_id``; unknown ids and files are a no-op."""
    new_roots, found = _replace(
        roots,
        lambda n: n.id == node_id and isinstance(n, FolderNode),
        lambda n: dataclasses.replace(n, is_open=not n.is_open),
    )
    if not found:
        logger.debug("toggle_open: no node %s", node_id)
    return new_roots


def apply_path_edit(roots: list[TreeNode], path: str, content: str) -> list[TreeNode]:
    """
    Set the content of the node at ``path``.

    When no node has that path a new file node is appended at the root,
    keeping the full path; missing parent folders are not created.

    Raises:
        InvalidNodeError: ``path`` belongs to a folder.
    """
    existing = find_by_path(roots, path)
    if isinstance(existing, FolderNode):
        raise InvalidNodeError(f"Cannot write content to folder {path!r}")
    if existing is not None:
        new_roots, _ = _replace(
            roots,
            lambda n: n.path == path,
            lambda n: dataclasses.replace(n, content=content),
        )
        return new_roots

    name = path.rstrip("/").split("/")[-1] or DEFAULT_NEW_FILE_NAME
    logger.info("No node at %s, creating it at the root", path)
    return list(roots) + [FileNode(id=new_id(), name=name, path=path, content=content)]


def remove_node(roots: list[TreeNode], node_id: str) -> list[TreeNode]:
    """Drop the node (and its subtree) with ``node_id``."""
    result = []
    for node in roots:
        if node.id == node_id:
            continue
        if isinstance(node, FolderNode):
            children = remove_node(node.children, node_id)
            if len(children) != len(node.children) or any(
                a is not b for a, b in zip(children, node.children)
            ):
                node = dataclasses.replace(node, children=children)
        result.append(node)
    return result


def extract_text(roots: list[TreeNode]) -> str:
    """Concatenate every text file as ``FILE: <path>`` followed by its content."""
    parts = []
    for node in iter_nodes(roots):
        if isinstance(node, FileNode) and not is_binary(node.name):
            parts.append(f"\nFILE: {node.path}\n{node.content or ''}\n")
    return "".join(parts)


class WorkspaceTree:
    """The file tree of one open project."""

    def __init__(self, roots: Optional[list[TreeNode]] = None):
        self.roots: list[TreeNode] = list(roots or [])
        self.revision = 0

    def __len__(self):
        return len(self.roots)

    def __iter__(self):
        return iter_nodes(self.roots)

    def _commit(self, roots: list[TreeNode]) -> bool:
        changed = roots is not self.roots
        self.roots = roots
        if changed:
            self.revision += 1
        return changed

    def find_by_id(self, node_id: str) -> Optional[TreeNode]:
        return find_by_id(self.roots, node_id)

    def find_by_path(self, path: str) -> Optional[TreeNode]:
        return find_by_path(self.roots, path)

    def toggle_open(self, node_id: str) -> bool:
        return self._commit(toggle_open(self.roots, node_id))

    def apply_path_edit(self, path: str, content: str) -> bool:
        return self._commit(apply_path_edit(self.roots, path, content))

    def remove_node(self, node_id: str) -> bool:
        new_roots = remove_node(self.roots, node_id)
        if len(new_roots) == len(self.roots) and all(a is b for a, b in zip(new_roots, self.roots)):
            return False
        return self._commit(new_roots)

    def add_nodes(self, nodes: list[TreeNode]) -> bool:
        if not nodes:
            return False
        return self._commit(list(self.roots) + list(nodes))

    def replace(self, roots: list[TreeNode]) -> bool:
        return self._commit(list(roots))

    def extract_text(self) -> str:
        return extract_text(self.roots)

    def count_files(self) -> int:
        return count_files(self.roots)

    def apply_file_changes(self, json_text: str) -> int:
        """Apply a ``[{path, content}]`` change list; returns how many were applied."""
        changes = parse_file_changes(json_text)
        roots = self.roots
        for change in changes:
            roots = apply_path_edit(roots, change["path"], change["content"])
        self._commit(roots)
        return len(changes)
