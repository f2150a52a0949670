"""
Archive importer

Turns the flat entry listing of a code archive into the hierarchical file tree
shown in the workspace. Archives do not guarantee that a directory entry comes
before its contents, so the tree is built in two passes:

1. one node per entry, keyed by its normalized path (directories keep a
   trailing slash);
2. every node is attached to the folder at its parent path, in entry order.

Node ids are the normalized archive paths, so re-importing the same archive
yields the same ids and the store updates rows instead of recreating them.
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Iterable, Optional, Union

from features.archive.config import ImportConfig
from shared.exceptions import ArchiveImportError
from shared.models import FileNode, FolderNode, TreeNode, new_id

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = ImportConfig()

RawContent = Union[bytes, str]


@dataclass
class ArchiveEntry:
    """One entry of an archive listing. ``data`` may be a zero-arg callable."""
    path: str
    is_dir: bool = False
    data: Union[RawContent, Callable[[], RawContent], None] = None

    def read(self) -> RawContent:
        data = self.data() if callable(self.data) else self.data
        return b"" if data is None else data


def normalize_path(path: str, is_dir: bool = False) -> str:
    """Archive-relative path with forward slashes and no leading ``./`` or ``/``.

    Directory paths end with a single trailing slash.
    """
    parts = [p for p in path.replace("\\", "/").split("/") if p and p != "."]
    normalized = "/".join(parts)
    if is_dir and normalized:
        normalized += "/"
    return normalized


def is_binary(filename: str, config: Optional[ImportConfig] = None) -> bool:
    """True when the file extension is on the binary denylist."""
    extensions = (config or _DEFAULT_CONFIG).binary_extensions
    return PurePosixPath(filename).suffix.lower() in extensions


def _decode(raw: RawContent, encoding: str) -> str:
    if isinstance(raw, str):
        return raw
    return bytes(raw).decode(encoding, errors="replace")


def _parent_key(key: str) -> Optional[str]:
    parts = key.rstrip("/").split("/")
    if len(parts) == 1:
        return None
    return "/".join(parts[:-1]) + "/"


def _leaf_name(key: str) -> str:
    return key.rstrip("/").split("/")[-1]


def _make_node(entry: ArchiveEntry, key: str, config: ImportConfig) -> TreeNode:
    name = _leaf_name(key)
    if entry.is_dir:
        return FolderNode(id=key, name=name, path=key.rstrip("/"))
    content = None
    if not is_binary(name, config):
        content = _decode(entry.read(), config.text_encoding)
    return FileNode(id=key, name=name, path=key, content=content)


def _synthesize_folder(key: str, node_map: dict, roots: list) -> FolderNode:
    """Create a folder the archive never listed, plus any missing ancestors."""
    folder = FolderNode(id=key, name=_leaf_name(key), path=key.rstrip("/"))
    node_map[key] = folder
    parent_key = _parent_key(key)
    if parent_key is None:
        roots.append(folder)
    else:
        parent = node_map.get(parent_key)
        if not isinstance(parent, FolderNode):
            parent = _synthesize_folder(parent_key, node_map, roots)
        parent.children.append(folder)
    logger.debug("Synthesized folder %s", key)
    return folder


def build_tree(
    entries: Iterable[ArchiveEntry],
    config: Optional[ImportConfig] = None,
) -> list[TreeNode]:
    """
    Build the root-level nodes of a file tree from a flat archive listing.

    Args:
        entries: Archive entries in archive order (any order is accepted).
        config: Import options (binary denylist, folder synthesis).

    Returns:
        Root nodes, with children in archive entry order.
    """
    config = config or _DEFAULT_CONFIG
    node_map: dict[str, TreeNode] = {}

    # First pass: one node per entry
    for entry in entries:
        key = normalize_path(entry.path, entry.is_dir)
        if not key:
            logger.warning("Ignoring archive entry without a name: %r", entry.path)
            continue
        if key in node_map:
            logger.warning("Duplicate archive entry %s, keeping the first one", key)
            continue
        node_map[key] = _make_node(entry, key, config)

    # Second pass: attach to parents
    roots: list[TreeNode] = []
    for key, node in list(node_map.items()):
        parent_key = _parent_key(key)
        if parent_key is None:
            roots.append(node)
            continue
        parent = node_map.get(parent_key)
        if parent is None and config.synthesize_missing_dirs:
            parent = _synthesize_folder(parent_key, node_map, roots)
        if isinstance(parent, FolderNode):
            parent.children.append(node)
        else:
            logger.warning("Parent folder %s missing, promoting %s to root", parent_key, key)
            roots.append(node)

    logger.info(f"Built tree with {len(node_map)} nodes, {len(roots)} at root")
    return roots


def build_tree_from_zip(
    source: Union[bytes, bytearray, str, io.IOBase],
    config: Optional[ImportConfig] = None,
) -> list[TreeNode]:
    """
    Read a zip archive and build its file tree.

    Args:
        source: Raw archive bytes, a filesystem path, or a binary file object.
        config: Import options.

    Raises:
        ArchiveImportError: The archive is corrupt or unreadable.
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        with zipfile.ZipFile(source) as archive:
            entries = [
                ArchiveEntry(
                    path=info.filename,
                    is_dir=info.is_dir(),
                    data=lambda info=info: archive.read(info),
                )
                for info in archive.infolist()
            ]
            return build_tree(entries, config)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
        raise ArchiveImportError(f"Could not read archive: {e}") from e


def import_single_file(
    filename: str,
    data: RawContent,
    config: Optional[ImportConfig] = None,
) -> FileNode:
    """Wrap one uploaded file (e.g. a .sql dump) as a new root-level file node."""
    config = config or _DEFAULT_CONFIG
    name = PurePosixPath(filename.replace("\\", "/")).name or filename
    content = None if is_binary(name, config) else _decode(data, config.text_encoding)
    return FileNode(id=new_id(), name=name, path=f"/{name}", content=content)


def import_upload(
    filename: str,
    data: RawContent,
    config: Optional[ImportConfig] = None,
) -> list[TreeNode]:
    """Dispatch an upload: ``.zip`` becomes a tree, anything else a single file."""
    if filename.lower().endswith(".zip"):
        raw = data.encode("latin-1") if isinstance(data, str) else data
        return build_tree_from_zip(raw, config)
    return [import_single_file(filename, data, config)]
