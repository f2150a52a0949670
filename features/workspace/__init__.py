"""In-memory workspace tree and assistant file-change handling."""

from .tree import (
    WorkspaceTree,
    apply_path_edit,
    count_files,
    extract_text,
    find_by_id,
    find_by_path,
    iter_nodes,
    remove_node,
    toggle_open,
)
from .file_changes import extract_file_changes, parse_file_changes
