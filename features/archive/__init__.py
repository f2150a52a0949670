"""Archive and single-file import into workspace trees."""

from .config import ImportConfig
from .builder import (
    ArchiveEntry,
    build_tree,
    build_tree_from_zip,
    import_single_file,
    import_upload,
    is_binary,
    normalize_path,
)
