"""Custom exception hierarchy for AutoCoder.

All application-specific exceptions inherit from WorkspaceError,
allowing callers to catch broad or narrow as needed.
"""


class WorkspaceError(Exception):
    """Base exception for all AutoCoder errors."""


class SettingsError(WorkspaceError):
    """Invalid settings or configuration."""


class InvalidNodeError(WorkspaceError):
    """A file/folder node violates the tree data model."""


class DuplicateNodeError(InvalidNodeError):
    """Two nodes of one project share the same id."""


class ArchiveImportError(WorkspaceError):
    """Uploaded archive could not be read."""


class FileChangesError(WorkspaceError):
    """Assistant-proposed file changes could not be parsed."""


class StoreError(WorkspaceError):
    """Persistence backend failure."""


class RemoteStoreError(StoreError):
    """Remote store unreachable or returned a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LocalStoreError(StoreError):
    """Local embedded store failure."""


class ProjectNotFoundError(StoreError):
    """Requested project does not exist in the store."""
