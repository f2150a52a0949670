"""Persistence gateway - remote project store first, local embedded store second.

Every operation follows the same two-step path:

    ATTEMPT_REMOTE  (skipped when no remote client is configured)
        success -> DONE
        RemoteStoreError -> ATTEMPT_LOCAL
    ATTEMPT_LOCAL
        success or LocalStoreError (logged) -> DONE

Nothing raised by either backend reaches the caller: failures come back as
False, None or an empty list. The two stores are never reconciled with
each other.

Saves can also be scheduled: ``schedule_save`` keeps a single pending slot
per project and a drain task that writes it. A state scheduled while an
earlier write is in flight replaces the slot, so superseded states are
never written and the last scheduled state is the one that ends up stored.
"""

import asyncio
import logging
from typing import Optional

from db import local_store
from db.codec import flatten, state_from_payload, state_to_payload
from services.remote_client import RemoteStoreClient
from shared.exceptions import InvalidNodeError, LocalStoreError, RemoteStoreError
from shared.models import ChatMessage, ProjectMetadata, ProjectState

logger = logging.getLogger(__name__)


def _tag(project_id: str) -> dict:
    """Log extra that files a record under its project."""
    return {"project_id": project_id}


class PersistenceGateway:
    """Dual-backend persistence for project state, chat and metadata.

    Args:
        remote: Client for the remote store; None means local-only.
    """

    def __init__(self, remote: Optional[RemoteStoreClient] = None):
        self.remote = remote
        self._pending: dict[str, ProjectState] = {}
        self._drains: dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls) -> "PersistenceGateway":
        """Build a gateway from the remote_* settings."""
        from services.settings import get_bool_setting, get_float_setting, get_setting

        if not get_bool_setting("use_remote_api"):
            return cls(remote=None)
        return cls(remote=RemoteStoreClient(
            base_url=get_setting("remote_api_url"),
            timeout=get_float_setting("remote_timeout_seconds"),
        ))

    @property
    def use_remote(self) -> bool:
        return self.remote is not None

    # =========================================================================
    # PROJECT STATE
    # =========================================================================

    async def save(self, project_id: str, state: ProjectState) -> bool:
        """Persist the full state of a project.

        Returns:
            True once either backend accepted the state, False otherwise.
        """
        try:
            flatten(state.root_nodes)
        except InvalidNodeError as e:
            logger.error(
                "Refusing to save %s: %s",
                project_id, e, extra=_tag(project_id),
            )
            return False
        payload = state_to_payload(state)

        if self.use_remote:
            try:
                await self.remote.save_state(project_id, payload)
                return True
            except RemoteStoreError as e:
                logger.warning(
                    "Remote save of %s failed, falling back to local store: %s",
                    project_id, e, extra=_tag(project_id),
                )

        try:
            local_store.save_project_state(project_id, payload)
            return True
        except LocalStoreError as e:
            logger.error(
                "Local save of %s failed: %s",
                project_id, e, extra=_tag(project_id),
            )
            return False

    async def load(self, project_id: str) -> Optional[ProjectState]:
        """Load the state of a project, or None when neither backend has it."""
        if self.use_remote:
            try:
                return state_from_payload(await self.remote.load_state(project_id))
            except RemoteStoreError as e:
                logger.warning(
                    "Remote load of %s failed, trying local store: %s",
                    project_id, e, extra=_tag(project_id),
                )
            except InvalidNodeError as e:
                logger.warning(
                    "Remote store returned an invalid tree for %s: %s",
                    project_id, e, extra=_tag(project_id),
                )

        try:
            payload = local_store.load_project_state(project_id)
        except LocalStoreError as e:
            logger.error(
                "Local load of %s failed: %s",
                project_id, e, extra=_tag(project_id),
            )
            return None
        if payload is None:
            return None
        try:
            return state_from_payload(payload)
        except InvalidNodeError as e:
            logger.error(
                "Local record of %s holds an invalid tree: %s",
                project_id, e, extra=_tag(project_id),
            )
            return None

    def schedule_save(self, project_id: str, state: ProjectState) -> asyncio.Task:
        """Queue ``state`` as the latest pending write of a project.

        Must be called from a running event loop. Returns the drain task
        that will write it (or the state superseding it).
        """
        self._pending[project_id] = state
        task = self._drains.get(project_id)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._drain(project_id))
            self._drains[project_id] = task
        return task

    async def _drain(self, project_id: str) -> bool:
        ok = True
        try:
            while project_id in self._pending:
                state = self._pending.pop(project_id)
                ok = await self.save(project_id, state)
        finally:
            self._drains.pop(project_id, None)
        return ok

    def has_pending(self, project_id: str) -> bool:
        return project_id in self._pending or project_id in self._drains

    async def flush(self):
        """Wait until every scheduled save has been written."""
        while self._drains:
            await asyncio.gather(*list(self._drains.values()))

    # =========================================================================
    # CHAT
    # =========================================================================

    async def save_chat(self, project_id: str, messages: list[ChatMessage]) -> bool:
        """Append-only save: messages already stored (by id) are left alone."""
        if self.use_remote:
            try:
                await self.remote.save_chat(project_id, [m.to_dict() for m in messages])
                return True
            except RemoteStoreError as e:
                logger.warning(
                    "Remote chat save of %s failed, falling back to local store: %s",
                    project_id, e, extra=_tag(project_id),
                )

        try:
            local_store.save_chat_history(project_id, messages)
            return True
        except LocalStoreError as e:
            logger.error(
                "Local chat save of %s failed: %s",
                project_id, e, extra=_tag(project_id),
            )
            return False

    async def load_chat(self, project_id: str) -> list[ChatMessage]:
        if self.use_remote:
            try:
                return _parse_messages(await self.remote.load_chat(project_id))
            except RemoteStoreError as e:
                logger.warning(
                    "Remote chat load of %s failed, trying local store: %s",
                    project_id, e, extra=_tag(project_id),
                )

        try:
            return local_store.load_chat_history(project_id)
        except LocalStoreError as e:
            logger.error(
                "Local chat load of %s failed: %s",
                project_id, e, extra=_tag(project_id),
            )
            return []

    # =========================================================================
    # PROJECT METADATA
    # =========================================================================

    async def list_projects(self) -> list[ProjectMetadata]:
        if self.use_remote:
            try:
                rows = await self.remote.list_projects()
                return [ProjectMetadata.from_dict(row) for row in rows]
            except RemoteStoreError as e:
                logger.warning("Remote project list failed, using local store: %s", e)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Remote project list malformed, using local store: %s", e)

        try:
            return local_store.list_projects()
        except LocalStoreError as e:
            logger.error("Local project list failed: %s", e)
            return []

    async def create_project(self, project: ProjectMetadata) -> Optional[ProjectMetadata]:
        """Create a project with a client-generated id.

        Returns:
            The stored metadata, or None when neither backend accepted it.
        """
        if self.use_remote:
            try:
                created = await self.remote.create_project({
                    "id": project.id,
                    "name": project.name,
                    "description": project.description,
                })
                return ProjectMetadata.from_dict(created)
            except RemoteStoreError as e:
                logger.warning(
                    "Remote create of %s failed, falling back to local store: %s",
                    project.id, e, extra=_tag(project.id),
                )

        try:
            local_store.save_project_metadata(project)
            return project
        except LocalStoreError as e:
            logger.error(
                "Local create of %s failed: %s",
                project.id, e, extra=_tag(project.id),
            )
            return None

    async def save_metadata(self, project: ProjectMetadata) -> bool:
        """Record name, description, last-opened time and task count."""
        if self.use_remote:
            try:
                await self.remote.update_project(project.id, {
                    "name": project.name,
                    "description": project.description,
                    "tasksCount": project.stats.tasks_count,
                    "lastOpened": project.last_opened.isoformat(),
                })
                return True
            except RemoteStoreError as e:
                logger.warning(
                    "Remote metadata save of %s failed, falling back to local store: %s",
                    project.id, e, extra=_tag(project.id),
                )

        try:
            local_store.save_project_metadata(project)
            return True
        except LocalStoreError as e:
            logger.error(
                "Local metadata save of %s failed: %s",
                project.id, e, extra=_tag(project.id),
            )
            return False

    async def delete_project(self, project_id: str) -> bool:
        """Delete a project. Returns False when no backend knew it.

        A scheduled save still pending or in flight is cancelled first.
        """
        self._pending.pop(project_id, None)
        drain = self._drains.pop(project_id, None)
        if drain is not None and not drain.done():
            drain.cancel()
            await asyncio.gather(drain, return_exceptions=True)
        if self.use_remote:
            try:
                await self.remote.delete_project(project_id)
                return True
            except RemoteStoreError as e:
                logger.warning(
                    "Remote delete of %s failed, trying local store: %s",
                    project_id, e, extra=_tag(project_id),
                )

        try:
            return local_store.delete_project(project_id)
        except LocalStoreError as e:
            logger.error(
                "Local delete of %s failed: %s",
                project_id, e, extra=_tag(project_id),
            )
            return False


def _parse_messages(rows: list) -> list[ChatMessage]:
    messages = []
    for row in rows:
        try:
            messages.append(ChatMessage.from_dict(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed chat message: %s", e)
    return messages
