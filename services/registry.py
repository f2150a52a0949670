"""Project registry - list, create, delete and touch projects.

Metadata storage itself belongs to the persistence gateway; the registry
only decides ids, timestamps and stats.
"""

import logging
from typing import Optional

from features.workspace.tree import count_files
from services.persistence import PersistenceGateway
from shared.models import ChatMessage, ProjectMetadata, ProjectStats, TreeNode, utcnow

logger = logging.getLogger(__name__)


def compute_stats(
    roots: list[TreeNode],
    messages: list[ChatMessage],
    plan_nodes: list[dict],
) -> ProjectStats:
    """Stats derived from the in-memory collections of an open project.

    Args:
        roots: The project's file tree
        messages: Chat history
        plan_nodes: Top-level plan (task) nodes

    Returns:
        ProjectStats with file, chat and task counts
    """
    return ProjectStats(
        files_count=count_files(roots),
        chats_count=len(messages),
        tasks_count=len(plan_nodes),
    )


class ProjectRegistry:
    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    async def list(self) -> list[ProjectMetadata]:
        return await self.gateway.list_projects()

    async def get(self, project_id: str) -> Optional[ProjectMetadata]:
        for project in await self.list():
            if project.id == project_id:
                return project
        return None

    async def create(self, name: str, description: str = "") -> Optional[ProjectMetadata]:
        """Create a project with a fresh id.

        Raises:
            ValueError: Blank name
        """
        if not name or not name.strip():
            raise ValueError("Project name is required.")
        project = ProjectMetadata(name=name.strip(), description=description or None)
        created = await self.gateway.create_project(project)
        if created:
            logger.info("Created project %s (%s)", created.id, created.name)
        return created

    async def delete(self, project_id: str) -> bool:
        deleted = await self.gateway.delete_project(project_id)
        if not deleted:
            logger.info("Delete of unknown project %s ignored", project_id)
        return deleted

    async def touch(self, project: ProjectMetadata, stats: Optional[ProjectStats] = None) -> bool:
        """Mark a project as opened now, optionally with recomputed stats."""
        project.last_opened = utcnow()
        if stats is not None:
            project.stats = stats
        return await self.gateway.save_metadata(project)
