"""
API Sync Backend - Project Service
===================================

What:  Project CRUD and the default-project bootstrap.
Why:   Every endpoint needs an owning project. Clients that never created one
       (the single-project dashboard) still get a home for their endpoints.

Default Project:
    Looked up by `settings.default_project_name`. If several rows carry that
    name (two first requests racing), the oldest one wins, so every caller
    converges on the same project.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apisync.config import settings
from apisync.exceptions import NotFoundError
from apisync.models.project import Project
from apisync.schemas.project import ProjectCreate, ProjectResponse
from apisync.services.db_errors import database_errors

logger = logging.getLogger(__name__)


class ProjectService:

    async def resolve_default_project(self, db: AsyncSession) -> Tuple[Project, bool]:
        """
        Return the default project, creating it on first use.

        Returns:
            (project, created) where created is True if this call inserted it.
        """
        with database_errors("Could not initialize the default project."):
            result = await db.execute(
                select(Project)
                .where(Project.name == settings.default_project_name)
                .order_by(Project.created_at, Project.id)
                .limit(1)
            )
            project = result.scalar_one_or_none()
            if project is not None:
                return project, False

            logger.info("Creating default project '%s'", settings.default_project_name)
            project = Project(
                name=settings.default_project_name,
                description=settings.default_project_description,
                is_public=True,
            )
            db.add(project)
            await db.flush()
            logger.info("Default project created: %s", project.id)
            return project, True

    async def get_project(self, db: AsyncSession, project_id: UUID) -> Project:
        """
        Raises:
            NotFoundError: no project with that id
        """
        with database_errors("Could not retrieve the project.", project_id=str(project_id)):
            project = await db.get(Project, project_id)
        if project is None:
            raise NotFoundError(resource="project", resource_id=str(project_id))
        return project

    async def resolve_project(self, db: AsyncSession, project_id: Optional[UUID]) -> Project:
        """Explicit project if given (must exist), otherwise the default project."""
        if project_id is None:
            project, _ = await self.resolve_default_project(db)
            return project
        return await self.get_project(db, project_id)

    async def create_project(self, db: AsyncSession, payload: ProjectCreate) -> ProjectResponse:
        with database_errors("Could not create the project."):
            project = Project(
                name=payload.name,
                description=payload.description,
                is_public=payload.is_public,
            )
            db.add(project)
            await db.flush()
        logger.info("Project created: %s (%s)", project.id, project.name)
        return ProjectResponse.model_validate(project)

    async def list_projects(self, db: AsyncSession) -> List[ProjectResponse]:
        with database_errors("Could not retrieve projects."):
            result = await db.execute(select(Project).order_by(Project.created_at, Project.id))
            projects = result.scalars().all()
        return [ProjectResponse.model_validate(p) for p in projects]


# ── Singleton Instance ────────────────────────────────────────────────────
project_service = ProjectService()
