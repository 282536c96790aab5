"""
API Sync Backend - Project Route Handlers
==========================================

What:  /api/init (default project bootstrap) and /api/projects.
Who:   The dashboard calls /api/init once on load so a project always exists
       before the first endpoint is created.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from apisync.database import get_db_session
from apisync.schemas.common import ErrorResponse
from apisync.schemas.project import InitResponse, ProjectCreate, ProjectResponse, ProjectSummary
from apisync.services.endpoint_service import endpoint_service
from apisync.services.project_service import project_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Projects"])


@router.post(
    "/init",
    response_model=InitResponse,
    responses={
        200: {"description": "Default project already existed", "model": InitResponse},
        201: {"description": "Default project created", "model": InitResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Ensure the default project exists",
)
async def init_default_project(
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> InitResponse:
    project, created = await project_service.resolve_default_project(db)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return InitResponse(
        message="Default project created" if created else "Default project already exists",
        created=created,
        project=ProjectResponse.model_validate(project),
    )


@router.get(
    "/projects",
    response_model=List[ProjectResponse],
    responses={500: {"description": "Server error", "model": ErrorResponse}},
    summary="List projects",
)
async def list_projects(db: AsyncSession = Depends(get_db_session)) -> List[ProjectResponse]:
    return await project_service.list_projects(db)


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid request", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Create a project",
)
async def create_project(
    payload: ProjectCreate,
    db: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    return await project_service.create_project(db, payload)


@router.get(
    "/projects/{project_id}",
    response_model=ProjectResponse,
    responses={404: {"description": "Project not found", "model": ErrorResponse}},
    summary="Get one project",
)
async def get_project(project_id: UUID, db: AsyncSession = Depends(get_db_session)) -> ProjectResponse:
    project = await project_service.get_project(db, project_id)
    return ProjectResponse.model_validate(project)


@router.get(
    "/projects/{project_id}/summary",
    response_model=ProjectSummary,
    responses={404: {"description": "Project not found", "model": ErrorResponse}},
    summary="Endpoint counts by status for one project",
    description=(
        "`conflictsCount` is the number of endpoints in CONFLICT, not the number "
        "of conflict records."
    ),
)
async def project_summary(project_id: UUID, db: AsyncSession = Depends(get_db_session)) -> ProjectSummary:
    return await endpoint_service.project_summary(db, project_id)
