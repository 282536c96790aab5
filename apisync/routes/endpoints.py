"""
API Sync Backend - Endpoint Route Handlers
===========================================

What:  /api/endpoints and its sub-resources (specs, conflicts).
How:   Parse path/query/body, delegate to EndpointService, return JSON.
       No business rules live here.
Who:   The dashboard frontend and ApiSyncClient.

Concurrency:
    Every mutating route accepts the version the caller last read (`version`
    query parameter, or the `version` body field on PUT /endpoints/{id}).
    A mismatch fails with 409 stale_write; omit it to write unconditionally.

Caching:
    Endpoint state changes whenever either team edits a spec, so responses
    are sent with `Cache-Control: no-store`.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from apisync.database import get_db_session
from apisync.models.enums import EndpointStatus, HttpMethod, SpecSide
from apisync.schemas.common import ErrorResponse
from apisync.schemas.endpoint import (
    ConflictResponse,
    EndpointCreate,
    EndpointResponse,
    EndpointUpdate,
    ResolveAllResponse,
    SpecIn,
)
from apisync.services.endpoint_service import endpoint_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Endpoints"])

_NOT_FOUND = {404: {"description": "Endpoint not found", "model": ErrorResponse}}
_STALE = {409: {"description": "Stale version or occupied spec side", "model": ErrorResponse}}
_INVALID = {400: {"description": "Invalid request", "model": ErrorResponse}}
_SERVER = {500: {"description": "Server error", "model": ErrorResponse}}

_VERSION_QUERY = Query(
    default=None,
    ge=1,
    description="Version the caller last read; the write fails with stale_write if it moved on",
)


@router.get(
    "/endpoints",
    response_model=List[EndpointResponse],
    responses={**_INVALID, **_SERVER},
    summary="List endpoints",
    description=(
        "Lists endpoints, optionally restricted to one project. `status` and "
        "`method` may be repeated (values are ORed); `search` matches name, path "
        "and description case-insensitively. All filters are ANDed."
    ),
)
async def list_endpoints(
    response: Response,
    project_id: Optional[UUID] = Query(default=None, alias="projectId"),
    status_filter: List[EndpointStatus] = Query(default=[], alias="status"),
    method_filter: List[HttpMethod] = Query(default=[], alias="method"),
    search: str = Query(default="", max_length=200),
    db: AsyncSession = Depends(get_db_session),
) -> List[EndpointResponse]:
    result = await endpoint_service.list_endpoints(
        db=db,
        project_id=project_id,
        status_filter=status_filter,
        method_filter=method_filter,
        search=search,
    )
    response.headers["X-Total-Count"] = str(len(result))
    response.headers["Cache-Control"] = "no-store"
    return result


@router.post(
    "/endpoints",
    response_model=EndpointResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        **_INVALID,
        404: {"description": "Project not found", "model": ErrorResponse},
        422: {"description": "Response schema cannot be compared", "model": ErrorResponse},
        **_SERVER,
    },
    summary="Create an endpoint",
    description=(
        "Creates an endpoint with optional frontend and backend specs. Without "
        "projectId it is placed in the default project. Any `status` in the body "
        "is ignored; status is derived from the specs and conflicts."
    ),
)
async def create_endpoint(
    payload: EndpointCreate,
    db: AsyncSession = Depends(get_db_session),
) -> EndpointResponse:
    return await endpoint_service.create_endpoint(db=db, payload=payload)


@router.get(
    "/endpoints/{endpoint_id}",
    response_model=EndpointResponse,
    responses={**_NOT_FOUND, **_SERVER},
    summary="Get one endpoint with its specs and unresolved conflicts",
)
async def get_endpoint(
    endpoint_id: UUID,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> EndpointResponse:
    response.headers["Cache-Control"] = "no-store"
    return await endpoint_service.get_endpoint(db=db, endpoint_id=endpoint_id)


@router.put(
    "/endpoints/{endpoint_id}",
    response_model=EndpointResponse,
    responses={**_INVALID, **_NOT_FOUND, **_STALE, **_SERVER},
    summary="Update an endpoint",
    description=(
        "Partial update. Specs present in the body replace the stored spec for "
        "that side and conflicts are recomputed in the same transaction."
    ),
)
async def update_endpoint(
    endpoint_id: UUID,
    payload: EndpointUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> EndpointResponse:
    return await endpoint_service.update_endpoint(db=db, endpoint_id=endpoint_id, payload=payload)


@router.delete(
    "/endpoints/{endpoint_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**_NOT_FOUND, **_STALE, **_SERVER},
    summary="Delete an endpoint with its specs and conflicts",
)
async def delete_endpoint(
    endpoint_id: UUID,
    version: Optional[int] = _VERSION_QUERY,
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await endpoint_service.delete_endpoint(db=db, endpoint_id=endpoint_id, expected_version=version)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Specs ─────────────────────────────────────────────────────────────────


@router.put(
    "/endpoints/{endpoint_id}/specs/{side}",
    response_model=EndpointResponse,
    responses={
        **_INVALID,
        **_NOT_FOUND,
        **_STALE,
        422: {"description": "Response schema cannot be compared", "model": ErrorResponse},
        **_SERVER,
    },
    summary="Attach or replace one side's spec",
    description=(
        "Attaches the frontend or backend spec. Fails with duplicate_spec_side "
        "if that side already has a spec, unless `replace=true`."
    ),
)
async def attach_spec(
    endpoint_id: UUID,
    side: SpecSide,
    payload: SpecIn,
    replace: bool = Query(default=False),
    version: Optional[int] = _VERSION_QUERY,
    db: AsyncSession = Depends(get_db_session),
) -> EndpointResponse:
    return await endpoint_service.attach_spec(
        db=db,
        endpoint_id=endpoint_id,
        side=side,
        payload=payload,
        replace=replace,
        expected_version=version,
    )


@router.delete(
    "/endpoints/{endpoint_id}/specs/{side}",
    response_model=EndpointResponse,
    responses={**_NOT_FOUND, **_STALE, **_SERVER},
    summary="Remove one side's spec",
)
async def remove_spec(
    endpoint_id: UUID,
    side: SpecSide,
    version: Optional[int] = _VERSION_QUERY,
    db: AsyncSession = Depends(get_db_session),
) -> EndpointResponse:
    return await endpoint_service.remove_spec(db=db, endpoint_id=endpoint_id, side=side, expected_version=version)


# ── Conflicts ─────────────────────────────────────────────────────────────


@router.post(
    "/endpoints/{endpoint_id}/reconcile",
    response_model=EndpointResponse,
    responses={
        **_NOT_FOUND,
        **_STALE,
        422: {"description": "Response schema cannot be compared", "model": ErrorResponse},
        **_SERVER,
    },
    summary="Re-run conflict detection on the stored specs",
)
async def reconcile_endpoint(
    endpoint_id: UUID,
    version: Optional[int] = _VERSION_QUERY,
    db: AsyncSession = Depends(get_db_session),
) -> EndpointResponse:
    return await endpoint_service.reconcile(db=db, endpoint_id=endpoint_id, expected_version=version)


@router.get(
    "/endpoints/{endpoint_id}/conflicts",
    response_model=List[ConflictResponse],
    responses={**_NOT_FOUND, **_SERVER},
    summary="List an endpoint's conflicts",
)
async def list_conflicts(
    endpoint_id: UUID,
    include_resolved: bool = Query(default=False, alias="includeResolved"),
    db: AsyncSession = Depends(get_db_session),
) -> List[ConflictResponse]:
    return await endpoint_service.list_conflicts(
        db=db, endpoint_id=endpoint_id, include_resolved=include_resolved
    )


@router.post(
    "/endpoints/{endpoint_id}/conflicts/resolve",
    response_model=ResolveAllResponse,
    responses={**_NOT_FOUND, **_STALE, **_SERVER},
    summary="Resolve every unresolved conflict of an endpoint",
)
async def resolve_all_conflicts(
    endpoint_id: UUID,
    version: Optional[int] = _VERSION_QUERY,
    db: AsyncSession = Depends(get_db_session),
) -> ResolveAllResponse:
    return await endpoint_service.resolve_all(db=db, endpoint_id=endpoint_id, expected_version=version)


@router.post(
    "/endpoints/{endpoint_id}/conflicts/{conflict_id}/resolve",
    response_model=EndpointResponse,
    responses={
        404: {"description": "Endpoint or conflict not found", "model": ErrorResponse},
        **_STALE,
        **_SERVER,
    },
    summary="Resolve one conflict",
    description="Marks the conflict resolved and recomputes the endpoint status. Idempotent.",
)
async def resolve_conflict(
    endpoint_id: UUID,
    conflict_id: UUID,
    version: Optional[int] = _VERSION_QUERY,
    db: AsyncSession = Depends(get_db_session),
) -> EndpointResponse:
    return await endpoint_service.resolve_conflict(
        db=db,
        endpoint_id=endpoint_id,
        conflict_id=conflict_id,
        expected_version=version,
    )
