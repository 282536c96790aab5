"""
API Sync Backend - Endpoint Service
====================================

What:  Endpoint CRUD, spec attachment and conflict resolution on top of the
       database session.
Why:   Routes stay thin; this is the one place that loads an endpoint,
       hands it to EndpointAggregate, flushes, and serializes the result.
How:   Every mutating call follows the same steps:
           load endpoint (specs + conflicts, selectin) → NotFoundError if absent
           aggregate.<operation>(..., expected_version)
           flush inside `database_errors` (StaleDataError → StaleWriteError)
           serialize with `to_endpoint_response`
       The request-scoped session commits after the route returns, so a
       spec change and its conflict recomputation land together or not at all.

Visibility:
    Endpoint responses carry unresolved conflicts only; resolved ones are
    kept for history and reachable through `list_conflicts(include_resolved=True)`.
"""

import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from apisync.exceptions import NotFoundError, StaleWriteError, ValidationError
from apisync.models.conflict import Conflict
from apisync.models.endpoint import Endpoint
from apisync.models.enums import EndpointStatus, HttpMethod, SpecSide
from apisync.models.spec import Header, Parameter, Spec, StatusCode
from apisync.schemas.endpoint import (
    ConflictResponse,
    EndpointCreate,
    EndpointResponse,
    EndpointUpdate,
    ResolveAllResponse,
    SpecIn,
    SpecResponse,
)
from apisync.schemas.project import ProjectSummary
from apisync.services.db_errors import database_errors
from apisync.services.endpoint_aggregate import EndpointAggregate, validate_spec
from apisync.services.project_service import project_service
from apisync.services.reconciliation_store import ReconciliationStore

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("path", "method", "name", "description")
_REQUIRED_FIELDS = ("path", "method")


# ══════════════════════════════════════════════════════════════════════════
# Conversions
# ══════════════════════════════════════════════════════════════════════════


def build_spec(payload: SpecIn) -> Spec:
    """Turn a submitted spec into a transient ORM Spec with its children."""
    return Spec(
        request_body=payload.request_body,
        response_body=payload.response_body,
        content_type=payload.content_type,
        authentication=payload.authentication,
        rate_limit=payload.rate_limit,
        notes=payload.notes,
        parameters=[
            Parameter(
                name=p.name,
                type=p.type,
                required=p.required,
                description=p.description,
                default_value=p.default_value,
                validation=p.validation,
            )
            for p in payload.parameters
        ],
        headers=[
            Header(name=h.name, value=h.value, required=h.required, description=h.description)
            for h in payload.headers
        ],
        status_codes=[
            StatusCode(code=s.code, description=s.description, response_body=s.response_body)
            for s in payload.status_codes
        ],
    )


def _conflict_sort_key(conflict: Conflict):
    return (conflict.type.value, conflict.field)


def to_endpoint_response(endpoint: Endpoint) -> EndpointResponse:
    aggregate = EndpointAggregate(endpoint)
    frontend = aggregate.frontend_spec
    backend = aggregate.backend_spec
    return EndpointResponse(
        id=endpoint.id,
        project_id=endpoint.project_id,
        path=endpoint.path,
        method=endpoint.method,
        name=endpoint.name,
        description=endpoint.description,
        status=endpoint.status,
        version=endpoint.version,
        frontend_spec=SpecResponse.model_validate(frontend) if frontend is not None else None,
        backend_spec=SpecResponse.model_validate(backend) if backend is not None else None,
        conflicts=[
            ConflictResponse.model_validate(c)
            for c in sorted(aggregate.unresolved_conflicts, key=_conflict_sort_key)
        ],
        created_at=endpoint.created_at,
        updated_at=endpoint.updated_at,
    )


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════


class EndpointService:
    """
    Stateless; one instance is shared by all requests.
    Every method takes the request's AsyncSession as its first argument.
    """

    # ── Loading ───────────────────────────────────────────────────────────

    async def _load(self, db: AsyncSession, endpoint_id: uuid.UUID) -> Endpoint:
        with database_errors("Could not retrieve the endpoint.", endpoint_id=str(endpoint_id)):
            result = await db.execute(select(Endpoint).where(Endpoint.id == endpoint_id))
            endpoint = result.scalar_one_or_none()
        if endpoint is None:
            raise NotFoundError(resource="endpoint", resource_id=str(endpoint_id))
        return endpoint

    async def _load_many(self, db: AsyncSession, project_id: Optional[uuid.UUID]) -> List[Endpoint]:
        query = select(Endpoint).order_by(Endpoint.created_at, Endpoint.id)
        if project_id is not None:
            query = query.where(Endpoint.project_id == project_id)
        with database_errors("Could not retrieve endpoints."):
            result = await db.execute(query)
            return list(result.scalars().all())

    async def _flush(self, db: AsyncSession, endpoint: Endpoint, action: str) -> None:
        with database_errors(f"Could not {action}.", endpoint_id=str(endpoint.id)):
            await db.flush()

    # ── Queries ───────────────────────────────────────────────────────────

    async def get_endpoint(self, db: AsyncSession, endpoint_id: uuid.UUID) -> EndpointResponse:
        """
        Raises:
            NotFoundError: endpoint does not exist
        """
        return to_endpoint_response(await self._load(db, endpoint_id))

    async def list_endpoints(
        self,
        db: AsyncSession,
        project_id: Optional[uuid.UUID] = None,
        status_filter: Iterable[EndpointStatus] = (),
        method_filter: Iterable[HttpMethod] = (),
        search: str = "",
    ) -> List[EndpointResponse]:
        """
        List endpoints (optionally of one project) through the store's filters.

        Filters are applied in memory by ReconciliationStore so the server
        and the client mirror agree on exactly the same predicate.
        """
        endpoints = await self._load_many(db, project_id)
        store = ReconciliationStore(to_endpoint_response(e) for e in endpoints)
        return list(store.filtered(status_filter, method_filter, search))

    async def project_summary(self, db: AsyncSession, project_id: uuid.UUID) -> ProjectSummary:
        project = await project_service.get_project(db, project_id)
        store = ReconciliationStore(to_endpoint_response(e) for e in await self._load_many(db, project.id))
        counts = store.status_counts()
        return ProjectSummary(
            project_id=project.id,
            endpoint_count=len(store),
            synced_count=store.synced_count(),
            conflicts_count=store.conflicts_count(),
            pending_count=counts[EndpointStatus.PENDING],
            undefined_count=counts[EndpointStatus.UNDEFINED],
        )

    async def list_conflicts(
        self,
        db: AsyncSession,
        endpoint_id: uuid.UUID,
        include_resolved: bool = False,
    ) -> List[ConflictResponse]:
        endpoint = await self._load(db, endpoint_id)
        conflicts = endpoint.conflicts if include_resolved else EndpointAggregate(endpoint).unresolved_conflicts
        return [ConflictResponse.model_validate(c) for c in sorted(conflicts, key=_conflict_sort_key)]

    # ── Endpoint lifecycle ────────────────────────────────────────────────

    async def create_endpoint(self, db: AsyncSession, payload: EndpointCreate) -> EndpointResponse:
        """
        Create an endpoint, optionally with one or both specs.

        Without `project_id` the endpoint goes to the default project, which
        is created on first use. Status is always derived, never taken from
        the payload. A new endpoint starts at version 1.

        Raises:
            NotFoundError:        explicit project_id does not exist
            ValidationError:      duplicate names/codes inside a spec
            DetectorFailureError: a response schema cannot be compared
        """
        if payload.status is not None:
            logger.info("Ignoring client-supplied status %s on create", payload.status.value)

        project = await project_service.resolve_project(db, payload.project_id)

        endpoint = Endpoint(
            project_id=project.id,
            path=payload.path,
            method=payload.method,
            name=payload.name,
            description=payload.description,
            status=EndpointStatus.UNDEFINED,
            version=1,
            specs=[],
            conflicts=[],
        )
        aggregate = EndpointAggregate(endpoint)
        for side, spec_payload in self._sides(payload.frontend_spec, payload.backend_spec):
            aggregate.attach_spec(side, build_spec(spec_payload))
        aggregate.recompute_status()
        endpoint.version = 1

        with database_errors("Could not create the endpoint."):
            db.add(endpoint)
            await db.flush()

        logger.info(
            "Endpoint created: %s %s %s (project=%s, status=%s)",
            endpoint.id,
            endpoint.method.value,
            endpoint.path,
            project.id,
            endpoint.status.value,
        )
        return to_endpoint_response(endpoint)

    async def update_endpoint(
        self,
        db: AsyncSession,
        endpoint_id: uuid.UUID,
        payload: EndpointUpdate,
    ) -> EndpointResponse:
        """
        Apply a partial update. Only fields present in the payload change.

        Specs present in the payload replace that side's spec. Both specs are
        validated before either is attached.

        Raises:
            NotFoundError:   endpoint does not exist
            StaleWriteError: payload.version is not the current version
            ValidationError: projectId changed, null path/method, bad spec
        """
        endpoint = await self._load(db, endpoint_id)
        aggregate = EndpointAggregate(endpoint)
        aggregate.check_version(payload.version)

        fields = payload.model_fields_set
        if "project_id" in fields and payload.project_id is not None and payload.project_id != endpoint.project_id:
            raise ValidationError(message="An endpoint cannot be moved to another project", field="projectId")
        if "status" in fields and payload.status is not None:
            logger.info("Ignoring client-supplied status %s on endpoint %s", payload.status.value, endpoint.id)

        changes = {}
        for attr in _EDITABLE_FIELDS:
            if attr not in fields:
                continue
            value = getattr(payload, attr)
            if value is None and attr in _REQUIRED_FIELDS:
                raise ValidationError(message=f"{attr} cannot be null", field=attr)
            if getattr(endpoint, attr) != value:
                changes[attr] = value

        new_specs = [(side, build_spec(p)) for side, p in self._sides(payload.frontend_spec, payload.backend_spec)]
        for _, spec in new_specs:
            validate_spec(spec)

        read_version = endpoint.version
        for attr, value in changes.items():
            setattr(endpoint, attr, value)
        for side, spec in new_specs:
            aggregate.attach_spec(side, spec, replace=True)
        if changes or new_specs:
            # One version step per request, however many specs were attached
            endpoint.version = read_version
            aggregate.touch()

        await self._flush(db, endpoint, "update the endpoint")
        logger.info("Endpoint updated: %s (fields=%s, specs=%d)", endpoint.id, sorted(changes), len(new_specs))
        return to_endpoint_response(endpoint)

    async def delete_endpoint(
        self,
        db: AsyncSession,
        endpoint_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> None:
        """
        Delete an endpoint and everything it owns.

        Rows are removed bottom-up (spec children, specs, conflicts, endpoint)
        so nothing is orphaned even where the database does not enforce
        ON DELETE CASCADE.
        """
        with database_errors("Could not delete the endpoint.", endpoint_id=str(endpoint_id)):
            result = await db.execute(select(Endpoint.version).where(Endpoint.id == endpoint_id))
            current_version = result.scalar_one_or_none()
            if current_version is None:
                raise NotFoundError(resource="endpoint", resource_id=str(endpoint_id))
            if expected_version is not None and expected_version != current_version:
                raise StaleWriteError(
                    endpoint_id=str(endpoint_id),
                    expected_version=expected_version,
                    actual_version=current_version,
                )

            spec_ids = select(Spec.id).where(Spec.endpoint_id == endpoint_id).scalar_subquery()
            for child in (Parameter, Header, StatusCode):
                await db.execute(
                    delete(child).where(child.spec_id.in_(spec_ids)).execution_options(synchronize_session=False)
                )
            await db.execute(
                delete(Spec).where(Spec.endpoint_id == endpoint_id).execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(Conflict)
                .where(Conflict.endpoint_id == endpoint_id)
                .execution_options(synchronize_session=False)
            )
            condition = [Endpoint.id == endpoint_id]
            if expected_version is not None:
                condition.append(Endpoint.version == expected_version)
            result = await db.execute(
                delete(Endpoint).where(*condition).execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Changed or removed after the version check; the caller rolls back
                raise StaleWriteError(endpoint_id=str(endpoint_id), expected_version=expected_version)
        logger.info("Endpoint deleted: %s", endpoint_id)

    # ── Specs ─────────────────────────────────────────────────────────────

    async def attach_spec(
        self,
        db: AsyncSession,
        endpoint_id: uuid.UUID,
        side: SpecSide,
        payload: SpecIn,
        replace: bool = False,
        expected_version: Optional[int] = None,
    ) -> EndpointResponse:
        """
        Raises:
            NotFoundError, StaleWriteError, ValidationError,
            DuplicateSpecSideError (side occupied and replace is False),
            DetectorFailureError
        """
        endpoint = await self._load(db, endpoint_id)
        EndpointAggregate(endpoint).attach_spec(side, build_spec(payload), replace, expected_version)
        await self._flush(db, endpoint, "save the spec")
        return to_endpoint_response(endpoint)

    async def remove_spec(
        self,
        db: AsyncSession,
        endpoint_id: uuid.UUID,
        side: SpecSide,
        expected_version: Optional[int] = None,
    ) -> EndpointResponse:
        endpoint = await self._load(db, endpoint_id)
        EndpointAggregate(endpoint).remove_spec(side, expected_version)
        await self._flush(db, endpoint, "remove the spec")
        return to_endpoint_response(endpoint)

    # ── Conflicts ─────────────────────────────────────────────────────────

    async def reconcile(
        self,
        db: AsyncSession,
        endpoint_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> EndpointResponse:
        """Re-run detection on the stored specs (e.g. after a detector upgrade)."""
        endpoint = await self._load(db, endpoint_id)
        EndpointAggregate(endpoint).reconcile(expected_version)
        await self._flush(db, endpoint, "reconcile the endpoint")
        return to_endpoint_response(endpoint)

    async def resolve_conflict(
        self,
        db: AsyncSession,
        endpoint_id: uuid.UUID,
        conflict_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> EndpointResponse:
        endpoint = await self._load(db, endpoint_id)
        EndpointAggregate(endpoint).resolve_conflict(conflict_id, expected_version)
        await self._flush(db, endpoint, "resolve the conflict")
        return to_endpoint_response(endpoint)

    async def resolve_all(
        self,
        db: AsyncSession,
        endpoint_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> ResolveAllResponse:
        endpoint = await self._load(db, endpoint_id)
        count = EndpointAggregate(endpoint).resolve_all(expected_version)
        await self._flush(db, endpoint, "resolve conflicts")
        logger.info("Resolved %d conflict(s) on endpoint %s", count, endpoint.id)
        return ResolveAllResponse(resolved_count=count, endpoint=to_endpoint_response(endpoint))

    @staticmethod
    def _sides(frontend: Optional[SpecIn], backend: Optional[SpecIn]):
        for side, spec in ((SpecSide.FRONTEND, frontend), (SpecSide.BACKEND, backend)):
            if spec is not None:
                yield side, spec


# ── Singleton Instance ────────────────────────────────────────────────────
endpoint_service = EndpointService()
