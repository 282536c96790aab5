"""
API Sync Backend - Async HTTP Client
=====================================

What:  `ApiSyncClient`, a thin httpx wrapper around the REST API that keeps a
       local ReconciliationStore in step with the server.
Who:   Dashboards, CLI scripts and integration tests.

Cache Rules:
    - `refresh()` replaces the whole store from GET /api/endpoints
    - every successful mutation replaces exactly the affected endpoint with
      the server's response; local copies are never patched
    - a 404 for an endpoint drops it from the store
    - a stale_write re-fetches the endpoint, then re-raises, so the caller
      can retry with `client.store.get(id).version`

Errors:
    Error bodies are mapped back to the exceptions in `apisync.exceptions`
    by their `error` field. Transport failures surface as httpx errors.

Usage:
    async with ApiSyncClient("http://localhost:8000") as client:
        await client.refresh()
        client.set_filters(status=["CONFLICT"])
        for endpoint in client.visible_endpoints():
            ...
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Type, Union

import httpx

from apisync.exceptions import (
    ApiSyncError,
    DatabaseError,
    DetectorFailureError,
    DuplicateSpecSideError,
    NotFoundError,
    RateLimitExceededError,
    StaleWriteError,
    ValidationError,
)
from apisync.models.enums import EndpointStatus, HttpMethod, SpecSide
from apisync.schemas.endpoint import (
    ConflictResponse,
    EndpointCreate,
    EndpointResponse,
    EndpointUpdate,
    ResolveAllResponse,
    SpecIn,
)
from apisync.schemas.project import InitResponse, ProjectCreate, ProjectResponse, ProjectSummary
from apisync.services.reconciliation_store import ReconciliationStore

logger = logging.getLogger(__name__)

ERROR_TYPES: Dict[str, Type[ApiSyncError]] = {
    "validation_error": ValidationError,
    "not_found": NotFoundError,
    "duplicate_spec_side": DuplicateSpecSideError,
    "stale_write": StaleWriteError,
    "detector_failure": DetectorFailureError,
    "rate_limit_exceeded": RateLimitExceededError,
    "server_error": DatabaseError,
}

IdLike = Union[uuid.UUID, str]


def error_from_response(response: httpx.Response) -> ApiSyncError:
    """Turn an error response into the matching ApiSyncError subclass."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return ApiSyncError(
            message=f"HTTP {response.status_code}: {response.text[:200]}",
            context={"status_code": response.status_code},
        )
    error_cls = ERROR_TYPES.get(body.get("error", ""), ApiSyncError)
    context = dict(body.get("details") or {})
    if body.get("request_id"):
        context["request_id"] = body["request_id"]
    return error_cls.from_payload(body.get("message") or "Request failed", context)


class ApiSyncClient:
    """
    Args:
        base_url:  Server root, e.g. "http://localhost:8000".
        client:    Pre-built httpx.AsyncClient (tests pass one bound to an
                   ASGITransport); base_url is ignored when given.
        timeout:   Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.store = ReconciliationStore()
        self.project_id: Optional[uuid.UUID] = None
        self.status_filter: List[EndpointStatus] = []
        self.method_filter: List[HttpMethod] = []
        self.search_text = ""

    async def __aenter__(self) -> "ApiSyncClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ── Transport ─────────────────────────────────────────────────────────

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = await self._http.request(method, url, **kwargs)
        if response.is_error:
            error = error_from_response(response)
            logger.debug("%s %s failed: %s %s", method, url, response.status_code, error.message)
            raise error
        return response

    @staticmethod
    def _params(**values: Any) -> Dict[str, Any]:
        params = {}
        for key, value in values.items():
            if value is None:
                continue
            params[key] = str(value).lower() if isinstance(value, bool) else str(value)
        return params

    def _keep(self, data: Any) -> EndpointResponse:
        endpoint = EndpointResponse.model_validate(data)
        self.store.upsert(endpoint)
        return endpoint

    async def _mutate(self, endpoint_id: IdLike, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Run a request against one endpoint, keeping the store honest on failure."""
        try:
            return await self._request(method, url, **kwargs)
        except NotFoundError as exc:
            # A missing spec side or conflict is a 404 too; the endpoint is still there
            if exc.context.get("resource") == "endpoint":
                self.store.remove(uuid.UUID(str(endpoint_id)))
            raise
        except StaleWriteError:
            await self._reload(endpoint_id)
            raise

    async def _reload(self, endpoint_id: IdLike) -> None:
        try:
            await self.get_endpoint(endpoint_id)
        except NotFoundError:
            # deleted concurrently; get_endpoint already dropped it from the store
            logger.debug("Endpoint %s vanished while reloading after a stale write", endpoint_id)

    # ── Projects ──────────────────────────────────────────────────────────

    async def init(self) -> ProjectResponse:
        """Ensure the default project exists and make it the current project."""
        response = await self._request("POST", "/api/init")
        result = InitResponse.model_validate(response.json())
        self.project_id = result.project.id
        return result.project

    async def create_project(self, payload: ProjectCreate) -> ProjectResponse:
        response = await self._request("POST", "/api/projects", json=payload.model_dump(mode="json", by_alias=True))
        return ProjectResponse.model_validate(response.json())

    async def list_projects(self) -> List[ProjectResponse]:
        response = await self._request("GET", "/api/projects")
        return [ProjectResponse.model_validate(p) for p in response.json()]

    async def project_summary(self, project_id: Optional[IdLike] = None) -> ProjectSummary:
        project_id = project_id or self.project_id
        if project_id is None:
            raise ValidationError(message="No project selected", field="projectId")
        response = await self._request("GET", f"/api/projects/{project_id}/summary")
        return ProjectSummary.model_validate(response.json())

    # ── Endpoints ─────────────────────────────────────────────────────────

    async def refresh(self, project_id: Optional[IdLike] = None) -> List[EndpointResponse]:
        """Reload the whole store, scoped to `project_id` (or the current project)."""
        if project_id is not None:
            self.project_id = uuid.UUID(str(project_id))
        response = await self._request("GET", "/api/endpoints", params=self._params(projectId=self.project_id))
        endpoints = [EndpointResponse.model_validate(e) for e in response.json()]
        self.store.load(endpoints)
        return endpoints

    async def get_endpoint(self, endpoint_id: IdLike) -> EndpointResponse:
        try:
            response = await self._request("GET", f"/api/endpoints/{endpoint_id}")
        except NotFoundError:
            self.store.remove(uuid.UUID(str(endpoint_id)))
            raise
        return self._keep(response.json())

    async def create_endpoint(self, payload: EndpointCreate) -> EndpointResponse:
        if payload.project_id is None and self.project_id is not None:
            payload = payload.model_copy(update={"project_id": self.project_id})
        response = await self._request(
            "POST",
            "/api/endpoints",
            json=payload.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        return self._keep(response.json())

    async def update_endpoint(self, endpoint_id: IdLike, payload: EndpointUpdate) -> EndpointResponse:
        """Only fields explicitly set on `payload` are sent."""
        response = await self._mutate(
            endpoint_id,
            "PUT",
            f"/api/endpoints/{endpoint_id}",
            json=payload.model_dump(mode="json", by_alias=True, exclude_unset=True),
        )
        return self._keep(response.json())

    async def delete_endpoint(self, endpoint_id: IdLike, version: Optional[int] = None) -> None:
        await self._mutate(
            endpoint_id, "DELETE", f"/api/endpoints/{endpoint_id}", params=self._params(version=version)
        )
        self.store.remove(uuid.UUID(str(endpoint_id)))

    async def attach_spec(
        self,
        endpoint_id: IdLike,
        side: Union[SpecSide, str],
        spec: SpecIn,
        replace: bool = False,
        version: Optional[int] = None,
    ) -> EndpointResponse:
        response = await self._mutate(
            endpoint_id,
            "PUT",
            f"/api/endpoints/{endpoint_id}/specs/{SpecSide(side).value}",
            json=spec.model_dump(mode="json", by_alias=True),
            params=self._params(replace=replace, version=version),
        )
        return self._keep(response.json())

    async def remove_spec(
        self, endpoint_id: IdLike, side: Union[SpecSide, str], version: Optional[int] = None
    ) -> EndpointResponse:
        response = await self._mutate(
            endpoint_id,
            "DELETE",
            f"/api/endpoints/{endpoint_id}/specs/{SpecSide(side).value}",
            params=self._params(version=version),
        )
        return self._keep(response.json())

    async def reconcile(self, endpoint_id: IdLike, version: Optional[int] = None) -> EndpointResponse:
        response = await self._mutate(
            endpoint_id, "POST", f"/api/endpoints/{endpoint_id}/reconcile", params=self._params(version=version)
        )
        return self._keep(response.json())

    # ── Conflicts ─────────────────────────────────────────────────────────

    async def list_conflicts(self, endpoint_id: IdLike, include_resolved: bool = False) -> List[ConflictResponse]:
        response = await self._request(
            "GET",
            f"/api/endpoints/{endpoint_id}/conflicts",
            params=self._params(includeResolved=include_resolved),
        )
        return [ConflictResponse.model_validate(c) for c in response.json()]

    async def resolve_conflict(
        self, endpoint_id: IdLike, conflict_id: IdLike, version: Optional[int] = None
    ) -> EndpointResponse:
        response = await self._mutate(
            endpoint_id,
            "POST",
            f"/api/endpoints/{endpoint_id}/conflicts/{conflict_id}/resolve",
            params=self._params(version=version),
        )
        return self._keep(response.json())

    async def resolve_all(self, endpoint_id: IdLike, version: Optional[int] = None) -> int:
        """Resolve every open conflict; returns how many were resolved."""
        response = await self._mutate(
            endpoint_id,
            "POST",
            f"/api/endpoints/{endpoint_id}/conflicts/resolve",
            params=self._params(version=version),
        )
        result = ResolveAllResponse.model_validate(response.json())
        self.store.upsert(result.endpoint)
        return result.resolved_count

    # ── View state ────────────────────────────────────────────────────────

    def set_filters(
        self,
        status: Optional[Iterable[Union[EndpointStatus, str]]] = None,
        method: Optional[Iterable[Union[HttpMethod, str]]] = None,
        search: Optional[str] = None,
    ) -> None:
        """Replace the given filters; arguments left as None keep their value."""
        if status is not None:
            self.status_filter = [EndpointStatus(str(getattr(s, "value", s)).upper()) for s in status]
        if method is not None:
            self.method_filter = [HttpMethod(str(getattr(m, "value", m)).upper()) for m in method]
        if search is not None:
            self.search_text = search

    def clear_filters(self) -> None:
        self.status_filter = []
        self.method_filter = []
        self.search_text = ""

    def visible_endpoints(self) -> List[EndpointResponse]:
        return list(self.store.filtered(self.status_filter, self.method_filter, self.search_text))

    def conflicts_count(self) -> int:
        return self.store.conflicts_count()

    def synced_count(self) -> int:
        return self.store.synced_count()
