"""
API Sync Backend - ApiSyncClient Tests
=======================================

What:  The HTTP client and its local store, run against the real app
       through httpx's ASGITransport.

What we test:
    ✅ Mutations replace only the affected endpoint in the store
    ✅ Error bodies come back as the matching exception type
    ✅ Only a missing endpoint evicts it from the store
    ✅ stale_write refreshes the cached endpoint before re-raising
    ✅ Filter state and visible_endpoints()
"""

import uuid

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from apisync.client import ApiSyncClient, error_from_response
from apisync.exceptions import (
    ApiSyncError,
    DuplicateSpecSideError,
    NotFoundError,
    RateLimitExceededError,
    StaleWriteError,
)
from apisync.models.enums import EndpointStatus, SpecSide
from apisync.schemas.endpoint import EndpointCreate, EndpointUpdate
from conftest import make_spec


def _spec(type_="STRING"):
    return make_spec(parameters=[{"name": "id", "type": type_, "required": True}], status_codes=[200])


@pytest_asyncio.fixture
async def api(database):
    from apisync.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        client = ApiSyncClient(client=http)
        await client.init()
        yield client
        await client.aclose()


class TestStoreMirroring:

    @pytest.mark.asyncio
    async def test_create_and_attach_update_store(self, api):
        endpoint = await api.create_endpoint(EndpointCreate(path="/users", method="GET"))
        assert endpoint.project_id == api.project_id
        assert api.store.get(endpoint.id).status == EndpointStatus.UNDEFINED

        await api.attach_spec(endpoint.id, SpecSide.FRONTEND, _spec("STRING"))
        await api.attach_spec(endpoint.id, "backend", _spec("NUMBER"), version=2)

        cached = api.store.get(endpoint.id)
        assert cached.status == EndpointStatus.CONFLICT
        assert cached.version == 3
        assert api.conflicts_count() == 1

    @pytest.mark.asyncio
    async def test_refresh_loads_current_project(self, api):
        await api.create_endpoint(EndpointCreate(path="/a", method="GET"))
        await api.create_endpoint(EndpointCreate(path="/b", method="POST"))
        api.store.clear()

        endpoints = await api.refresh()

        assert [e.path for e in endpoints] == ["/a", "/b"]
        assert len(api.store) == 2

    @pytest.mark.asyncio
    async def test_delete_and_missing_endpoint_leave_store(self, api):
        endpoint = await api.create_endpoint(EndpointCreate(path="/a", method="GET"))
        await api.delete_endpoint(endpoint.id)
        assert endpoint.id not in api.store

        with pytest.raises(NotFoundError):
            await api.get_endpoint(endpoint.id)

    @pytest.mark.asyncio
    async def test_resolve_all_updates_store(self, api):
        endpoint = await api.create_endpoint(
            EndpointCreate(path="/a", method="GET", frontend_spec=_spec("STRING"), backend_spec=_spec("NUMBER"))
        )
        assert await api.resolve_all(endpoint.id) == 1
        assert api.store.get(endpoint.id).status == EndpointStatus.SYNCED
        assert api.synced_count() == 1

        history = await api.list_conflicts(endpoint.id, include_resolved=True)
        assert len(history) == 1 and history[0].resolved


class TestErrors:

    @pytest.mark.asyncio
    async def test_duplicate_side_maps_to_exception(self, api):
        endpoint = await api.create_endpoint(EndpointCreate(path="/a", method="GET", frontend_spec=_spec()))
        with pytest.raises(DuplicateSpecSideError) as exc_info:
            await api.attach_spec(endpoint.id, SpecSide.FRONTEND, _spec())
        assert exc_info.value.side == "frontend"

    @pytest.mark.asyncio
    async def test_stale_write_refreshes_cached_endpoint(self, api):
        endpoint = await api.create_endpoint(EndpointCreate(path="/a", method="GET"))
        await api.update_endpoint(endpoint.id, EndpointUpdate(name="first"))
        # Pretend our copy is still the original
        api.store.upsert(endpoint)

        with pytest.raises(StaleWriteError) as exc_info:
            await api.update_endpoint(endpoint.id, EndpointUpdate(name="second", version=1))

        assert exc_info.value.actual_version == 2
        assert api.store.get(endpoint.id).version == 2
        assert api.store.get(endpoint.id).name == "first"

    @pytest.mark.asyncio
    async def test_missing_side_or_conflict_keeps_endpoint_cached(self, api):
        endpoint = await api.create_endpoint(EndpointCreate(path="/users", method="GET"))

        with pytest.raises(NotFoundError):
            await api.remove_spec(endpoint.id, SpecSide.BACKEND)
        assert endpoint.id in api.store

        with pytest.raises(NotFoundError):
            await api.resolve_conflict(endpoint.id, uuid.uuid4())
        assert endpoint.id in api.store

    @pytest.mark.asyncio
    async def test_mutating_deleted_endpoint_evicts_it(self, api):
        endpoint = await api.create_endpoint(EndpointCreate(path="/users", method="GET"))
        await api.delete_endpoint(endpoint.id)
        api.store.upsert(endpoint)

        with pytest.raises(NotFoundError):
            await api.reconcile(endpoint.id)
        assert endpoint.id not in api.store

    def test_error_from_response_uses_error_id(self):
        response = httpx.Response(
            429,
            json={"error": "rate_limit_exceeded", "message": "Slow down", "details": {"retry_after": 7}},
        )
        error = error_from_response(response)
        assert isinstance(error, RateLimitExceededError)
        assert error.message == "Slow down"
        assert error.retry_after == 7

    def test_error_from_non_json_response(self):
        error = error_from_response(httpx.Response(502, text="Bad Gateway"))
        assert type(error) is ApiSyncError
        assert error.context["status_code"] == 502


class TestViewState:

    @pytest.mark.asyncio
    async def test_filters_drive_visible_endpoints(self, api):
        await api.create_endpoint(EndpointCreate(path="/users", method="GET", name="List users"))
        await api.create_endpoint(
            EndpointCreate(path="/users", method="POST", frontend_spec=_spec("STRING"), backend_spec=_spec("NUMBER"))
        )
        await api.create_endpoint(EndpointCreate(path="/orders", method="GET"))

        api.set_filters(status=["conflict"])
        assert [e.method.value for e in api.visible_endpoints()] == ["POST"]

        api.set_filters(status=[], method=["get"], search="user")
        assert [e.name for e in api.visible_endpoints()] == ["List users"]

        api.clear_filters()
        assert len(api.visible_endpoints()) == 3
