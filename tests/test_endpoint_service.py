"""
API Sync Backend - Endpoint Service Tests
==========================================

What:  EndpointService and ProjectService against a real (SQLite) database.
How:   Each test gets a fresh schema; services flush, tests read back
       through the same or a second session.

What we test:
    ✅ Create with and without specs, default project bootstrap
    ✅ Partial update, projectId immutability, version checks
    ✅ Recursive delete
    ✅ Concurrent writers: a flush from a stale read fails with StaleWriteError
    ✅ Conditional delete and one version step per update
    ✅ Conflict listing, resolution and project summary
"""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from apisync.config import settings
from apisync.database import async_session_factory
from apisync.exceptions import (
    DatabaseError,
    DuplicateSpecSideError,
    NotFoundError,
    StaleWriteError,
    ValidationError,
)
from apisync.models.conflict import Conflict
from apisync.models.enums import EndpointStatus, HttpMethod, Severity, SpecSide
from apisync.models.spec import Parameter, Spec, StatusCode
from apisync.schemas.endpoint import EndpointCreate, EndpointUpdate
from apisync.services.endpoint_aggregate import EndpointAggregate
from apisync.services.endpoint_service import EndpointService, build_spec
from apisync.services.project_service import ProjectService
from conftest import make_spec


def _spec(type_="STRING", codes=(200,)):
    return make_spec(
        parameters=[{"name": "id", "type": type_, "required": True}],
        status_codes=list(codes),
    )


async def _count(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class TestCreateEndpoint:

    def setup_method(self):
        self.service = EndpointService()
        self.projects = ProjectService()

    @pytest.mark.asyncio
    async def test_create_without_specs_is_undefined(self, db_session):
        """POST /users with no specs → UNDEFINED, no conflicts, version 1."""
        result = await self.service.create_endpoint(
            db_session, EndpointCreate(path="/users", method="post")
        )

        assert result.method == HttpMethod.POST
        assert result.status == EndpointStatus.UNDEFINED
        assert result.conflicts == []
        assert result.version == 1
        assert result.frontend_spec is None and result.backend_spec is None

    @pytest.mark.asyncio
    async def test_create_without_project_uses_default_project(self, db_session):
        first = await self.service.create_endpoint(db_session, EndpointCreate(path="/a", method="GET"))
        second = await self.service.create_endpoint(db_session, EndpointCreate(path="/b", method="GET"))

        project, created = await self.projects.resolve_default_project(db_session)
        assert created is False
        assert project.name == settings.default_project_name
        assert first.project_id == second.project_id == project.id

    @pytest.mark.asyncio
    async def test_create_with_unknown_project_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.create_endpoint(
                db_session,
                EndpointCreate(project_id=uuid.uuid4(), path="/a", method="GET"),
            )

    @pytest.mark.asyncio
    async def test_create_with_conflicting_specs(self, db_session):
        result = await self.service.create_endpoint(
            db_session,
            EndpointCreate(
                path="/users/{id}",
                method="GET",
                frontend_spec=_spec("STRING"),
                backend_spec=_spec("NUMBER"),
            ),
        )

        assert result.status == EndpointStatus.CONFLICT
        assert result.version == 1
        [conflict] = result.conflicts
        assert conflict.field == "parameters.id.type"
        assert conflict.severity == Severity.MEDIUM
        assert result.frontend_spec.side == SpecSide.FRONTEND
        assert result.backend_spec.parameters[0].type.value == "NUMBER"

    @pytest.mark.asyncio
    async def test_client_status_is_ignored(self, db_session):
        result = await self.service.create_endpoint(
            db_session,
            EndpointCreate(path="/a", method="GET", status="SYNCED", frontend_spec=_spec()),
        )
        assert result.status == EndpointStatus.PENDING


class TestUpdateAndDelete:

    def setup_method(self):
        self.service = EndpointService()

    @pytest.mark.asyncio
    async def test_partial_update_changes_only_given_fields(self, db_session):
        created = await self.service.create_endpoint(
            db_session, EndpointCreate(path="/a", method="GET", name="Old", description="Keep")
        )

        updated = await self.service.update_endpoint(
            db_session, created.id, EndpointUpdate(name="New", version=created.version)
        )

        assert updated.name == "New"
        assert updated.description == "Keep"
        assert updated.version == created.version + 1

    @pytest.mark.asyncio
    async def test_update_with_old_version_is_stale(self, db_session):
        created = await self.service.create_endpoint(db_session, EndpointCreate(path="/a", method="GET"))
        await self.service.update_endpoint(db_session, created.id, EndpointUpdate(name="x"))

        with pytest.raises(StaleWriteError):
            await self.service.update_endpoint(
                db_session, created.id, EndpointUpdate(name="y", version=created.version)
            )

    @pytest.mark.asyncio
    async def test_moving_endpoint_to_other_project_is_rejected(self, db_session):
        created = await self.service.create_endpoint(db_session, EndpointCreate(path="/a", method="GET"))
        with pytest.raises(ValidationError) as exc_info:
            await self.service.update_endpoint(
                db_session, created.id, EndpointUpdate(project_id=uuid.uuid4())
            )
        assert exc_info.value.field == "projectId"

    @pytest.mark.asyncio
    async def test_update_replaces_specs(self, db_session):
        created = await self.service.create_endpoint(
            db_session,
            EndpointCreate(path="/a", method="GET", frontend_spec=_spec("STRING"), backend_spec=_spec("NUMBER")),
        )
        assert created.status == EndpointStatus.CONFLICT

        updated = await self.service.update_endpoint(
            db_session, created.id, EndpointUpdate(backend_spec=_spec("STRING"))
        )

        assert updated.status == EndpointStatus.SYNCED
        assert updated.conflicts == []
        assert await _count(db_session, Spec) == 2

    @pytest.mark.asyncio
    async def test_update_with_both_specs_advances_version_once(self, db_session):
        created = await self.service.create_endpoint(db_session, EndpointCreate(path="/a", method="GET"))

        updated = await self.service.update_endpoint(
            db_session,
            created.id,
            EndpointUpdate(
                name="Both sides",
                frontend_spec=_spec("STRING"),
                backend_spec=_spec("NUMBER"),
                version=created.version,
            ),
        )

        assert updated.version == created.version + 1
        assert updated.status == EndpointStatus.CONFLICT

    @pytest.mark.asyncio
    async def test_delete_removes_everything_it_owns(self, db_session):
        created = await self.service.create_endpoint(
            db_session,
            EndpointCreate(
                path="/a",
                method="GET",
                frontend_spec=_spec("STRING", codes=(200,)),
                backend_spec=_spec("NUMBER", codes=(200, 404)),
            ),
        )
        assert await _count(db_session, Conflict) == 2

        await self.service.delete_endpoint(db_session, created.id)

        with pytest.raises(NotFoundError):
            await self.service.get_endpoint(db_session, created.id)
        for model in (Spec, Parameter, StatusCode, Conflict):
            assert await _count(db_session, model) == 0

    @pytest.mark.asyncio
    async def test_delete_missing_endpoint_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.delete_endpoint(db_session, uuid.uuid4())


class TestSpecsAndConflicts:

    def setup_method(self):
        self.service = EndpointService()

    @pytest.mark.asyncio
    async def test_attach_to_occupied_side_is_rejected(self, db_session):
        created = await self.service.create_endpoint(
            db_session, EndpointCreate(path="/a", method="GET", frontend_spec=_spec())
        )
        with pytest.raises(DuplicateSpecSideError):
            await self.service.attach_spec(db_session, created.id, SpecSide.FRONTEND, _spec())

    @pytest.mark.asyncio
    async def test_resolve_then_list_conflicts(self, db_session):
        created = await self.service.create_endpoint(
            db_session,
            EndpointCreate(path="/a", method="GET", frontend_spec=_spec("STRING"), backend_spec=_spec("NUMBER")),
        )
        conflict_id = created.conflicts[0].id

        resolved = await self.service.resolve_conflict(db_session, created.id, conflict_id)

        assert resolved.status == EndpointStatus.SYNCED
        assert resolved.conflicts == []
        assert await self.service.list_conflicts(db_session, created.id) == []
        history = await self.service.list_conflicts(db_session, created.id, include_resolved=True)
        assert [c.id for c in history] == [conflict_id]
        assert history[0].resolved is True

    @pytest.mark.asyncio
    async def test_remove_spec_and_reconcile(self, db_session):
        created = await self.service.create_endpoint(
            db_session,
            EndpointCreate(path="/a", method="GET", frontend_spec=_spec("STRING"), backend_spec=_spec("NUMBER")),
        )

        after_remove = await self.service.remove_spec(db_session, created.id, SpecSide.BACKEND)
        assert after_remove.status == EndpointStatus.PENDING
        assert after_remove.backend_spec is None

        reconciled = await self.service.reconcile(db_session, created.id)
        assert reconciled.status == EndpointStatus.PENDING

    @pytest.mark.asyncio
    async def test_resolve_all(self, db_session):
        created = await self.service.create_endpoint(
            db_session,
            EndpointCreate(
                path="/a",
                method="GET",
                frontend_spec=_spec("STRING", codes=(200,)),
                backend_spec=_spec("NUMBER", codes=(200, 500)),
            ),
        )
        result = await self.service.resolve_all(db_session, created.id, expected_version=created.version)
        assert result.resolved_count == 2
        assert result.endpoint.status == EndpointStatus.SYNCED

    @pytest.mark.asyncio
    async def test_project_summary(self, db_session):
        synced = await self.service.create_endpoint(
            db_session, EndpointCreate(path="/a", method="GET", frontend_spec=_spec(), backend_spec=_spec())
        )
        await self.service.create_endpoint(
            db_session,
            EndpointCreate(path="/b", method="GET", frontend_spec=_spec("STRING"), backend_spec=_spec("NUMBER")),
        )
        await self.service.create_endpoint(db_session, EndpointCreate(path="/c", method="GET"))

        summary = await self.service.project_summary(db_session, synced.project_id)

        assert summary.endpoint_count == 3
        assert summary.synced_count == 1
        assert summary.conflicts_count == 1
        assert summary.undefined_count == 1
        assert summary.pending_count == 0


class TestConcurrency:

    def setup_method(self):
        self.service = EndpointService()

    async def _committed_endpoint(self):
        async with async_session_factory() as setup:
            created = await self.service.create_endpoint(setup, EndpointCreate(path="/a", method="GET"))
            await setup.commit()
        return created

    @pytest.mark.asyncio
    async def test_flush_from_stale_read_gets_stale_write(self, database):
        created = await self._committed_endpoint()

        async with async_session_factory() as writer_a, async_session_factory() as writer_b:
            # A holds the endpoint it read at version 1 while B commits a change
            endpoint = await self.service._load(writer_a, created.id)

            await self.service.attach_spec(writer_b, created.id, SpecSide.FRONTEND, _spec("STRING"))
            await writer_b.commit()

            EndpointAggregate(endpoint).attach_spec(SpecSide.FRONTEND, build_spec(_spec("NUMBER")))
            with pytest.raises(StaleWriteError):
                await self.service._flush(writer_a, endpoint, "save the spec")
            await writer_a.rollback()

        async with async_session_factory() as reader:
            current = await self.service.get_endpoint(reader, created.id)
        assert current.version == 2
        assert current.frontend_spec.parameters[0].type.value == "STRING"

    @pytest.mark.asyncio
    async def test_attach_after_other_commit_sees_occupied_side(self, database):
        created = await self._committed_endpoint()

        async with async_session_factory() as writer_b:
            await self.service.attach_spec(writer_b, created.id, SpecSide.FRONTEND, _spec("STRING"))
            await writer_b.commit()

        async with async_session_factory() as writer_a:
            with pytest.raises(DuplicateSpecSideError):
                await self.service.attach_spec(writer_a, created.id, SpecSide.FRONTEND, _spec("NUMBER"))
            await writer_a.rollback()


class TestErrorTranslation:

    @pytest.mark.asyncio
    async def test_storage_error_becomes_database_error(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("disk I/O error"))
        with pytest.raises(DatabaseError):
            await EndpointService().get_endpoint(mock_db_session, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_missing_row_becomes_not_found(self, mock_db_session):
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = None
        mock_db_session.execute.return_value = mock_result
        with pytest.raises(NotFoundError):
            await EndpointService().get_endpoint(mock_db_session, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_delete_losing_race_is_stale_write(self, mock_db_session):
        """Version matched on read, but the endpoint changed before the DELETE ran."""
        version_result = MagicMock()
        version_result.scalar_one_or_none.return_value = 3
        deleted_nothing = MagicMock(rowcount=0)
        mock_db_session.execute.side_effect = [version_result] + [deleted_nothing] * 6

        with pytest.raises(StaleWriteError):
            await EndpointService().delete_endpoint(mock_db_session, uuid.uuid4(), expected_version=3)
