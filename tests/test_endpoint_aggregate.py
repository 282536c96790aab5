"""
API Sync Backend - Endpoint Aggregate Unit Tests
=================================================

What:  Tests for EndpointAggregate on transient ORM objects (no database).

What we test:
    ✅ Status derivation after every mutation
    ✅ One spec per side, replace semantics
    ✅ Version compare-and-swap
    ✅ Uniqueness validation inside a spec
    ✅ Conflict resolution and persistence of resolved records
    ✅ Failed mutations leave the endpoint untouched
"""

import uuid

import pytest

from apisync.exceptions import (
    DetectorFailureError,
    DuplicateSpecSideError,
    NotFoundError,
    StaleWriteError,
    ValidationError,
)
from apisync.models.endpoint import Endpoint
from apisync.models.enums import EndpointStatus, HttpMethod, Severity, SpecSide
from apisync.services.conflict_detector import ConflictDetector
from apisync.services.endpoint_aggregate import EndpointAggregate, derive_status
from apisync.services.endpoint_service import build_spec
from conftest import make_spec


def _endpoint() -> Endpoint:
    return Endpoint(
        id=uuid.uuid4(),
        project_id=uuid.uuid4(),
        path="/users/{id}",
        method=HttpMethod.GET,
        status=EndpointStatus.UNDEFINED,
        version=1,
        specs=[],
        conflicts=[],
    )


def _spec(type_="STRING", codes=(200,), **fields):
    return build_spec(
        make_spec(
            parameters=[{"name": "id", "type": type_, "required": True}],
            status_codes=list(codes),
            **fields,
        )
    )


def _assign_ids(endpoint: Endpoint) -> None:
    """Conflict ids are generated at flush; give transient ones an id."""
    for conflict in endpoint.conflicts:
        if conflict.id is None:
            conflict.id = uuid.uuid4()


@pytest.mark.parametrize(
    "has_frontend, has_backend, unresolved, expected",
    [
        (False, False, 0, EndpointStatus.UNDEFINED),
        (True, False, 0, EndpointStatus.PENDING),
        (False, True, 0, EndpointStatus.PENDING),
        (True, True, 0, EndpointStatus.SYNCED),
        (True, True, 2, EndpointStatus.CONFLICT),
    ],
)
def test_derive_status(has_frontend, has_backend, unresolved, expected):
    assert derive_status(has_frontend, has_backend, unresolved) == expected


class TestAttachSpec:

    def setup_method(self):
        self.endpoint = _endpoint()
        self.aggregate = EndpointAggregate(self.endpoint)

    def test_first_spec_makes_endpoint_pending(self):
        self.aggregate.attach_spec(SpecSide.FRONTEND, _spec())
        assert self.endpoint.status == EndpointStatus.PENDING
        assert self.endpoint.version == 2
        assert self.aggregate.frontend_spec is not None
        assert self.aggregate.backend_spec is None

    def test_matching_specs_are_synced(self):
        self.aggregate.attach_spec(SpecSide.FRONTEND, _spec())
        self.aggregate.attach_spec(SpecSide.BACKEND, _spec())
        assert self.endpoint.status == EndpointStatus.SYNCED
        assert self.aggregate.unresolved_conflicts == []

    def test_type_mismatch_puts_endpoint_in_conflict(self):
        self.aggregate.attach_spec(SpecSide.FRONTEND, _spec("STRING"))
        self.aggregate.attach_spec(SpecSide.BACKEND, _spec("NUMBER"))

        assert self.endpoint.status == EndpointStatus.CONFLICT
        [conflict] = self.aggregate.unresolved_conflicts
        assert conflict.field == "parameters.id.type"
        assert conflict.severity == Severity.MEDIUM

    def test_occupied_side_without_replace_is_rejected(self):
        self.aggregate.attach_spec(SpecSide.BACKEND, _spec())
        version = self.endpoint.version

        with pytest.raises(DuplicateSpecSideError):
            self.aggregate.attach_spec(SpecSide.BACKEND, _spec("NUMBER"))

        assert len(self.endpoint.specs) == 1
        assert self.endpoint.version == version

    def test_replace_swaps_spec_and_recomputes(self):
        self.aggregate.attach_spec(SpecSide.FRONTEND, _spec("STRING"))
        self.aggregate.attach_spec(SpecSide.BACKEND, _spec("NUMBER"))
        assert self.endpoint.status == EndpointStatus.CONFLICT

        self.aggregate.attach_spec(SpecSide.BACKEND, _spec("STRING"), replace=True)

        assert len(self.endpoint.specs) == 2
        assert self.endpoint.status == EndpointStatus.SYNCED
        assert self.aggregate.unresolved_conflicts == []

    def test_stale_version_is_rejected(self):
        self.aggregate.attach_spec(SpecSide.FRONTEND, _spec())
        with pytest.raises(StaleWriteError) as exc_info:
            self.aggregate.attach_spec(SpecSide.BACKEND, _spec(), expected_version=1)
        assert exc_info.value.actual_version == 2
        assert self.aggregate.backend_spec is None

    def test_matching_version_is_accepted(self):
        self.aggregate.attach_spec(SpecSide.FRONTEND, _spec(), expected_version=1)
        assert self.endpoint.version == 2

    def test_duplicate_parameter_names_rejected(self):
        spec = build_spec(
            make_spec(
                parameters=[
                    {"name": "id", "type": "STRING"},
                    {"name": "id", "type": "NUMBER"},
                ]
            )
        )
        with pytest.raises(ValidationError) as exc_info:
            self.aggregate.attach_spec(SpecSide.FRONTEND, spec)
        assert exc_info.value.field == "parameters.id"
        assert self.endpoint.specs == []
        assert self.endpoint.version == 1

    def test_duplicate_header_names_rejected_case_insensitively(self):
        spec = build_spec(make_spec(headers=[{"name": "Accept"}, {"name": "ACCEPT"}]))
        with pytest.raises(ValidationError):
            self.aggregate.attach_spec(SpecSide.FRONTEND, spec)

    def test_duplicate_status_codes_rejected(self):
        spec = build_spec(make_spec(status_codes=[200, 200]))
        with pytest.raises(ValidationError):
            self.aggregate.attach_spec(SpecSide.FRONTEND, spec)

    def test_detector_failure_leaves_endpoint_untouched(self):
        aggregate = EndpointAggregate(self.endpoint, detector=ConflictDetector(max_depth=4))
        aggregate.attach_spec(SpecSide.FRONTEND, _spec(response_body={"a": 1}))
        version = self.endpoint.version
        deep = {"a": {"b": {"c": {"d": {"e": {"f": 1}}}}}}

        with pytest.raises(DetectorFailureError):
            aggregate.attach_spec(SpecSide.BACKEND, _spec(response_body=deep))

        assert aggregate.backend_spec is None
        assert self.endpoint.status == EndpointStatus.PENDING
        assert self.endpoint.version == version


class TestRemoveSpec:

    def setup_method(self):
        self.endpoint = _endpoint()
        self.aggregate = EndpointAggregate(self.endpoint)
        self.aggregate.attach_spec(SpecSide.FRONTEND, _spec("STRING"))
        self.aggregate.attach_spec(SpecSide.BACKEND, _spec("NUMBER"))

    def test_removing_a_side_clears_open_conflicts(self):
        self.aggregate.remove_spec(SpecSide.BACKEND)
        assert self.endpoint.status == EndpointStatus.PENDING
        assert self.aggregate.unresolved_conflicts == []
        assert self.aggregate.backend_spec is None

    def test_removing_both_sides_is_undefined(self):
        self.aggregate.remove_spec(SpecSide.BACKEND)
        self.aggregate.remove_spec(SpecSide.FRONTEND)
        assert self.endpoint.status == EndpointStatus.UNDEFINED

    def test_removing_empty_side_is_not_found(self):
        self.aggregate.remove_spec(SpecSide.BACKEND)
        with pytest.raises(NotFoundError):
            self.aggregate.remove_spec(SpecSide.BACKEND)


class TestResolution:

    def setup_method(self):
        self.endpoint = _endpoint()
        self.aggregate = EndpointAggregate(self.endpoint)
        self.aggregate.attach_spec(SpecSide.FRONTEND, _spec("STRING", codes=(200,)))
        self.aggregate.attach_spec(SpecSide.BACKEND, _spec("NUMBER", codes=(200, 404)))
        _assign_ids(self.endpoint)

    def test_resolving_every_conflict_syncs_endpoint(self):
        assert len(self.aggregate.unresolved_conflicts) == 2
        first, second = self.aggregate.unresolved_conflicts

        self.aggregate.resolve_conflict(first.id)
        assert self.endpoint.status == EndpointStatus.CONFLICT

        self.aggregate.resolve_conflict(second.id)
        assert self.endpoint.status == EndpointStatus.SYNCED
        assert second.resolved is True
        assert second.resolved_at is not None
        assert len(self.endpoint.conflicts) == 2

    def test_resolve_is_idempotent(self):
        conflict = self.aggregate.unresolved_conflicts[0]
        self.aggregate.resolve_conflict(conflict.id)
        version = self.endpoint.version
        self.aggregate.resolve_conflict(conflict.id)
        assert self.endpoint.version == version

    def test_unknown_conflict_is_not_found(self):
        with pytest.raises(NotFoundError):
            self.aggregate.resolve_conflict(uuid.uuid4())

    def test_resolve_all_returns_count(self):
        assert self.aggregate.resolve_all() == 2
        assert self.endpoint.status == EndpointStatus.SYNCED
        assert self.aggregate.resolve_all() == 0

    def test_resolved_conflict_is_not_recreated_by_reconcile(self):
        self.aggregate.resolve_all()
        self.aggregate.reconcile()
        assert self.aggregate.unresolved_conflicts == []
        assert self.endpoint.status == EndpointStatus.SYNCED

    def test_reconcile_keeps_open_conflict_rows(self):
        before = {c.id for c in self.aggregate.unresolved_conflicts}
        self.aggregate.reconcile()
        assert {c.id for c in self.aggregate.unresolved_conflicts} == before
