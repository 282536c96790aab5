"""
API Sync Backend - Endpoint Aggregate
======================================

What:  The only code allowed to change an endpoint's specs, conflicts and status.
Why:   Keeps the invariants in one place:
       - at most one spec per side
       - conflicts always match the current spec pair
       - status always matches (specs present, unresolved conflicts)
How:   Wraps a fully loaded ORM `Endpoint`. Every mutation validates first,
       computes the new conflict set against the prospective spec pair, and
       only then touches the ORM object, so a ValidationError or
       DetectorFailureError leaves the endpoint exactly as it was.
Who:   EndpointService (per request, inside the request's transaction).

The aggregate performs no I/O. Flushing and committing belong to the caller,
which keeps a spec mutation and its conflict recomputation in a single
transaction.

Status Derivation:
    unresolved conflicts > 0   → CONFLICT
    both specs present         → SYNCED
    exactly one spec present   → PENDING
    no specs                   → UNDEFINED
"""

import enum
import logging
import uuid
from typing import Iterable, List, Optional, Tuple

from apisync.exceptions import (
    DuplicateSpecSideError,
    NotFoundError,
    StaleWriteError,
    ValidationError,
)
from apisync.models.base import utcnow
from apisync.models.conflict import Conflict
from apisync.models.endpoint import Endpoint
from apisync.models.enums import EndpointStatus, SpecSide
from apisync.models.spec import Spec
from apisync.services.conflict_detector import (
    ConflictDetector,
    DetectedConflict,
    conflict_detector,
)

logger = logging.getLogger(__name__)


def derive_status(has_frontend: bool, has_backend: bool, unresolved_count: int) -> EndpointStatus:
    """Pure status rule shared by the aggregate and the tests."""
    if unresolved_count > 0:
        return EndpointStatus.CONFLICT
    if has_frontend and has_backend:
        return EndpointStatus.SYNCED
    if has_frontend or has_backend:
        return EndpointStatus.PENDING
    return EndpointStatus.UNDEFINED


def validate_spec(spec) -> None:
    """
    Reject a spec whose nested records break the uniqueness rules.

    Checked before the spec ever reaches the session:
        - parameter names: non-empty, unique
        - header names: non-empty, unique ignoring case
        - status codes: 100-599, unique

    Raises:
        ValidationError: naming the offending field.
    """
    seen_params = set()
    for param in spec.parameters or []:
        name = (param.name or "").strip()
        if not name:
            raise ValidationError(message="Parameter name must not be empty", field="parameters")
        if name in seen_params:
            raise ValidationError(
                message=f"Duplicate parameter '{name}' in spec",
                field=f"parameters.{name}",
            )
        seen_params.add(name)

    seen_headers = set()
    for header in spec.headers or []:
        name = (header.name or "").strip()
        if not name:
            raise ValidationError(message="Header name must not be empty", field="headers")
        key = name.lower()
        if key in seen_headers:
            raise ValidationError(
                message=f"Duplicate header '{name}' in spec (header names are case-insensitive)",
                field=f"headers.{key}",
            )
        seen_headers.add(key)

    seen_codes = set()
    for status_code in spec.status_codes or []:
        code = status_code.code
        if not isinstance(code, int) or isinstance(code, bool) or not 100 <= code <= 599:
            raise ValidationError(
                message=f"Status code {code!r} is outside 100-599",
                field="statusCodes",
            )
        if code in seen_codes:
            raise ValidationError(
                message=f"Duplicate status code {code} in spec",
                field=f"statusCodes.{code}",
            )
        seen_codes.add(code)


def _identity(conflict) -> Tuple[str, str, Optional[str], Optional[str]]:
    conflict_type = conflict.type.value if isinstance(conflict.type, enum.Enum) else conflict.type
    return (conflict_type, conflict.field, conflict.frontend_value, conflict.backend_value)


class EndpointAggregate:
    """
    Consistency boundary around one endpoint.

    Args:
        endpoint: ORM endpoint with `specs` (and their children) and
                  `conflicts` loaded.
        detector: Conflict detector; defaults to the module singleton.
    """

    def __init__(self, endpoint: Endpoint, detector: Optional[ConflictDetector] = None):
        self.endpoint = endpoint
        self.detector = detector or conflict_detector

    # ── Read helpers ──────────────────────────────────────────────────────

    def spec_for(self, side: SpecSide) -> Optional[Spec]:
        side = SpecSide(side)
        for spec in self.endpoint.specs:
            if SpecSide(spec.side) == side:
                return spec
        return None

    @property
    def frontend_spec(self) -> Optional[Spec]:
        return self.spec_for(SpecSide.FRONTEND)

    @property
    def backend_spec(self) -> Optional[Spec]:
        return self.spec_for(SpecSide.BACKEND)

    @property
    def unresolved_conflicts(self) -> List[Conflict]:
        return [c for c in self.endpoint.conflicts if not c.resolved]

    def check_version(self, expected_version: Optional[int]) -> None:
        """Compare-and-swap guard: fail if the caller read an older version."""
        if expected_version is None:
            return
        if expected_version != self.endpoint.version:
            raise StaleWriteError(
                endpoint_id=str(self.endpoint.id),
                expected_version=expected_version,
                actual_version=self.endpoint.version,
            )

    # ── Spec mutations ────────────────────────────────────────────────────

    def attach_spec(
        self,
        side: SpecSide,
        spec: Spec,
        replace: bool = False,
        expected_version: Optional[int] = None,
    ) -> Spec:
        """
        Attach `spec` as this endpoint's `side` spec and re-run detection.

        Raises:
            StaleWriteError:        expected_version does not match
            ValidationError:        duplicate parameter/header/status code
            DuplicateSpecSideError: side occupied and replace is False
            DetectorFailureError:   stored schema cannot be compared
        """
        side = SpecSide(side)
        self.check_version(expected_version)
        validate_spec(spec)

        existing = self.spec_for(side)
        if existing is not None and not replace:
            raise DuplicateSpecSideError(side=side.value, endpoint_id=str(self.endpoint.id))

        spec.side = side
        pair = {SpecSide.FRONTEND: self.frontend_spec, SpecSide.BACKEND: self.backend_spec}
        pair[side] = spec
        detected = self.detector.detect(pair[SpecSide.FRONTEND], pair[SpecSide.BACKEND], self.endpoint.method)

        if existing is not None:
            self.endpoint.specs.remove(existing)
        self.endpoint.specs.append(spec)

        self._apply(detected)
        logger.info(
            "%s %s spec on endpoint %s (status=%s, version=%d)",
            "Replaced" if existing is not None else "Attached",
            side.value,
            self.endpoint.id,
            self.endpoint.status.value,
            self.endpoint.version,
        )
        return spec

    def remove_spec(self, side: SpecSide, expected_version: Optional[int] = None) -> Spec:
        """
        Detach the `side` spec; its parameters, headers and status codes go with it.

        Afterwards at most one spec remains, so the detector returns nothing
        and the status becomes PENDING or UNDEFINED.

        Raises:
            StaleWriteError: expected_version does not match
            NotFoundError:   no spec on that side
        """
        side = SpecSide(side)
        self.check_version(expected_version)

        existing = self.spec_for(side)
        if existing is None:
            raise NotFoundError(resource=f"{side.value} spec", resource_id=str(self.endpoint.id))

        remaining = {SpecSide.FRONTEND: self.frontend_spec, SpecSide.BACKEND: self.backend_spec}
        remaining[side] = None
        detected = self.detector.detect(
            remaining[SpecSide.FRONTEND], remaining[SpecSide.BACKEND], self.endpoint.method
        )

        self.endpoint.specs.remove(existing)
        self._apply(detected)
        logger.info(
            "Removed %s spec from endpoint %s (status=%s)",
            side.value,
            self.endpoint.id,
            self.endpoint.status.value,
        )
        return existing

    # ── Conflicts ─────────────────────────────────────────────────────────

    def reconcile(self, expected_version: Optional[int] = None) -> List[Conflict]:
        """Re-run detection on the current spec pair. Returns the unresolved set."""
        self.check_version(expected_version)
        detected = self.detector.detect(self.frontend_spec, self.backend_spec, self.endpoint.method)
        self._apply(detected)
        return self.unresolved_conflicts

    def resolve_conflict(
        self,
        conflict_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> Conflict:
        """
        Mark one conflict resolved. The record is kept for audit history.

        Resolving an already-resolved conflict is a no-op.
        """
        self.check_version(expected_version)
        for conflict in self.endpoint.conflicts:
            if conflict.id == conflict_id:
                if not conflict.resolved:
                    self._mark_resolved([conflict])
                return conflict
        raise NotFoundError(resource="conflict", resource_id=str(conflict_id))

    def resolve_all(self, expected_version: Optional[int] = None) -> int:
        """Mark every unresolved conflict resolved. Returns how many changed."""
        self.check_version(expected_version)
        pending = self.unresolved_conflicts
        if pending:
            self._mark_resolved(pending)
        return len(pending)

    def _mark_resolved(self, conflicts: Iterable[Conflict]) -> None:
        now = utcnow()
        for conflict in conflicts:
            conflict.resolved = True
            conflict.resolved_at = now
        self.recompute_status()
        self.touch()

    def _apply(self, detected: List[DetectedConflict]) -> None:
        """
        Replace the unresolved conflict set with `detected`.

        - unresolved rows matching a detection are kept (stable ids)
        - unresolved rows no longer detected are deleted (delete-orphan)
        - a detection identical to a resolved row stays resolved
        - resolved rows are never touched
        """
        resolved = {_identity(c) for c in self.endpoint.conflicts if c.resolved}
        current = {_identity(c): c for c in self.unresolved_conflicts}
        wanted = {d.identity: d for d in detected if d.identity not in resolved}

        for key, conflict in current.items():
            if key not in wanted:
                self.endpoint.conflicts.remove(conflict)

        for key, item in wanted.items():
            if key in current:
                continue
            self.endpoint.conflicts.append(
                Conflict(
                    type=item.type,
                    field=item.field,
                    frontend_value=item.frontend_value,
                    backend_value=item.backend_value,
                    severity=item.severity,
                    resolved=False,
                )
            )

        self.recompute_status()
        self.touch()

    # ── Status & version ──────────────────────────────────────────────────

    def recompute_status(self) -> EndpointStatus:
        status = derive_status(
            has_frontend=self.frontend_spec is not None,
            has_backend=self.backend_spec is not None,
            unresolved_count=len(self.unresolved_conflicts),
        )
        self.endpoint.status = status
        return status

    def touch(self) -> None:
        """Advance the version; the UPDATE compares against the old value."""
        self.endpoint.version = (self.endpoint.version or 0) + 1
        self.endpoint.updated_at = utcnow()
