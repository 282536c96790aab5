"""
API Sync Backend - Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions, one per failure kind a caller can act on.
Why:   Each kind maps 1:1 to an HTTP status and a stable `error` identifier,
       so clients never see internal storage errors.
How:   Each exception carries a message and optional context dict. Global
       handlers registered in main.py turn them into JSON error responses.

Exception Hierarchy:
    ApiSyncError (base)
    ├── ValidationError          → 400 validation_error
    ├── NotFoundError            → 404 not_found
    ├── DuplicateSpecSideError   → 409 duplicate_spec_side
    ├── StaleWriteError          → 409 stale_write
    ├── DetectorFailureError     → 422 detector_failure
    ├── DatabaseError            → 500 server_error
    └── RateLimitExceededError   → 429 rate_limit_exceeded

"Spec absent" and "no conflicts" are valid states, not errors; nothing in
this hierarchy is raised for expected control flow.
"""

from typing import Any, Dict, Optional


class ApiSyncError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
        error_code: Stable machine-readable identifier used in responses
    """

    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    @classmethod
    def from_payload(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "ApiSyncError":
        """
        Rebuild an error received in an HTTP error body (used by ApiSyncClient).

        Subclass constructors format their own message; here the server's
        message is kept as-is and known context keys become attributes.
        """
        exc = cls.__new__(cls)
        ApiSyncError.__init__(exc, message=message, context=context)
        for key in ("field", "side", "path", "retry_after", "expected_version", "actual_version"):
            if key in exc.context:
                setattr(exc, key, exc.context[key])
        return exc


class ValidationError(ApiSyncError):
    """
    Raised when client input fails validation.

    When:    Missing path, invalid enum value, duplicate parameter/header name
             or status code within a spec, attempt to move an endpoint to
             another project. Raised before anything is persisted.
    HTTP:    400 Bad Request
    """

    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(ApiSyncError):
    """
    Raised when a referenced project, endpoint or conflict does not exist.

    SQLAlchemy returns None for missing rows; services convert that None
    into this exception. HTTP 404, no retry.
    """

    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class DuplicateSpecSideError(ApiSyncError):
    """A spec already occupies this side and the caller did not ask to replace it."""

    error_code = "duplicate_spec_side"

    def __init__(
        self,
        side: str,
        endpoint_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"A {side} spec is already attached to this endpoint. "
            f"Pass replace=true to replace it."
        )
        ctx = context or {}
        ctx["side"] = side
        if endpoint_id:
            ctx["endpoint_id"] = endpoint_id
        super().__init__(message=message, context=ctx)
        self.side = side


class StaleWriteError(ApiSyncError):
    """
    Raised when an endpoint changed since the caller last read it.

    What:    The expected version did not match, or a concurrent transaction
             committed first (compare-and-swap on the version column failed).
    HTTP:    409 Conflict
    Recovery: Not fatal. Re-fetch the endpoint and retry with its new version.
    """

    error_code = "stale_write"

    def __init__(
        self,
        endpoint_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = "The endpoint was modified concurrently. Re-fetch it and retry."
        ctx = context or {}
        if endpoint_id:
            ctx["endpoint_id"] = endpoint_id
        if expected_version is not None:
            ctx["expected_version"] = expected_version
        if actual_version is not None:
            ctx["actual_version"] = actual_version
        super().__init__(message=message, context=ctx)
        self.expected_version = expected_version
        self.actual_version = actual_version


class DetectorFailureError(ApiSyncError):
    """
    Raised when the conflict detector cannot complete a comparison.

    When:    A stored schema holds a value that is not JSON-shaped, or nests
             deeper than `max_schema_depth`.
    Effect:  The surrounding transaction is rolled back, so the endpoint keeps
             its prior status and conflicts. Conflicts are never silently dropped.
    HTTP:    422 Unprocessable Entity
    """

    error_code = "detector_failure"

    def __init__(
        self,
        message: str = "Conflict detection could not complete",
        path: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if path:
            ctx["path"] = path
        super().__init__(message=message, context=ctx)
        self.path = path


class DatabaseError(ApiSyncError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic. Detailed error
    info (SQL, constraint names) is logged server-side only.
    """

    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(ApiSyncError):
    """Raised when a client exceeds the per-IP request rate limit (HTTP 429)."""

    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
