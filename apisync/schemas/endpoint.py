"""
API Sync Backend - Endpoint Request/Response Schemas
=====================================================

What:  The JSON contract for endpoints, their two specs and their conflicts.
How:   Request models validate shape and enum values; the cross-record rules
       (duplicate parameter names, duplicate status codes, one spec per
       side) are checked by EndpointAggregate so they hold no matter how a
       spec reaches it.

Response shape:
    {id, projectId, path, method, name?, description?, status, version,
     frontendSpec?, backendSpec?, conflicts[]}

    `frontendSpec` / `backendSpec` are resolved from the per-side spec rows;
    `conflicts` lists unresolved conflicts only.
"""

import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field, field_validator

from apisync.models.enums import (
    ConflictType,
    EndpointStatus,
    HttpMethod,
    ParameterType,
    Severity,
    SpecSide,
)
from apisync.schemas.common import CamelModel


def _upper(value: Any) -> Any:
    return value.strip().upper() if isinstance(value, str) else value


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ParameterIn(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    type: ParameterType
    required: bool = False
    description: Optional[str] = None
    default_value: Optional[str] = Field(default=None, max_length=500)
    validation: Any = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return _strip(v)

    @field_validator("type", mode="before")
    @classmethod
    def upper_type(cls, v: Any) -> Any:
        """Accept "string" as well as "STRING"."""
        return _upper(v)


class HeaderIn(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    value: Optional[str] = Field(default=None, max_length=500)
    required: bool = False
    description: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return _strip(v)


class StatusCodeIn(CamelModel):
    code: int = Field(ge=100, le=599)
    description: Optional[str] = None
    response_body: Any = None


class SpecIn(CamelModel):
    """One side's contract as submitted by a client."""

    request_body: Any = None
    response_body: Any = None
    parameters: List[ParameterIn] = Field(default_factory=list)
    headers: List[HeaderIn] = Field(default_factory=list)
    status_codes: List[StatusCodeIn] = Field(default_factory=list)
    content_type: Optional[str] = Field(default=None, max_length=100)
    authentication: Optional[str] = Field(default=None, max_length=200)
    rate_limit: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class EndpointCreate(CamelModel):
    """
    Payload for POST /api/endpoints.

    `project_id` may be omitted: the endpoint then goes to the default project.
    `status` is accepted for compatibility with older clients and ignored;
    the status is always derived.
    """

    project_id: Optional[uuid.UUID] = None
    path: str = Field(min_length=1, max_length=500)
    method: HttpMethod
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    status: Optional[EndpointStatus] = None
    frontend_spec: Optional[SpecIn] = None
    backend_spec: Optional[SpecIn] = None

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v: Any) -> Any:
        return _upper(v)

    @field_validator("path", mode="before")
    @classmethod
    def validate_path(cls, v: Any) -> Any:
        """Paths are URL templates and must be absolute ("/users/{id}")."""
        if isinstance(v, str):
            v = v.strip()
            if v and not v.startswith("/"):
                raise ValueError("path must start with '/'")
        return v


class EndpointUpdate(CamelModel):
    """
    Payload for PUT /api/endpoints/{id}. Every field is optional.

    - `version`: expected current version; a mismatch fails with stale_write
    - `frontend_spec` / `backend_spec`: replace that side's spec when present
    - `project_id`: accepted only if unchanged (endpoints cannot move)
    - `status`: ignored, as on create
    """

    project_id: Optional[uuid.UUID] = None
    path: Optional[str] = Field(default=None, min_length=1, max_length=500)
    method: Optional[HttpMethod] = None
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    status: Optional[EndpointStatus] = None
    version: Optional[int] = Field(default=None, ge=1)
    frontend_spec: Optional[SpecIn] = None
    backend_spec: Optional[SpecIn] = None

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v: Any) -> Any:
        return _upper(v)

    @field_validator("path", mode="before")
    @classmethod
    def validate_path(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if v and not v.startswith("/"):
                raise ValueError("path must start with '/'")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ParameterResponse(CamelModel):
    id: uuid.UUID
    name: str
    type: ParameterType
    required: bool
    description: Optional[str] = None
    default_value: Optional[str] = None
    validation: Any = None


class HeaderResponse(CamelModel):
    id: uuid.UUID
    name: str
    value: Optional[str] = None
    required: bool
    description: Optional[str] = None


class StatusCodeResponse(CamelModel):
    id: uuid.UUID
    code: int
    description: Optional[str] = None
    response_body: Any = None


class SpecResponse(CamelModel):
    id: uuid.UUID
    side: SpecSide
    request_body: Any = None
    response_body: Any = None
    parameters: List[ParameterResponse] = Field(default_factory=list)
    headers: List[HeaderResponse] = Field(default_factory=list)
    status_codes: List[StatusCodeResponse] = Field(default_factory=list)
    content_type: Optional[str] = None
    authentication: Optional[str] = None
    rate_limit: Optional[str] = None
    notes: Optional[str] = None


class ConflictResponse(CamelModel):
    id: uuid.UUID
    type: ConflictType
    field: str
    frontend_value: Optional[str] = None
    backend_value: Optional[str] = None
    severity: Severity
    resolved: bool
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EndpointResponse(CamelModel):
    id: uuid.UUID
    project_id: uuid.UUID
    path: str
    method: HttpMethod
    name: Optional[str] = None
    description: Optional[str] = None
    status: EndpointStatus
    version: int
    frontend_spec: Optional[SpecResponse] = None
    backend_spec: Optional[SpecResponse] = None
    conflicts: List[ConflictResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ResolveAllResponse(CamelModel):
    resolved_count: int
    endpoint: EndpointResponse


class MessageResponse(CamelModel):
    message: str
