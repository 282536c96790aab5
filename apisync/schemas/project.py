"""Project request/response schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from apisync.schemas.common import CamelModel


class ProjectCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    is_public: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class ProjectResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_public: bool
    created_at: Optional[datetime] = None


class ProjectSummary(CamelModel):
    """Endpoint counts for one project, computed by the reconciliation store."""

    project_id: uuid.UUID
    endpoint_count: int
    synced_count: int
    conflicts_count: int
    pending_count: int
    undefined_count: int


class InitResponse(CamelModel):
    message: str
    created: bool
    project: ProjectResponse
