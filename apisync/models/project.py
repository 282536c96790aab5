"""
API Sync Backend - Project SQLAlchemy Model
============================================

What:  ORM model for the `projects` table, the top-level grouping of endpoints.
Lifecycle:
    - Created explicitly (POST /api/projects) or auto-provisioned as the
      default project the first time an endpoint arrives without a projectId
    - Never deleted automatically
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from apisync.database import Base
from apisync.models.base import timestamp_column, uuid_pk

if TYPE_CHECKING:
    from apisync.models.endpoint import Endpoint


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = uuid_pk()

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Display name; the default project is looked up by this name",
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    is_public: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    created_at: Mapped[datetime] = timestamp_column("When this project was created (UTC)")

    # Endpoints are always queried explicitly; never loaded through here.
    endpoints: Mapped[List["Endpoint"]] = relationship(
        back_populates="project",
        lazy="raise",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_projects_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name='{self.name}')>"
