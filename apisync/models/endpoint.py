"""
API Sync Backend - Endpoint SQLAlchemy Model
=============================================

What:  ORM model for the `endpoints` table: one logical API endpoint as
       agreed (or not) between the frontend and backend teams.

Ownership Tree:
    Endpoint
    ├── Spec (frontend)  ──┬── Parameter*
    │                      ├── Header*
    │                      └── StatusCode*
    ├── Spec (backend)   ──┴── (same)
    └── Conflict*

    Children are loaded eagerly (lazy="selectin") because every read of an
    endpoint serializes its specs and conflicts, and async sessions cannot
    lazy-load on attribute access.

Column Notes:
    - status: written only by EndpointAggregate.recompute_status()
    - version: optimistic concurrency counter. Mapped as version_id_col with
      version_id_generator=False, so every UPDATE is
      `... WHERE id = :id AND version = :old` and the aggregate supplies the
      new value. A concurrent commit makes the UPDATE match zero rows, which
      SQLAlchemy reports as StaleDataError.
    - project_id: set once at creation, never reassigned
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from apisync.database import Base
from apisync.models.base import enum_column_type, timestamp_column, uuid_pk
from apisync.models.enums import EndpointStatus, HttpMethod

if TYPE_CHECKING:
    from apisync.models.conflict import Conflict
    from apisync.models.project import Project
    from apisync.models.spec import Spec


class Endpoint(Base):
    __tablename__ = "endpoints"

    id: Mapped[uuid.UUID] = uuid_pk()

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owning project; immutable once set",
    )

    path: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="URL template, e.g. /users/{id}",
    )

    method: Mapped[HttpMethod] = mapped_column(enum_column_type(HttpMethod), nullable=False)

    name: Mapped[str | None] = mapped_column(String(200), nullable=True, default=None)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    status: Mapped[EndpointStatus] = mapped_column(
        enum_column_type(EndpointStatus),
        nullable=False,
        default=EndpointStatus.UNDEFINED,
        comment="Derived from specs and unresolved conflicts",
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Optimistic concurrency counter",
    )

    created_at: Mapped[datetime] = timestamp_column("When this endpoint was created (UTC)")
    updated_at: Mapped[datetime] = timestamp_column("Last mutation of the endpoint or its specs (UTC)")

    project: Mapped["Project"] = relationship(back_populates="endpoints", lazy="raise")

    specs: Mapped[List["Spec"]] = relationship(
        back_populates="endpoint",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    conflicts: Mapped[List["Conflict"]] = relationship(
        back_populates="endpoint",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_endpoints_project_id", "project_id"),
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<Endpoint(id={self.id}, method='{self.method}', path='{self.path}', "
            f"status='{self.status}', version={self.version})>"
        )
