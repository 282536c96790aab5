"""
API Sync Backend - Conflict SQLAlchemy Model
=============================================

What:  A single disagreement between an endpoint's frontend and backend spec.
Who:   Written only by EndpointAggregate from ConflictDetector output.

Lifecycle:
    1. Created unresolved when the detector reports a difference
    2. Deleted and recomputed whenever either spec changes, unless resolved
    3. Once resolved, kept for audit history and ignored by status derivation
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from apisync.database import Base
from apisync.models.base import enum_column_type, timestamp_column, uuid_pk
from apisync.models.enums import ConflictType, Severity

if TYPE_CHECKING:
    from apisync.models.endpoint import Endpoint


class Conflict(Base):
    __tablename__ = "conflicts"

    id: Mapped[uuid.UUID] = uuid_pk()

    endpoint_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("endpoints.id", ondelete="CASCADE"),
        nullable=False,
    )

    type: Mapped[ConflictType] = mapped_column(enum_column_type(ConflictType), nullable=False)

    field: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Attribute path that disagrees, e.g. parameters.userId.required",
    )

    frontend_value: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    backend_value: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    severity: Mapped[Severity] = mapped_column(enum_column_type(Severity), nullable=False)

    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    created_at: Mapped[datetime] = timestamp_column("When the detector first reported this conflict (UTC)")

    endpoint: Mapped["Endpoint"] = relationship(back_populates="conflicts")

    __table_args__ = (
        Index("idx_conflicts_endpoint_id", "endpoint_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Conflict(type='{self.type}', field='{self.field}', "
            f"severity='{self.severity}', resolved={self.resolved})>"
        )
