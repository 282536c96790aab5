"""
API Sync Backend - Spec SQLAlchemy Models
==========================================

What:  One side's declared contract for an endpoint (`endpoint_specs`) and its
       nested records: parameters, headers and status codes.

Uniqueness rules (parameter name, case-insensitive header name, status
code) and the one-spec-per-side rule are enforced by EndpointAggregate
before anything is added to the session, not by table constraints:
replacing a spec deletes the old row and inserts the new one in the same
flush, and the unit of work orders inserts before deletes.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, List

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from apisync.database import Base, JSONValue
from apisync.models.base import enum_column_type, timestamp_column, uuid_pk
from apisync.models.enums import ParameterType, SpecSide

if TYPE_CHECKING:
    from apisync.models.endpoint import Endpoint


class Spec(Base):
    __tablename__ = "endpoint_specs"

    id: Mapped[uuid.UUID] = uuid_pk()

    endpoint_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("endpoints.id", ondelete="CASCADE"),
        nullable=False,
    )

    side: Mapped[SpecSide] = mapped_column(
        enum_column_type(SpecSide),
        nullable=False,
        comment="frontend or backend",
    )

    request_body: Mapped[Any | None] = mapped_column(JSONValue, nullable=True, default=None)
    response_body: Mapped[Any | None] = mapped_column(JSONValue, nullable=True, default=None)

    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    authentication: Mapped[str | None] = mapped_column(String(200), nullable=True, default=None)
    rate_limit: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    created_at: Mapped[datetime] = timestamp_column("When this spec was attached (UTC)")

    endpoint: Mapped["Endpoint"] = relationship(back_populates="specs")

    parameters: Mapped[List["Parameter"]] = relationship(
        back_populates="spec",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    headers: Mapped[List["Header"]] = relationship(
        back_populates="spec",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    status_codes: Mapped[List["StatusCode"]] = relationship(
        back_populates="spec",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_endpoint_specs_endpoint_id", "endpoint_id"),
    )

    def __repr__(self) -> str:
        return f"<Spec(id={self.id}, side='{self.side}', endpoint_id={self.endpoint_id})>"


class Parameter(Base):
    __tablename__ = "spec_parameters"

    id: Mapped[uuid.UUID] = uuid_pk()
    spec_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("endpoint_specs.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[ParameterType] = mapped_column(enum_column_type(ParameterType), nullable=False)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    default_value: Mapped[str | None] = mapped_column(String(500), nullable=True, default=None)
    validation: Mapped[Any | None] = mapped_column(
        JSONValue,
        nullable=True,
        default=None,
        comment="Opaque validation descriptor, e.g. a pattern or range",
    )

    spec: Mapped["Spec"] = relationship(back_populates="parameters")

    __table_args__ = (
        Index("idx_spec_parameters_spec_id", "spec_id"),
    )


class Header(Base):
    __tablename__ = "spec_headers"

    id: Mapped[uuid.UUID] = uuid_pk()
    spec_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("endpoint_specs.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    value: Mapped[str | None] = mapped_column(String(500), nullable=True, default=None)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    spec: Mapped["Spec"] = relationship(back_populates="headers")

    __table_args__ = (
        Index("idx_spec_headers_spec_id", "spec_id"),
    )


class StatusCode(Base):
    __tablename__ = "spec_status_codes"

    id: Mapped[uuid.UUID] = uuid_pk()
    spec_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("endpoint_specs.id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    response_body: Mapped[Any | None] = mapped_column(JSONValue, nullable=True, default=None)

    spec: Mapped["Spec"] = relationship(back_populates="status_codes")

    __table_args__ = (
        CheckConstraint("code >= 100 AND code <= 599", name="ck_spec_status_codes_code_range"),
        Index("idx_spec_status_codes_spec_id", "spec_id"),
    )
