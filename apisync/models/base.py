"""Column helpers shared by all models."""

import enum
import uuid
from datetime import datetime, timezone
from typing import Type

from sqlalchemy import DateTime, Enum, Uuid
from sqlalchemy.orm import mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uuid_pk():
    # Generated in Python so the id is known before flush and works on
    # both PostgreSQL and SQLite.
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


def timestamp_column(comment: str):
    return mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment=comment,
    )


def enum_column_type(enum_cls: Type[enum.Enum]) -> Enum:
    """VARCHAR-backed enum storing member values ("frontend", not "FRONTEND")."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
