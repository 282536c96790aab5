"""Create projects, endpoints, specs and conflicts tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Initial schema: projects → endpoints → endpoint_specs → (spec_parameters,
       spec_headers, spec_status_codes), plus conflicts per endpoint.
How:   Enum-valued columns are VARCHAR(32) holding the enum value; the
       application validates them. JSON columns are JSONB on PostgreSQL.
       Child foreign keys cascade on delete.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), nullable=False)


def _timestamp(name: str, comment: str) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
        comment=comment,
    )


def _spec_fk() -> sa.Column:
    return sa.Column(
        "spec_id",
        sa.Uuid(),
        sa.ForeignKey("endpoint_specs.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "projects",
        _id(),
        sa.Column("name", sa.String(200), nullable=False,
                  comment="Display name; the default project is looked up by this name"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp("created_at", "When this project was created (UTC)"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_projects_name", "projects", ["name"])

    op.create_table(
        "endpoints",
        _id(),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"),
                  nullable=False, comment="Owning project; immutable once set"),
        sa.Column("path", sa.String(500), nullable=False, comment="URL template, e.g. /users/{id}"),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'UNDEFINED'"),
                  comment="Derived from specs and unresolved conflicts"),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1"),
                  comment="Optimistic concurrency counter"),
        _timestamp("created_at", "When this endpoint was created (UTC)"),
        _timestamp("updated_at", "Last mutation of the endpoint or its specs (UTC)"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_endpoints_project_id", "endpoints", ["project_id"])

    op.create_table(
        "endpoint_specs",
        _id(),
        sa.Column("endpoint_id", sa.Uuid(), sa.ForeignKey("endpoints.id", ondelete="CASCADE"), nullable=False),
        sa.Column("side", sa.String(32), nullable=False, comment="frontend or backend"),
        sa.Column("request_body", JSON_TYPE, nullable=True),
        sa.Column("response_body", JSON_TYPE, nullable=True),
        sa.Column("content_type", sa.String(100), nullable=True),
        sa.Column("authentication", sa.String(200), nullable=True),
        sa.Column("rate_limit", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at", "When this spec was attached (UTC)"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_endpoint_specs_endpoint_id", "endpoint_specs", ["endpoint_id"])

    op.create_table(
        "spec_parameters",
        _id(),
        _spec_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("default_value", sa.String(500), nullable=True),
        sa.Column("validation", JSON_TYPE, nullable=True,
                  comment="Opaque validation descriptor, e.g. a pattern or range"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_spec_parameters_spec_id", "spec_parameters", ["spec_id"])

    op.create_table(
        "spec_headers",
        _id(),
        _spec_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("value", sa.String(500), nullable=True),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("description", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_spec_headers_spec_id", "spec_headers", ["spec_id"])

    op.create_table(
        "spec_status_codes",
        _id(),
        _spec_fk(),
        sa.Column("code", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("response_body", JSON_TYPE, nullable=True),
        sa.CheckConstraint("code >= 100 AND code <= 599", name="ck_spec_status_codes_code_range"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_spec_status_codes_spec_id", "spec_status_codes", ["spec_id"])

    op.create_table(
        "conflicts",
        _id(),
        sa.Column("endpoint_id", sa.Uuid(), sa.ForeignKey("endpoints.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("field", sa.String(500), nullable=False,
                  comment="Attribute path that disagrees, e.g. parameters.userId.required"),
        sa.Column("frontend_value", sa.Text(), nullable=True),
        sa.Column("backend_value", sa.Text(), nullable=True),
        sa.Column("severity", sa.String(32), nullable=False),
        sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("resolved_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _timestamp("created_at", "When the detector first reported this conflict (UTC)"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_conflicts_endpoint_id", "conflicts", ["endpoint_id"])


def downgrade() -> None:
    for table, index in (
        ("conflicts", "idx_conflicts_endpoint_id"),
        ("spec_status_codes", "idx_spec_status_codes_spec_id"),
        ("spec_headers", "idx_spec_headers_spec_id"),
        ("spec_parameters", "idx_spec_parameters_spec_id"),
        ("endpoint_specs", "idx_endpoint_specs_endpoint_id"),
        ("endpoints", "idx_endpoints_project_id"),
        ("projects", "idx_projects_name"),
    ):
        op.drop_index(index, table_name=table)
        op.drop_table(table)
