"""create timeline_items

Revision ID: b7e2d4c19a30
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b7e2d4c19a30"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create timeline_items with a GIN index on assigned_resource_ids."""
    op.create_table(
        "timeline_items",
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("item_type", sa.String(length=20), nullable=False, server_default="task"),
        sa.Column("job_id", sa.String(length=128), nullable=True),
        sa.Column("start_date", sa.String(length=64), nullable=False),
        sa.Column("end_date", sa.String(length=64), nullable=False),
        sa.Column("dependencies", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column(
            "assigned_resource_ids",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default=sa.text("'{}'::varchar[]"),
        ),
        sa.Column("is_critical", sa.Boolean(), nullable=True),
        sa.Column("validation_error", sa.Text(), nullable=True),
        sa.Column("conflict", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("project_id", "id"),
    )
    op.create_index(
        "ix_timeline_items_assigned_resource_ids",
        "timeline_items",
        ["assigned_resource_ids"],
        postgresql_using="gin",
    )


def downgrade() -> None:
    """Drop timeline_items."""
    op.drop_index("ix_timeline_items_assigned_resource_ids", table_name="timeline_items")
    op.drop_table("timeline_items")
