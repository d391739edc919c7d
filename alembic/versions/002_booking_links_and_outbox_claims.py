"""booking links and outbox claim timestamps

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 14:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create booking_links and track when outbox intents were claimed."""
    op.add_column(
        "notification_outbox",
        sa.Column("claimed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
    )

    op.create_table(
        "booking_links",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("visitor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("visitor_email", sa.String(255), nullable=False),
        sa.Column("visitor_phone", sa.String(20), nullable=True),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("is_booked", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("booked_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("expires_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.ForeignKeyConstraint(["visitor_id"], ["visitors.id"]),
        sa.UniqueConstraint("token"),
    )
    op.create_index("idx_booking_links_tenant", "booking_links", ["tenant_id", "is_booked"])
    op.create_index("idx_booking_links_email", "booking_links", ["visitor_email"])


def downgrade() -> None:
    """Drop booking_links and the claim timestamp."""
    op.drop_table("booking_links")
    op.drop_column("notification_outbox", "claimed_at")
