"""Visitor self-booking links table using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Uuid,
)

from app.models.base import metadata, utcnow

# Sent to a visitor so they can book a slot with one employee themselves
booking_links = Table(
    "booking_links",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("tenant_id", Uuid, nullable=False),
    Column("employee_id", Uuid, ForeignKey("employees.id"), nullable=False),
    # Filled once the visitor is known, either up front or at booking time
    Column("visitor_id", Uuid, ForeignKey("visitors.id"), nullable=True),
    Column("visitor_email", String(255), nullable=False),
    Column("visitor_phone", String(20), nullable=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("is_booked", Boolean, nullable=False, default=False),
    Column("booked_at", DateTime(timezone=True), nullable=True),
    Column("appointment_id", Uuid, nullable=True),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_by", Uuid, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    Index("idx_booking_links_tenant", "tenant_id", "is_booked"),
    Index("idx_booking_links_email", "visitor_email"),
)
