"""Appointments and approval links tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)

from app.models.base import metadata, utcnow

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column("employee_id", Uuid, ForeignKey("employees.id"), nullable=False),
    Column("visitor_id", Uuid, ForeignKey("visitors.id"), nullable=False),
    Column("created_by", Uuid, nullable=False),
    # Appointment details
    Column("purpose", Text, nullable=False),
    Column("scheduled_date", Date, nullable=False),
    Column("scheduled_time", String(5), nullable=False),
    Column("duration", Integer, nullable=False, default=60),
    Column("meeting_room", String(100), nullable=True),
    Column("notes", Text, nullable=True),
    Column("vehicle_number", String(20), nullable=True),
    # Status management
    Column("status", String(20), nullable=False, default="pending"),
    Column("check_in_time", DateTime(timezone=True), nullable=True),
    Column("check_out_time", DateTime(timezone=True), nullable=True),
    Column("actual_duration", Integer, nullable=True),
    # Security desk
    Column("badge_issued", Boolean, nullable=False, default=False),
    Column("badge_number", String(50), nullable=True),
    Column("security_clearance", Boolean, nullable=False, default=False),
    Column("security_notes", Text, nullable=True),
    # Delivery bookkeeping, written only after a real attempt
    Column("email_sent", Boolean, nullable=False, default=False),
    Column("whatsapp_sent", Boolean, nullable=False, default=False),
    Column("sms_sent", Boolean, nullable=False, default=False),
    Column("reminder_sent", Boolean, nullable=False, default=False),
    # Soft delete
    Column("is_deleted", Boolean, nullable=False, default=False),
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    Column("deleted_by", Uuid, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint(
        "status IN ('pending', 'approved', 'rejected', 'completed')",
        name="appointments_status_check",
    ),
    Index("idx_appointments_slot", "employee_id", "scheduled_date", "scheduled_time"),
    Index("idx_appointments_status", "status"),
    Index("idx_appointments_created_at", "created_at"),
)

approval_links = Table(
    "approval_links",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("token", String(64), nullable=False, unique=True),
    Column("is_used", Boolean, nullable=False, default=False),
    Column("used_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
)
