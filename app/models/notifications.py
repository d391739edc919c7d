"""In-app notification and notification outbox tables."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)

from app.models.base import metadata, utcnow

notifications = Table(
    "notifications",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("user_id", Uuid, nullable=False),
    Column("type", String(50), nullable=False),
    Column("title", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("read", Boolean, nullable=False, default=False),
    Column("read_at", DateTime(timezone=True), nullable=True),
    Column("appointment_id", Uuid, nullable=True),
    Column("metadata", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint(
        "type IN ('appointment_approved', 'appointment_rejected', 'appointment_created', "
        "'appointment_deleted', 'appointment_status_changed', 'general')",
        name="notifications_type_check",
    ),
    Index("idx_notifications_user_read", "user_id", "read"),
    Index("idx_notifications_created_at", "created_at"),
)

# Notification intents written in the same transaction as the state change
notification_outbox = Table(
    "notification_outbox",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("appointment_id", Uuid, nullable=False),
    Column("event", String(30), nullable=False),
    Column("status", String(20), nullable=False, default="pending"),
    Column("attempts", Integer, nullable=False, default=0),
    Column("payload", JSON, nullable=False),
    Column("last_error", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("claimed_at", DateTime(timezone=True), nullable=True),
    Column("processed_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('pending', 'processing', 'done', 'failed')",
        name="notification_outbox_status_check",
    ),
    Index("idx_notification_outbox_status", "status", "created_at"),
)
