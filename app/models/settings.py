"""Per-tenant notification settings table."""

from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, Table, Uuid

from app.models.base import metadata, utcnow

tenant_settings = Table(
    "tenant_settings",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("tenant_id", Uuid, nullable=False, unique=True),
    # Master switches
    Column("email_enabled", Boolean, nullable=False, default=True),
    Column("whatsapp_enabled", Boolean, nullable=False, default=True),
    Column("sms_enabled", Boolean, nullable=False, default=False),
    # {"visitor": {"email": false}, "employee": {"whatsapp": true}, ...}
    Column("channel_overrides", JSON, nullable=True),
    # Channel credentials
    Column("whatsapp_config", JSON, nullable=True),
    Column("smtp_config", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
)
