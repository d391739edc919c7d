"""Employees and visitors tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    String,
    Table,
    Text,
    Uuid,
)

from app.models.base import metadata, utcnow

# Employees belong to a tenant (the owning admin account)
employees = Table(
    "employees",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("tenant_id", Uuid, nullable=False),
    # Login account of the employee, target of realtime events
    Column("user_id", Uuid, nullable=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False),
    Column("phone", String(20), nullable=True),
    Column("department", String(100), nullable=True),
    Column("designation", String(100), nullable=True),
    Column("status", String(10), nullable=False, default="Active"),
    Column("is_deleted", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint("status IN ('Active', 'Inactive')", name="employees_status_check"),
    Index("idx_employees_tenant", "tenant_id"),
)

visitors = Table(
    "visitors",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("tenant_id", Uuid, nullable=False),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=True),
    Column("phone", String(20), nullable=True),
    Column("company", String(200), nullable=True),
    Column("address", Text, nullable=True),
    Column("is_deleted", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    Index("idx_visitors_tenant", "tenant_id"),
)
