"""Database models."""

from app.models.appointments import approval_links, appointments
from app.models.base import metadata
from app.models.booking_links import booking_links
from app.models.employees import employees, visitors
from app.models.notifications import notification_outbox, notifications
from app.models.push_tokens import push_tokens
from app.models.settings import tenant_settings

__all__ = [
    "approval_links",
    "appointments",
    "booking_links",
    "employees",
    "metadata",
    "notification_outbox",
    "notifications",
    "push_tokens",
    "tenant_settings",
    "visitors",
]
