"""Authenticated account resolved from a bearer token."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from app.schemas.appointments import ActionBy


class AccountRole(str, Enum):
    """Account roles."""

    ADMIN = "admin"
    EMPLOYEE = "employee"


class Account(BaseModel):
    """Caller identity and tenant scope."""

    id: UUID
    role: AccountRole
    tenant_id: UUID
    employee_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        """Whether the account administers its tenant."""
        return self.role is AccountRole.ADMIN

    @property
    def action_by(self) -> ActionBy:
        """Actor recorded on lifecycle events."""
        return ActionBy.ADMIN if self.is_admin else ActionBy.EMPLOYEE
