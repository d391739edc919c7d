"""Employee and visitor lookups."""

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.employees import employees, visitors

ACTIVE = "Active"


class EmployeeDirectory:
    """Employee lookups used for validation and message content."""

    def __init__(self, db: AsyncSession):
        """Initialize directory with database session."""
        self.db = db

    async def find_by_id(self, employee_id: UUID, for_update: bool = False) -> dict[str, Any] | None:
        """
        Get a non-deleted employee.

        Args:
            employee_id: Employee ID
            for_update: Lock the row for the rest of the transaction

        Returns:
            Employee row or None
        """
        stmt = select(employees).where(
            employees.c.id == employee_id,
            employees.c.is_deleted.is_(False),
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.db.execute(stmt)).first()
        return dict(row._mapping) if row else None

    async def find_active_by_id(self, employee_id: UUID) -> dict[str, Any] | None:
        """Get an employee only if it is active."""
        employee = await self.find_by_id(employee_id)
        if employee and employee["status"] == ACTIVE:
            return employee
        return None

    async def ids_for_tenant(self, tenant_id: UUID) -> list[UUID]:
        """IDs of every employee owned by a tenant."""
        result = await self.db.execute(
            select(employees.c.id).where(employees.c.tenant_id == tenant_id)
        )
        return [row.id for row in result]


class VisitorDirectory:
    """Visitor lookups."""

    def __init__(self, db: AsyncSession):
        """Initialize directory with database session."""
        self.db = db

    async def find_by_id(self, visitor_id: UUID) -> dict[str, Any] | None:
        """Get a non-deleted visitor."""
        row = (
            await self.db.execute(
                select(visitors).where(
                    visitors.c.id == visitor_id,
                    visitors.c.is_deleted.is_(False),
                )
            )
        ).first()
        return dict(row._mapping) if row else None

    async def find_by_email(self, tenant_id: UUID, email: str) -> dict[str, Any] | None:
        """Get a tenant's non-deleted visitor by email, case-insensitively."""
        row = (
            await self.db.execute(
                select(visitors)
                .where(
                    visitors.c.tenant_id == tenant_id,
                    func.lower(visitors.c.email) == email.strip().lower(),
                    visitors.c.is_deleted.is_(False),
                )
                .order_by(visitors.c.created_at)
                .limit(1)
            )
        ).first()
        return dict(row._mapping) if row else None
