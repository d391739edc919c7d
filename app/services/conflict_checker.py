"""Double-booking detection for employee time slots."""

from datetime import date
from uuid import UUID

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import messages
from app.core.exceptions import ConflictException
from app.models.appointments import appointments
from app.schemas.appointments import AppointmentStatus


class ConflictChecker:
    """
    Slot-equality conflict predicate.

    Two appointments conflict when they share employee, scheduled date and
    scheduled time and the existing one is approved and not deleted.
    Durations are not compared, so overlapping but distinct start times are
    allowed. Pending requests never block each other; only one of them can be
    confirmed into the slot.
    """

    def __init__(self, db: AsyncSession):
        """Initialize checker with database session."""
        self.db = db

    async def has_conflict(
        self,
        employee_id: UUID,
        scheduled_date: date,
        scheduled_time: str,
        exclude_id: UUID | None = None,
    ) -> bool:
        """
        Check whether the slot is already held by an approved appointment.

        Args:
            employee_id: Employee whose calendar is checked
            scheduled_date: Slot date
            scheduled_time: Slot time as HH:MM
            exclude_id: Appointment to ignore (the one being updated)

        Returns:
            True if the slot is taken
        """
        conditions = [
            appointments.c.employee_id == employee_id,
            appointments.c.scheduled_date == scheduled_date,
            appointments.c.scheduled_time == scheduled_time,
            appointments.c.status == AppointmentStatus.APPROVED.value,
            appointments.c.is_deleted.is_(False),
        ]
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        result = await self.db.execute(select(exists().where(and_(*conditions))))
        return bool(result.scalar())

    async def ensure_available(
        self,
        employee_id: UUID,
        scheduled_date: date,
        scheduled_time: str,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Raise if the slot is taken.

        Raises:
            ConflictException: If an approved appointment holds the slot
        """
        if await self.has_conflict(employee_id, scheduled_date, scheduled_time, exclude_id):
            raise ConflictException(messages.SLOT_TAKEN)
