"""Single-use approval links for unauthenticated status decisions."""

import secrets
from datetime import UTC, datetime, time
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core import messages
from app.core.exceptions import (
    AppException,
    ApprovalLinkException,
    BadRequestException,
    InvalidTransitionException,
    NotFoundException,
)
from app.models.appointments import approval_links, appointments
from app.schemas.appointments import AppointmentDetails, AppointmentStatus
from app.schemas.approval_links import (
    ApprovalLinkAppointment,
    ApprovalLinkResponse,
    ApprovalLinkVerification,
)
from app.services.directory_service import EmployeeDirectory, VisitorDirectory

logger = structlog.get_logger(__name__)

TOKEN_BYTES = 32
MAX_TOKEN_ATTEMPTS = 5


def slot_has_passed(row: dict[str, Any], now: datetime | None = None) -> bool:
    """Whether an appointment's scheduled date and time (UTC) lie in the past."""
    hour, minute = (int(part) for part in row["scheduled_time"].split(":"))
    slot = datetime.combine(row["scheduled_date"], time(hour, minute), tzinfo=UTC)
    return slot < (now or datetime.now(UTC))


class ApprovalLinkService:
    """Issue, resolve and consume approval link tokens.

    Methods never commit; callers own the transaction.
    """

    def __init__(
        self,
        db: AsyncSession,
        base_url: str | None = None,
        expire_past_appointments: bool | None = None,
    ):
        """Initialize service with database session and link settings."""
        self.db = db
        self.base_url = (base_url or settings.frontend_url).rstrip("/")
        if expire_past_appointments is None:
            expire_past_appointments = settings.approval_link_expire_past_appointments
        self.expire_past_appointments = expire_past_appointments

    @staticmethod
    def generate_token() -> str:
        """256 bits of randomness, hex encoded."""
        return secrets.token_hex(TOKEN_BYTES)

    def build_link(self, token: str) -> str:
        """Public URL of the verification page for a token."""
        return f"{self.base_url}/verify/{token}"

    def _to_response(self, row: Any) -> ApprovalLinkResponse:
        return ApprovalLinkResponse(
            token=row.token,
            link=self.build_link(row.token),
            is_used=row.is_used,
        )

    async def get_by_appointment(self, appointment_id: UUID) -> ApprovalLinkResponse | None:
        """
        Get the link issued for an appointment.

        Args:
            appointment_id: Appointment ID

        Returns:
            Link or None if none was issued
        """
        row = (
            await self.db.execute(
                select(approval_links).where(approval_links.c.appointment_id == appointment_id)
            )
        ).first()
        return self._to_response(row) if row else None

    async def issue(self, appointment_id: UUID) -> ApprovalLinkResponse:
        """
        Issue a link for an appointment, returning the existing one if present.

        Args:
            appointment_id: Appointment ID

        Returns:
            Token and public link

        Raises:
            AppException: If no unique token could be generated
        """
        existing = await self.get_by_appointment(appointment_id)
        if existing:
            return existing

        for _ in range(MAX_TOKEN_ATTEMPTS):
            token = self.generate_token()
            taken = (
                await self.db.execute(
                    select(approval_links.c.id).where(approval_links.c.token == token)
                )
            ).first()
            if taken:
                logger.warning("approval_token_collision", appointment_id=str(appointment_id))
                continue

            await self.db.execute(
                approval_links.insert().values(appointment_id=appointment_id, token=token)
            )
            logger.info("approval_link_issued", appointment_id=str(appointment_id))
            return ApprovalLinkResponse(token=token, link=self.build_link(token), is_used=False)

        raise AppException("Could not generate a unique approval token")

    async def _find(self, token: str) -> Any:
        return (
            await self.db.execute(select(approval_links).where(approval_links.c.token == token))
        ).first()

    async def _load_appointment(self, appointment_id: UUID, for_update: bool = False) -> Any:
        stmt = select(appointments).where(
            appointments.c.id == appointment_id,
            appointments.c.is_deleted.is_(False),
        )
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.db.execute(stmt)).first()

    async def _claim(self, link_id: UUID) -> bool:
        """Flip ``is_used`` false to true; False if another caller got there first."""
        result = await self.db.execute(
            update(approval_links)
            .where(and_(approval_links.c.id == link_id, approval_links.c.is_used.is_(False)))
            .values(is_used=True, used_at=datetime.now(UTC))
        )
        return result.rowcount == 1

    async def resolve(self, token: str) -> ApprovalLinkVerification:
        """
        Look up a token for the public verification page.

        Args:
            token: Link token

        Returns:
            Validity, usage and the appointment projection
        """
        link = await self._find(token)
        if link is None:
            return ApprovalLinkVerification(is_valid=False, is_used=False)
        if link.is_used:
            return ApprovalLinkVerification(is_valid=True, is_used=True)

        row = await self._load_appointment(link.appointment_id)
        if row is None:
            return ApprovalLinkVerification(is_valid=False, is_used=False)

        appointment = dict(row._mapping)
        if self.expire_past_appointments and slot_has_passed(appointment):
            await self._claim(link.id)
            return ApprovalLinkVerification(is_valid=True, is_used=True)

        employee = await EmployeeDirectory(self.db).find_by_id(appointment["employee_id"])
        visitor = await VisitorDirectory(self.db).find_by_id(appointment["visitor_id"])
        return ApprovalLinkVerification(
            is_valid=True,
            is_used=False,
            appointment=ApprovalLinkAppointment(
                id=appointment["id"],
                status=appointment["status"],
                employee=employee,
                visitor=visitor,
                appointment_details=AppointmentDetails.model_construct(
                    purpose=appointment["purpose"],
                    scheduled_date=appointment["scheduled_date"],
                    scheduled_time=appointment["scheduled_time"],
                    duration=appointment["duration"],
                    meeting_room=appointment["meeting_room"],
                    notes=appointment["notes"],
                    vehicle_number=appointment["vehicle_number"],
                ),
                created_at=appointment["created_at"],
            ),
        )

    async def expire_if_passed(self, token: str) -> bool:
        """
        Mark a link used when its appointment slot is already over.

        Only active when past-slot expiry is enabled.

        Returns:
            True if the link was expired by this call
        """
        if not self.expire_past_appointments:
            return False
        link = await self._find(token)
        if link is None or link.is_used:
            return False
        row = await self._load_appointment(link.appointment_id)
        if row is None or not slot_has_passed(dict(row._mapping)):
            return False
        return await self._claim(link.id)

    async def consume(self, token: str, decision: AppointmentStatus) -> dict[str, Any]:
        """
        Apply a decision through a token, exactly once.

        The link is claimed with a conditional update and the appointment is
        moved with an update guarded on ``status = 'pending'``, so concurrent
        or replayed requests lose with ``ApprovalLinkException``.

        Args:
            token: Link token
            decision: APPROVED or REJECTED

        Returns:
            The updated appointment row

        Raises:
            NotFoundException: If the token is unknown
            ApprovalLinkException: If the link was used or has expired
            InvalidTransitionException: If the appointment can no longer be decided
        """
        if decision not in (AppointmentStatus.APPROVED, AppointmentStatus.REJECTED):
            raise BadRequestException("Decision must be approved or rejected")

        link = await self._find(token)
        if link is None:
            raise NotFoundException(messages.LINK_INVALID)
        if link.is_used:
            raise ApprovalLinkException(messages.LINK_USED)

        row = await self._load_appointment(link.appointment_id, for_update=True)
        if row is None:
            raise NotFoundException(messages.LINK_INVALID)
        if row.status != AppointmentStatus.PENDING.value:
            raise InvalidTransitionException(messages.LINK_STATUS_LOCKED)

        if not await self._claim(link.id):
            raise ApprovalLinkException(messages.LINK_USED)

        result = await self.db.execute(
            update(appointments)
            .where(
                and_(
                    appointments.c.id == link.appointment_id,
                    appointments.c.status == AppointmentStatus.PENDING.value,
                )
            )
            .values(status=decision.value, updated_at=datetime.now(UTC))
        )
        if result.rowcount != 1:
            raise InvalidTransitionException(messages.LINK_STATUS_LOCKED)

        logger.info(
            "approval_link_consumed",
            appointment_id=str(link.appointment_id),
            decision=decision.value,
        )
        updated = await self._load_appointment(link.appointment_id)
        return dict(updated._mapping)

    async def mark_used(self, appointment_id: UUID) -> bool:
        """
        Retire the link of an appointment decided through the dashboard.

        Returns:
            True if an unused link was marked
        """
        result = await self.db.execute(
            update(approval_links)
            .where(
                and_(
                    approval_links.c.appointment_id == appointment_id,
                    approval_links.c.is_used.is_(False),
                )
            )
            .values(is_used=True, used_at=datetime.now(UTC))
        )
        return result.rowcount > 0
