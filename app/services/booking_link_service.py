"""Booking links that let an invited visitor book an appointment themselves."""

import secrets
from datetime import UTC, datetime, time, timedelta
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core import messages
from app.core.exceptions import (
    AppException,
    BadRequestException,
    ConflictException,
    NotFoundException,
)
from app.database import transaction
from app.models.base import as_utc
from app.models.booking_links import booking_links
from app.models.employees import employees, visitors
from app.schemas.accounts import Account
from app.schemas.booking_links import (
    BookingLinkCreate,
    BookingLinkListResponse,
    BookingLinkPublic,
    BookingLinkResponse,
    BookingLinkStats,
    BookingVisitor,
)
from app.services.directory_service import ACTIVE, EmployeeDirectory, VisitorDirectory

logger = structlog.get_logger(__name__)

TOKEN_BYTES = 32
MAX_TOKEN_ATTEMPTS = 5


class BookingLinkService:
    """
    Issue, list, resolve and claim visitor booking links.

    ``create`` and ``delete`` commit on their own. ``claim`` and
    ``resolve_visitor`` run inside the booking transaction owned by
    ``AppointmentService.book_via_link`` so a failed booking frees the link.
    """

    def __init__(self, db: AsyncSession, base_url: str | None = None):
        """Initialize service with database session."""
        self.db = db
        self.base_url = (base_url or settings.frontend_url).rstrip("/")
        self.employees = EmployeeDirectory(db)
        self.visitors = VisitorDirectory(db)

    def build_url(self, token: str) -> str:
        """Public URL of the booking page for a token."""
        return f"{self.base_url}/book-appointment/{token}"

    async def _employees_by_id(self, ids: set[UUID]) -> dict[UUID, dict[str, Any]]:
        if not ids:
            return {}
        result = await self.db.execute(select(employees).where(employees.c.id.in_(ids)))
        return {row.id: dict(row._mapping) for row in result}

    async def create(self, data: BookingLinkCreate, account: Account) -> BookingLinkResponse:
        """
        Issue a booking link for one visitor email and one employee.

        The link expires at the end of the day ``expires_in_days`` from now,
        or ``BOOKING_LINK_EXPIRE_DAYS`` when the request leaves it out.
        An existing visitor with the same email is attached right away.

        Args:
            data: Link parameters
            account: Inviting admin

        Returns:
            The link with its public booking URL

        Raises:
            NotFoundException: If the employee is not in the caller's tenant
            BadRequestException: If the employee is inactive
        """
        employee = await self.employees.find_by_id(data.employee_id)
        if employee is None or employee["tenant_id"] != account.tenant_id:
            raise NotFoundException(messages.EMPLOYEE_NOT_FOUND)
        if employee["status"] != ACTIVE:
            raise BadRequestException(messages.EMPLOYEE_INACTIVE)

        visitor = await self.visitors.find_by_email(account.tenant_id, data.visitor_email)
        days = data.expires_in_days or settings.booking_link_expire_days
        expires_on = (datetime.now(UTC) + timedelta(days=days)).date()
        expires_at = datetime.combine(expires_on, time.max, tzinfo=UTC)

        async with transaction(self.db):
            for _ in range(MAX_TOKEN_ATTEMPTS):
                token = secrets.token_hex(TOKEN_BYTES)
                taken = (
                    await self.db.execute(
                        select(booking_links.c.id).where(booking_links.c.token == token)
                    )
                ).first()
                if taken is None:
                    break
                logger.warning("booking_token_collision")
            else:
                raise AppException("Could not generate a unique booking token")

            link_id = uuid4()
            await self.db.execute(
                booking_links.insert().values(
                    id=link_id,
                    tenant_id=account.tenant_id,
                    employee_id=data.employee_id,
                    visitor_id=visitor["id"] if visitor else None,
                    visitor_email=data.visitor_email,
                    visitor_phone=data.visitor_phone,
                    token=token,
                    expires_at=expires_at,
                    created_by=account.id,
                )
            )
            row = await self._get(link_id)

        logger.info(
            "booking_link_created",
            link_id=str(link_id),
            employee_id=str(data.employee_id),
        )
        return BookingLinkResponse.from_row(row, self.build_url(token), employee)

    async def _get(self, link_id: UUID) -> dict[str, Any]:
        row = (
            await self.db.execute(select(booking_links).where(booking_links.c.id == link_id))
        ).first()
        return dict(row._mapping)

    async def list_links(
        self,
        account: Account,
        page: int = 1,
        limit: int = 10,
        is_booked: bool | None = None,
    ) -> BookingLinkListResponse:
        """List the tenant's booking links, newest first."""
        conditions = [booking_links.c.tenant_id == account.tenant_id]
        if is_booked is not None:
            conditions.append(booking_links.c.is_booked.is_(is_booked))

        total = (
            await self.db.execute(
                select(func.count()).select_from(booking_links).where(and_(*conditions))
            )
        ).scalar() or 0

        counts = dict(
            (
                await self.db.execute(
                    select(booking_links.c.is_booked, func.count())
                    .where(booking_links.c.tenant_id == account.tenant_id)
                    .group_by(booking_links.c.is_booked)
                )
            ).all()
        )

        rows = [
            dict(row._mapping)
            for row in (
                await self.db.execute(
                    select(booking_links)
                    .where(and_(*conditions))
                    .order_by(booking_links.c.created_at.desc(), booking_links.c.id)
                    .limit(limit)
                    .offset((page - 1) * limit)
                )
            ).fetchall()
        ]
        employees_by_id = await self._employees_by_id({row["employee_id"] for row in rows})
        items = [
            BookingLinkResponse.from_row(
                row, self.build_url(row["token"]), employees_by_id.get(row["employee_id"])
            )
            for row in rows
        ]
        stats = BookingLinkStats(
            total_booked=counts.get(True, 0),
            total_not_booked=counts.get(False, 0),
        )
        return BookingLinkListResponse.paginate(items, total, page, limit, stats)

    async def delete(self, link_id: UUID, account: Account) -> None:
        """
        Delete one of the tenant's booking links.

        Raises:
            NotFoundException: If the link does not exist in the caller's tenant
        """
        async with transaction(self.db):
            result = await self.db.execute(
                booking_links.delete().where(
                    booking_links.c.id == link_id,
                    booking_links.c.tenant_id == account.tenant_id,
                )
            )
            if result.rowcount != 1:
                raise NotFoundException(messages.BOOKING_LINK_NOT_FOUND)
        logger.info("booking_link_deleted", link_id=str(link_id))

    async def _find_open(self, token: str, for_update: bool = False) -> dict[str, Any]:
        stmt = select(booking_links).where(booking_links.c.token == token)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise NotFoundException(messages.BOOKING_LINK_INVALID)
        link = dict(row._mapping)
        if link["is_booked"]:
            raise ConflictException(messages.BOOKING_LINK_USED)
        if as_utc(link["expires_at"]) < datetime.now(UTC):
            raise BadRequestException(messages.BOOKING_LINK_EXPIRED)
        return link

    async def resolve(self, token: str) -> BookingLinkPublic:
        """
        Look up an open booking link for the public booking page.

        Raises:
            NotFoundException: If the token is unknown
            ConflictException: If the link was already used
            BadRequestException: If the link expired or the employee is inactive
        """
        link = await self._find_open(token)
        employee = await self.employees.find_active_by_id(link["employee_id"])
        if employee is None:
            raise BadRequestException(messages.EMPLOYEE_INACTIVE)

        if link["visitor_id"] is not None:
            visitor = await self.visitors.find_by_id(link["visitor_id"])
        else:
            visitor = await self.visitors.find_by_email(link["tenant_id"], link["visitor_email"])
        return BookingLinkPublic(
            employee=employee,
            visitor=visitor,
            visitor_email=link["visitor_email"],
            expires_at=as_utc(link["expires_at"]),
        )

    async def claim(self, token: str) -> dict[str, Any]:
        """
        Mark an open link booked; the caller owns the transaction.

        Raises:
            NotFoundException: If the token is unknown
            ConflictException: If another booking already used the link
            BadRequestException: If the link expired
        """
        link = await self._find_open(token, for_update=True)
        result = await self.db.execute(
            update(booking_links)
            .where(and_(booking_links.c.id == link["id"], booking_links.c.is_booked.is_(False)))
            .values(is_booked=True, booked_at=datetime.now(UTC), updated_at=datetime.now(UTC))
        )
        if result.rowcount != 1:
            raise ConflictException(messages.BOOKING_LINK_USED)
        return link

    async def resolve_visitor(
        self, link: dict[str, Any], details: BookingVisitor | None
    ) -> UUID:
        """
        Find or create the visitor a claimed link books for.

        The link's own visitor wins, then a tenant visitor with the invited
        email, then a new visitor built from ``details``.

        Raises:
            BadRequestException: If no visitor exists and no details were sent
        """
        visitor = None
        if link["visitor_id"] is not None:
            visitor = await self.visitors.find_by_id(link["visitor_id"])
        if visitor is None:
            visitor = await self.visitors.find_by_email(link["tenant_id"], link["visitor_email"])
        if visitor is not None:
            if (visitor["email"] or "").strip().lower() != link["visitor_email"]:
                raise BadRequestException(messages.BOOKING_VISITOR_MISMATCH)
            visitor_id = visitor["id"]
        elif details is None:
            raise BadRequestException(messages.BOOKING_VISITOR_REQUIRED)
        else:
            visitor_id = uuid4()
            await self.db.execute(
                visitors.insert().values(
                    id=visitor_id,
                    tenant_id=link["tenant_id"],
                    name=details.name,
                    email=link["visitor_email"],
                    phone=details.phone or link["visitor_phone"],
                    company=details.company,
                    address=details.address,
                )
            )
            logger.info("visitor_created_from_booking_link", visitor_id=str(visitor_id))

        if link["visitor_id"] != visitor_id:
            await self.db.execute(
                update(booking_links)
                .where(booking_links.c.id == link["id"])
                .values(visitor_id=visitor_id)
            )
        return visitor_id

    async def record_appointment(self, link_id: UUID, appointment_id: UUID) -> None:
        """Remember which appointment a booked link produced."""
        await self.db.execute(
            update(booking_links)
            .where(booking_links.c.id == link_id)
            .values(appointment_id=appointment_id)
        )
