"""Appointment lifecycle: state machine, queries and notification hand-off."""

from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import messages
from app.core.exceptions import (
    AppException,
    ApprovalLinkException,
    BadRequestException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
)
from app.database import transaction
from app.models.appointments import appointments
from app.models.base import as_utc
from app.models.employees import employees, visitors
from app.schemas.accounts import Account
from app.schemas.appointments import (
    ActionBy,
    AppointmentBulkUpdate,
    AppointmentCreate,
    AppointmentEvent,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentSearchRequest,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
    BulkUpdateFailure,
    BulkUpdateResult,
    CalendarDay,
    CalendarResponse,
    CheckInRequest,
    CheckOutRequest,
)
from app.schemas.approval_links import (
    ApprovalDecision,
    ApprovalLinkResponse,
    ApprovalLinkVerification,
)
from app.schemas.booking_links import BookingRequest
from app.services.approval_link_service import ApprovalLinkService
from app.services.booking_link_service import BookingLinkService
from app.services.conflict_checker import ConflictChecker
from app.services.directory_service import ACTIVE, EmployeeDirectory, VisitorDirectory
from app.services.notification_dispatcher import (
    NotificationDispatcher,
    NotificationIntent,
    NotificationOutbox,
)
from app.services.settings_service import SettingsService

logger = structlog.get_logger(__name__)

SORT_COLUMNS = {
    "created_at": appointments.c.created_at,
    "scheduled_date": appointments.c.scheduled_date,
    "updated_at": appointments.c.updated_at,
}


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class AppointmentService:
    """
    Service for the appointment lifecycle.

    Every mutating operation runs inside ``transaction(db)``: the status is
    re-read under a row lock, the precondition is asserted, the change is
    written with an update guarded on the expected status and the
    notification intent is queued in the same unit of work. The dispatcher is
    woken only after commit.
    """

    def __init__(self, db: AsyncSession, dispatcher: NotificationDispatcher | None = None):
        """Initialize service with database session and notification dispatcher."""
        self.db = db
        self.dispatcher = dispatcher
        self.links = ApprovalLinkService(db)
        self.conflicts = ConflictChecker(db)
        self.employees = EmployeeDirectory(db)
        self.visitors = VisitorDirectory(db)
        self.settings = SettingsService(db)

    # Helpers

    def _scope_conditions(self, account: Account | None) -> list[Any]:
        if account is None:
            return []
        if account.is_admin:
            return [
                appointments.c.employee_id.in_(
                    select(employees.c.id).where(employees.c.tenant_id == account.tenant_id)
                )
            ]
        return [appointments.c.employee_id == account.employee_id]

    async def _get_row(
        self,
        appointment_id: UUID,
        account: Account | None = None,
        for_update: bool = False,
    ) -> dict[str, Any]:
        stmt = select(appointments).where(
            appointments.c.id == appointment_id,
            appointments.c.is_deleted.is_(False),
            *self._scope_conditions(account),
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise NotFoundException(messages.APPOINTMENT_NOT_FOUND)
        return dict(row._mapping)

    async def _transition(
        self,
        appointment_id: UUID,
        expected_status: str,
        values: dict[str, Any],
        error_message: str,
    ) -> None:
        """Write a status change only if the row still has the expected status."""
        result = await self.db.execute(
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status == expected_status,
                    appointments.c.is_deleted.is_(False),
                )
            )
            .values(**values, updated_at=datetime.now(UTC))
        )
        if result.rowcount != 1:
            raise InvalidTransitionException(error_message)

    async def _respond(
        self, appointment_id: UUID, approval_link: str | None = None
    ) -> AppointmentResponse:
        row = (
            await self.db.execute(select(appointments).where(appointments.c.id == appointment_id))
        ).first()
        (response,) = await self._build_many([dict(row._mapping)])
        if approval_link:
            response.approval_link = approval_link
        return response

    async def _build_many(self, rows: list[dict[str, Any]]) -> list[AppointmentResponse]:
        if not rows:
            return []
        employee_ids = {row["employee_id"] for row in rows}
        visitor_ids = {row["visitor_id"] for row in rows}
        employee_rows = await self.db.execute(
            select(employees).where(employees.c.id.in_(employee_ids))
        )
        visitor_rows = await self.db.execute(select(visitors).where(visitors.c.id.in_(visitor_ids)))
        employees_by_id = {row.id: dict(row._mapping) for row in employee_rows}
        visitors_by_id = {row.id: dict(row._mapping) for row in visitor_rows}
        return [
            AppointmentResponse.from_row(
                row,
                employee=employees_by_id.get(row["employee_id"]),
                visitor=visitors_by_id.get(row["visitor_id"]),
            )
            for row in rows
        ]

    async def _tenant_of(self, employee_id: UUID) -> UUID:
        tenant_id = (
            await self.db.execute(select(employees.c.tenant_id).where(employees.c.id == employee_id))
        ).scalar()
        if tenant_id is None:
            raise NotFoundException(messages.EMPLOYEE_NOT_FOUND)
        return tenant_id

    async def _enqueue(
        self,
        row: dict[str, Any],
        event: AppointmentEvent,
        status: AppointmentStatus,
        action_by: ActionBy,
        *,
        send_channels: bool = True,
        show_notification: bool = True,
        suppress_emails: bool = False,
        approval_link: str | None = None,
    ) -> None:
        tenant_id = await self._tenant_of(row["employee_id"])
        intent = NotificationIntent(
            appointment_id=row["id"],
            tenant_id=tenant_id,
            event=event,
            status=status,
            action_by=action_by,
            preferences=await self.settings.resolve_preferences(tenant_id),
            approval_link=approval_link,
            send_channels=send_channels,
            suppress_emails=suppress_emails,
            show_notification=show_notification,
        )
        await NotificationOutbox.enqueue(self.db, intent)

    def _after_commit(self) -> None:
        if self.dispatcher is not None:
            self.dispatcher.wake()

    async def _validate_employee(
        self, employee_id: UUID, account: Account | None, for_update: bool = False
    ) -> dict[str, Any]:
        employee = await self.employees.find_by_id(employee_id, for_update=for_update)
        if employee is None:
            raise NotFoundException(messages.EMPLOYEE_NOT_FOUND)
        if account is not None:
            if employee["tenant_id"] != account.tenant_id:
                raise NotFoundException(messages.EMPLOYEE_NOT_FOUND)
            if not account.is_admin and employee["id"] != account.employee_id:
                raise ForbiddenException(messages.APPOINTMENT_ACCESS_DENIED)
        if employee["status"] != ACTIVE:
            raise BadRequestException(messages.EMPLOYEE_INACTIVE)
        return employee

    # Lifecycle operations

    async def create_appointment(
        self,
        data: AppointmentCreate,
        created_by: UUID,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
        suppress_emails: bool = False,
    ) -> AppointmentResponse:
        """
        Create an appointment.

        The employee row is locked while the slot is checked so concurrent
        bookings for the same employee serialize. A pending appointment gets
        an approval link.

        Args:
            data: Appointment creation data
            created_by: Account creating the appointment
            account: Caller scope, None for trusted internal callers
            action_by: Actor recorded for realtime routing
            suppress_emails: Skip the email channel for this event

        Returns:
            Created appointment, with ``approval_link`` when one was issued

        Raises:
            NotFoundException: If the employee or visitor does not exist
            BadRequestException: If the employee is inactive
            ConflictException: If the slot already holds an approved appointment
        """
        async with transaction(self.db):
            response = await self._create_within(
                data, created_by, account, action_by, suppress_emails
            )

        self._after_commit()
        logger.info(
            "appointment_created",
            appointment_id=str(response.id),
            status=response.status.value,
            action_by=action_by.value,
        )
        return response

    async def _create_within(
        self,
        data: AppointmentCreate,
        created_by: UUID,
        account: Account | None,
        action_by: ActionBy,
        suppress_emails: bool = False,
    ) -> AppointmentResponse:
        """Insert an appointment inside a transaction the caller already holds."""
        details = data.appointment_details
        status = AppointmentStatus(data.status)

        await self._validate_employee(data.employee_id, account, for_update=True)
        visitor = await self.visitors.find_by_id(data.visitor_id)
        if visitor is None or (account and visitor["tenant_id"] != account.tenant_id):
            raise NotFoundException(messages.VISITOR_NOT_FOUND)

        await self.conflicts.ensure_available(
            data.employee_id, details.scheduled_date, details.scheduled_time
        )

        appointment_id = uuid4()
        await self.db.execute(
            appointments.insert().values(
                id=appointment_id,
                employee_id=data.employee_id,
                visitor_id=data.visitor_id,
                created_by=created_by,
                status=status.value,
                **details.model_dump(),
            )
        )

        link: ApprovalLinkResponse | None = None
        if status is AppointmentStatus.PENDING:
            link = await self.links.issue(appointment_id)

        row = await self._get_row(appointment_id)
        await self._enqueue(
            row,
            AppointmentEvent.CREATED,
            status,
            action_by,
            send_channels=data.send_notifications,
            suppress_emails=suppress_emails,
            approval_link=link.link if link else None,
        )
        return await self._respond(appointment_id, link.link if link else None)

    async def book_via_link(self, token: str, data: BookingRequest) -> AppointmentResponse:
        """
        Book a pending appointment as the invited visitor.

        The link is claimed, the visitor resolved (or created from
        ``data.visitor``) and the appointment inserted in one transaction, so
        a rejected booking leaves the link open. The appointment is recorded
        as created by the visitor, which notifies both the admin and the
        employee.

        Raises:
            NotFoundException: If the token is unknown
            ConflictException: If the link was used or the slot is taken
            BadRequestException: If the link expired, the employee is inactive
                or no visitor could be resolved
        """
        bookings = BookingLinkService(self.db)
        async with transaction(self.db):
            link = await bookings.claim(token)
            visitor_id = await bookings.resolve_visitor(link, data.visitor)
            response = await self._create_within(
                AppointmentCreate(
                    employee_id=link["employee_id"],
                    visitor_id=visitor_id,
                    appointment_details=data.appointment_details,
                ),
                link["created_by"],
                None,
                ActionBy.VISITOR,
            )
            await bookings.record_appointment(link["id"], response.id)

        self._after_commit()
        logger.info(
            "appointment_booked_via_link",
            appointment_id=str(response.id),
            link_id=str(link["id"]),
        )
        return response

    async def _decide(
        self,
        appointment_id: UUID,
        decision: AppointmentStatus,
        account: Account | None,
        action_by: ActionBy,
        send_notifications: bool,
    ) -> AppointmentResponse:
        error_message = (
            messages.ONLY_PENDING_CAN_BE_APPROVED
            if decision is AppointmentStatus.APPROVED
            else messages.ONLY_PENDING_CAN_BE_REJECTED
        )
        event = (
            AppointmentEvent.APPROVED
            if decision is AppointmentStatus.APPROVED
            else AppointmentEvent.REJECTED
        )

        async with transaction(self.db):
            row = await self._get_row(appointment_id, account, for_update=True)
            if row["status"] != AppointmentStatus.PENDING.value:
                raise InvalidTransitionException(error_message)

            await self._transition(
                appointment_id,
                AppointmentStatus.PENDING.value,
                {"status": decision.value},
                error_message,
            )
            await self.links.mark_used(appointment_id)
            await self._enqueue(
                row, event, decision, action_by, send_channels=send_notifications
            )
            response = await self._respond(appointment_id)

        self._after_commit()
        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            status=decision.value,
            action_by=action_by.value,
        )
        return response

    async def approve(
        self,
        appointment_id: UUID,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
        send_notifications: bool = True,
    ) -> AppointmentResponse:
        """
        Approve a pending appointment.

        The slot is not re-checked for conflicts here; only create and
        update enforce the double-booking rule.

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidTransitionException: If the appointment is not pending
        """
        return await self._decide(
            appointment_id, AppointmentStatus.APPROVED, account, action_by, send_notifications
        )

    async def reject(
        self,
        appointment_id: UUID,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
        send_notifications: bool = True,
    ) -> AppointmentResponse:
        """
        Reject a pending appointment.

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidTransitionException: If the appointment is not pending
        """
        return await self._decide(
            appointment_id, AppointmentStatus.REJECTED, account, action_by, send_notifications
        )

    async def check_in(
        self,
        data: CheckInRequest,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
    ) -> AppointmentResponse:
        """
        Check a visitor in at the security desk.

        Moves a pending appointment to approved and stamps the check-in time.
        Unlike ``approve`` this admits the visitor into the slot, so the slot
        must be free of other approved appointments. The approval link is
        retired.

        Raises:
            InvalidTransitionException: If the appointment is not pending
            ConflictException: If the slot already holds an approved appointment
        """
        async with transaction(self.db):
            row = await self._get_row(data.appointment_id, account, for_update=True)
            if row["status"] != AppointmentStatus.PENDING.value:
                raise InvalidTransitionException(messages.NOT_PENDING_FOR_CHECK_IN)

            await self.employees.find_by_id(row["employee_id"], for_update=True)
            await self.conflicts.ensure_available(
                row["employee_id"],
                row["scheduled_date"],
                row["scheduled_time"],
                exclude_id=data.appointment_id,
            )

            values: dict[str, Any] = {
                "status": AppointmentStatus.APPROVED.value,
                "check_in_time": datetime.now(UTC),
            }
            if data.badge_number:
                values["badge_issued"] = True
                values["badge_number"] = data.badge_number
            if data.security_notes:
                values["security_notes"] = data.security_notes

            await self._transition(
                data.appointment_id,
                AppointmentStatus.PENDING.value,
                values,
                messages.NOT_PENDING_FOR_CHECK_IN,
            )
            await self.links.mark_used(data.appointment_id)
            await self._enqueue(
                row,
                AppointmentEvent.CHECKED_IN,
                AppointmentStatus.APPROVED,
                action_by,
                send_channels=False,
                show_notification=False,
            )
            response = await self._respond(data.appointment_id)

        self._after_commit()
        logger.info("appointment_checked_in", appointment_id=str(data.appointment_id))
        return response

    async def check_out(
        self,
        data: CheckOutRequest,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
        send_notifications: bool = True,
    ) -> AppointmentResponse:
        """
        Close out a visit that has not been closed yet.

        ``actual_duration`` is the whole number of minutes since check-in and
        stays unset when the visitor never checked in.

        Raises:
            InvalidTransitionException: If the appointment is already completed
        """
        async with transaction(self.db):
            row = await self._get_row(data.appointment_id, account, for_update=True)
            if row["status"] == AppointmentStatus.COMPLETED.value:
                raise InvalidTransitionException(messages.ALREADY_CHECKED_OUT)

            now = datetime.now(UTC)
            values: dict[str, Any] = {
                "status": AppointmentStatus.COMPLETED.value,
                "check_out_time": now,
            }
            check_in_time = as_utc(row["check_in_time"])
            if check_in_time is not None:
                values["actual_duration"] = int((now - check_in_time).total_seconds() // 60)
            if data.notes is not None:
                values["notes"] = data.notes

            await self._transition(
                data.appointment_id, row["status"], values, messages.ALREADY_CHECKED_OUT
            )
            await self._enqueue(
                row,
                AppointmentEvent.CHECKED_OUT,
                AppointmentStatus.COMPLETED,
                action_by,
                send_channels=False,
                show_notification=send_notifications,
            )
            response = await self._respond(data.appointment_id)

        self._after_commit()
        logger.info("appointment_checked_out", appointment_id=str(data.appointment_id))
        return response

    async def cancel(
        self,
        appointment_id: UUID,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
    ) -> AppointmentResponse:
        """
        Cancel a pending or approved appointment (status becomes rejected).

        Raises:
            BadRequestException: If the appointment is completed or already cancelled
        """
        async with transaction(self.db):
            row = await self._get_row(appointment_id, account, for_update=True)
            if row["status"] == AppointmentStatus.COMPLETED.value:
                raise InvalidTransitionException(messages.CANNOT_CANCEL_COMPLETED)
            if row["status"] == AppointmentStatus.REJECTED.value:
                raise InvalidTransitionException(messages.ALREADY_CANCELLED)

            await self._transition(
                appointment_id,
                row["status"],
                {"status": AppointmentStatus.REJECTED.value},
                messages.ALREADY_CANCELLED,
            )
            await self.links.mark_used(appointment_id)
            await self._enqueue(
                row,
                AppointmentEvent.CANCELLED,
                AppointmentStatus.REJECTED,
                action_by,
                send_channels=False,
            )
            response = await self._respond(appointment_id)

        self._after_commit()
        logger.info("appointment_cancelled", appointment_id=str(appointment_id))
        return response

    async def update_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentUpdate,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
    ) -> AppointmentResponse:
        """
        Update appointment fields.

        When the employee, date or time changes the slot is checked again,
        ignoring this appointment itself.

        Raises:
            NotFoundException: If the appointment, employee or visitor does not exist
            BadRequestException: If the new employee is inactive
            ConflictException: If the new slot holds an approved appointment
        """
        async with transaction(self.db):
            row = await self._get_row(appointment_id, account, for_update=True)

            values: dict[str, Any] = {}
            if data.appointment_details is not None:
                values.update(data.appointment_details.model_dump(exclude_none=True))
            if data.security_details is not None:
                values.update(data.security_details.model_dump())
            if data.employee_id is not None and data.employee_id != row["employee_id"]:
                await self._validate_employee(data.employee_id, account, for_update=True)
                values["employee_id"] = data.employee_id
            if data.visitor_id is not None and data.visitor_id != row["visitor_id"]:
                visitor = await self.visitors.find_by_id(data.visitor_id)
                if visitor is None or (account and visitor["tenant_id"] != account.tenant_id):
                    raise NotFoundException(messages.VISITOR_NOT_FOUND)
                values["visitor_id"] = data.visitor_id

            slot_keys = ("employee_id", "scheduled_date", "scheduled_time")
            if any(key in values and values[key] != row[key] for key in slot_keys):
                target_employee_id = values.get("employee_id", row["employee_id"])
                # Same lock create_appointment takes, so slot checks serialize per employee
                await self.employees.find_by_id(target_employee_id, for_update=True)
                await self.conflicts.ensure_available(
                    target_employee_id,
                    values.get("scheduled_date", row["scheduled_date"]),
                    values.get("scheduled_time", row["scheduled_time"]),
                    exclude_id=appointment_id,
                )

            if values:
                await self.db.execute(
                    update(appointments)
                    .where(appointments.c.id == appointment_id)
                    .values(**values, updated_at=datetime.now(UTC))
                )
                row = await self._get_row(appointment_id)
                await self._enqueue(
                    row,
                    AppointmentEvent.UPDATED,
                    AppointmentStatus(row["status"]),
                    action_by,
                    send_channels=False,
                    show_notification=False,
                )
            response = await self._respond(appointment_id)

        self._after_commit()
        logger.info("appointment_updated", appointment_id=str(appointment_id), fields=sorted(values))
        return response

    async def soft_delete(
        self,
        appointment_id: UUID,
        deleted_by: UUID,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
    ) -> None:
        """
        Soft delete an appointment; its status is left untouched.

        Raises:
            NotFoundException: If the appointment does not exist or is already deleted
        """
        async with transaction(self.db):
            row = await self._get_row(appointment_id, account, for_update=True)
            await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(
                    is_deleted=True,
                    deleted_at=datetime.now(UTC),
                    deleted_by=deleted_by,
                    updated_at=datetime.now(UTC),
                )
            )
            await self._enqueue(
                row,
                AppointmentEvent.DELETED,
                AppointmentStatus(row["status"]),
                action_by,
                send_channels=False,
            )

        self._after_commit()
        logger.info("appointment_deleted", appointment_id=str(appointment_id))

    async def restore(
        self,
        appointment_id: UUID,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
    ) -> AppointmentResponse:
        """
        Restore a soft-deleted appointment.

        Raises:
            NotFoundException: If no deleted appointment has this ID
        """
        async with transaction(self.db):
            row = (
                await self.db.execute(
                    select(appointments)
                    .where(
                        appointments.c.id == appointment_id,
                        appointments.c.is_deleted.is_(True),
                        *self._scope_conditions(account),
                    )
                    .with_for_update()
                )
            ).first()
            if row is None:
                raise NotFoundException(messages.DELETED_APPOINTMENT_NOT_FOUND)

            await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(
                    is_deleted=False,
                    deleted_at=None,
                    deleted_by=None,
                    updated_at=datetime.now(UTC),
                )
            )
            await self._enqueue(
                dict(row._mapping),
                AppointmentEvent.RESTORED,
                AppointmentStatus(row.status),
                action_by,
                send_channels=False,
                show_notification=False,
            )
            response = await self._respond(appointment_id)

        self._after_commit()
        logger.info("appointment_restored", appointment_id=str(appointment_id))
        return response

    async def bulk_update(
        self,
        data: AppointmentBulkUpdate,
        *,
        account: Account | None = None,
        action_by: ActionBy = ActionBy.ADMIN,
    ) -> BulkUpdateResult:
        """
        Apply one action to many appointments.

        Each appointment runs in its own transaction; a failure is reported
        for that ID and the rest continue.
        """
        operations = {
            "approve": self.approve,
            "reject": self.reject,
            "cancel": self.cancel,
        }
        operation = operations[data.action]

        updated: list[UUID] = []
        failed: list[BulkUpdateFailure] = []
        for appointment_id in dict.fromkeys(data.appointment_ids):
            try:
                await operation(appointment_id, account=account, action_by=action_by)
            except AppException as e:
                failed.append(BulkUpdateFailure(appointment_id=appointment_id, message=e.message))
            else:
                updated.append(appointment_id)

        logger.info(
            "appointments_bulk_updated",
            action=data.action,
            updated=len(updated),
            failed=len(failed),
        )
        return BulkUpdateResult(updated=updated, failed=failed)

    # Approval links

    async def get_approval_link(
        self, appointment_id: UUID, account: Account | None = None
    ) -> ApprovalLinkResponse:
        """
        Get the approval link of an appointment.

        Raises:
            NotFoundException: If the appointment or its link does not exist
        """
        await self._get_row(appointment_id, account)
        link = await self.links.get_by_appointment(appointment_id)
        if link is None:
            raise NotFoundException("Approval link not found")
        return link

    async def verify_link(self, token: str) -> ApprovalLinkVerification:
        """Resolve a token for the public verification page."""
        async with transaction(self.db):
            return await self.links.resolve(token)

    async def respond_via_link(self, token: str, decision: ApprovalDecision) -> AppointmentResponse:
        """
        Approve or reject through a public approval link.

        Raises:
            NotFoundException: If the token is unknown
            BadRequestException: If the link was used, has expired or the
                appointment is no longer pending
        """
        async with transaction(self.db):
            expired = await self.links.expire_if_passed(token)
        if expired:
            raise ApprovalLinkException(messages.LINK_APPOINTMENT_PASSED)

        status = AppointmentStatus(decision.status)
        event = (
            AppointmentEvent.APPROVED
            if status is AppointmentStatus.APPROVED
            else AppointmentEvent.REJECTED
        )
        async with transaction(self.db):
            row = await self.links.consume(token, status)
            await self._enqueue(row, event, status, ActionBy.VISITOR)
            response = await self._respond(row["id"])

        self._after_commit()
        return response

    # Queries

    async def get_appointment(
        self, appointment_id: UUID, account: Account | None = None
    ) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found or outside the caller's scope
        """
        row = await self._get_row(appointment_id, account)
        (response,) = await self._build_many([row])
        return response

    async def list_appointments(
        self,
        filters: AppointmentFilters,
        account: Account | None = None,
    ) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Date filters apply to the scheduled date: ``start_date`` inclusive,
        ``end_date`` through the end of that day.

        Args:
            filters: Filter, sort and pagination parameters
            account: Caller scope

        Returns:
            Paginated list of appointments
        """
        conditions = [appointments.c.is_deleted.is_(False), *self._scope_conditions(account)]

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)
        if filters.employee_id:
            conditions.append(appointments.c.employee_id == filters.employee_id)
        if filters.start_date:
            conditions.append(appointments.c.scheduled_date >= filters.start_date)
        if filters.end_date:
            conditions.append(
                appointments.c.scheduled_date < filters.end_date + timedelta(days=1)
            )

        total = (
            await self.db.execute(
                select(func.count()).select_from(appointments).where(and_(*conditions))
            )
        ).scalar() or 0

        sort_column = SORT_COLUMNS[filters.sort_by]
        order = sort_column.asc() if filters.sort_order == "asc" else sort_column.desc()
        rows = (
            await self.db.execute(
                select(appointments)
                .where(and_(*conditions))
                .order_by(order, appointments.c.id)
                .limit(filters.limit)
                .offset((filters.page - 1) * filters.limit)
            )
        ).fetchall()

        items = await self._build_many([dict(row._mapping) for row in rows])
        return AppointmentListResponse.paginate(items, total, filters.page, filters.limit)

    async def search_appointments(
        self,
        data: AppointmentSearchRequest,
        account: Account | None = None,
    ) -> AppointmentListResponse:
        """
        Case-insensitive substring search.

        Matches visitor name, phone and email, employee name and department,
        and the appointment purpose and notes.
        """
        pattern = f"%{escape_like(data.query.strip())}%"
        matches = or_(
            *(
                column.ilike(pattern, escape="\\")
                for column in (
                    visitors.c.name,
                    visitors.c.phone,
                    visitors.c.email,
                    employees.c.name,
                    employees.c.department,
                    appointments.c.purpose,
                    appointments.c.notes,
                )
            )
        )
        conditions = [
            appointments.c.is_deleted.is_(False),
            matches,
            *self._scope_conditions(account),
        ]
        if data.status:
            conditions.append(appointments.c.status == data.status.value)

        joined = appointments.join(employees, employees.c.id == appointments.c.employee_id).join(
            visitors, visitors.c.id == appointments.c.visitor_id
        )

        total = (
            await self.db.execute(
                select(func.count()).select_from(joined).where(and_(*conditions))
            )
        ).scalar() or 0

        rows = (
            await self.db.execute(
                select(appointments)
                .select_from(joined)
                .where(and_(*conditions))
                .order_by(appointments.c.created_at.desc(), appointments.c.id)
                .limit(data.limit)
                .offset((data.page - 1) * data.limit)
            )
        ).fetchall()

        items = await self._build_many([dict(row._mapping) for row in rows])
        return AppointmentListResponse.paginate(items, total, data.page, data.limit)

    async def get_calendar(
        self,
        start_date: date | None,
        end_date: date | None,
        account: Account | None = None,
    ) -> CalendarResponse:
        """
        Appointments grouped by scheduled date over an inclusive range.

        Raises:
            BadRequestException: If a bound is missing or the range is inverted
        """
        if start_date is None or end_date is None:
            raise BadRequestException(messages.CALENDAR_RANGE_REQUIRED)
        if start_date > end_date:
            raise BadRequestException(messages.CALENDAR_RANGE_INVALID)

        rows = (
            await self.db.execute(
                select(appointments)
                .where(
                    appointments.c.is_deleted.is_(False),
                    appointments.c.scheduled_date >= start_date,
                    appointments.c.scheduled_date <= end_date,
                    *self._scope_conditions(account),
                )
                .order_by(appointments.c.scheduled_date, appointments.c.scheduled_time)
            )
        ).fetchall()

        days: dict[date, list[AppointmentResponse]] = {}
        for item in await self._build_many([dict(row._mapping) for row in rows]):
            days.setdefault(item.appointment_details.scheduled_date, []).append(item)

        return CalendarResponse(
            start_date=start_date,
            end_date=end_date,
            days=[CalendarDay(day=day, appointments=items) for day, items in days.items()],
        )

    async def get_stats(self, account: Account | None = None) -> AppointmentStats:
        """Dashboard counters for the caller's appointments."""
        conditions = [appointments.c.is_deleted.is_(False), *self._scope_conditions(account)]
        today = datetime.now(UTC).date()

        by_status = dict(
            (
                await self.db.execute(
                    select(appointments.c.status, func.count())
                    .where(and_(*conditions))
                    .group_by(appointments.c.status)
                )
            ).all()
        )

        upcoming = (
            await self.db.execute(
                select(func.count())
                .select_from(appointments)
                .where(
                    and_(
                        *conditions,
                        appointments.c.status == AppointmentStatus.APPROVED.value,
                        appointments.c.scheduled_date >= today,
                    )
                )
            )
        ).scalar() or 0

        today_count = (
            await self.db.execute(
                select(func.count())
                .select_from(appointments)
                .where(and_(*conditions, appointments.c.scheduled_date == today))
            )
        ).scalar() or 0

        return AppointmentStats(
            total=sum(by_status.values()),
            pending=by_status.get(AppointmentStatus.PENDING.value, 0),
            approved=by_status.get(AppointmentStatus.APPROVED.value, 0),
            rejected=by_status.get(AppointmentStatus.REJECTED.value, 0),
            completed=by_status.get(AppointmentStatus.COMPLETED.value, 0),
            upcoming=upcoming,
            today=today_count,
        )
