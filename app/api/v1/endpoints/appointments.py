"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentAccount, DatabaseSession, Dispatcher
from app.schemas.appointments import (
    AppointmentBulkUpdate,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentSearchRequest,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
    BulkUpdateResult,
    CalendarResponse,
    CheckInRequest,
    CheckOutRequest,
)
from app.schemas.approval_links import ApprovalLinkResponse
from app.schemas.common import ApiResponse, ok
from app.services.appointment_service import AppointmentService

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """
    Create an appointment for an employee of the caller's tenant.

    Pending appointments come back with an ``approval_link``.
    """
    service = AppointmentService(db, dispatcher)
    appointment = await service.create_appointment(
        data, account.id, account=account, action_by=account.action_by
    )
    return ok(appointment, "Appointment created successfully", status.HTTP_201_CREATED)


@router.get(
    "",
    response_model=ApiResponse[AppointmentListResponse],
    summary="List appointments",
)
async def list_appointments(
    account: CurrentAccount,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    employee_id: UUID | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    sort_by: str = Query("created_at", pattern="^(created_at|scheduled_date|updated_at)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[AppointmentListResponse]:
    """
    List appointments visible to the caller.

    Args:
        account: Authenticated account
        db: Database session
        status_filter: Filter by status
        employee_id: Filter by employee
        start_date: Scheduled on or after this date
        end_date: Scheduled on or before this date
        sort_by: Sort column
        sort_order: asc or desc
        page: Page number
        limit: Items per page
    """
    filters = AppointmentFilters(
        status=status_filter,
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    result = await AppointmentService(db).list_appointments(filters, account)
    return ok(result, "Appointments retrieved successfully")


@router.get(
    "/stats",
    response_model=ApiResponse[AppointmentStats],
    summary="Appointment dashboard counters",
)
async def get_stats(account: CurrentAccount, db: DatabaseSession) -> ApiResponse[AppointmentStats]:
    """Counters by status plus upcoming and today."""
    stats = await AppointmentService(db).get_stats(account)
    return ok(stats, "Appointment statistics retrieved successfully")


@router.get(
    "/calendar",
    response_model=ApiResponse[CalendarResponse],
    summary="Appointments grouped by day",
)
async def get_calendar(
    account: CurrentAccount,
    db: DatabaseSession,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
) -> ApiResponse[CalendarResponse]:
    """Calendar view over an inclusive date range."""
    calendar = await AppointmentService(db).get_calendar(start_date, end_date, account)
    return ok(calendar, "Calendar retrieved successfully")


@router.post(
    "/search",
    response_model=ApiResponse[AppointmentListResponse],
    summary="Search appointments",
)
async def search_appointments(
    data: AppointmentSearchRequest,
    account: CurrentAccount,
    db: DatabaseSession,
) -> ApiResponse[AppointmentListResponse]:
    """Free-text search over visitor, employee and appointment fields."""
    result = await AppointmentService(db).search_appointments(data, account)
    return ok(result, "Search completed successfully")


@router.put(
    "/bulk-update",
    response_model=ApiResponse[BulkUpdateResult],
    summary="Approve, reject or cancel many appointments",
)
async def bulk_update(
    data: AppointmentBulkUpdate,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[BulkUpdateResult]:
    """Apply one action per appointment; failures are reported per ID."""
    service = AppointmentService(db, dispatcher)
    result = await service.bulk_update(data, account=account, action_by=account.action_by)
    return ok(result, f"{len(result.updated)} appointments updated")


@router.post(
    "/check-in",
    response_model=ApiResponse[AppointmentResponse],
    summary="Check a visitor in",
)
async def check_in(
    data: CheckInRequest,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """Security desk check-in."""
    service = AppointmentService(db, dispatcher)
    appointment = await service.check_in(data, account=account, action_by=account.action_by)
    return ok(appointment, "Visitor checked in successfully")


@router.post(
    "/check-out",
    response_model=ApiResponse[AppointmentResponse],
    summary="Check a visitor out",
)
async def check_out(
    data: CheckOutRequest,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """Security desk check-out; always closes the visit."""
    service = AppointmentService(db, dispatcher)
    appointment = await service.check_out(data, account=account, action_by=account.action_by)
    return ok(appointment, "Visitor checked out successfully")


@router.get(
    "/{appointment_id}",
    response_model=ApiResponse[AppointmentResponse],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
) -> ApiResponse[AppointmentResponse]:
    """Get one appointment visible to the caller."""
    appointment = await AppointmentService(db).get_appointment(appointment_id, account)
    return ok(appointment, "Appointment retrieved successfully")


@router.put(
    "/{appointment_id}",
    response_model=ApiResponse[AppointmentResponse],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """Update appointment fields; status is not editable here."""
    service = AppointmentService(db, dispatcher)
    appointment = await service.update_appointment(
        appointment_id, data, account=account, action_by=account.action_by
    )
    return ok(appointment, "Appointment updated successfully")


@router.delete(
    "/{appointment_id}",
    response_model=ApiResponse[None],
    summary="Soft delete appointment",
)
async def delete_appointment(
    appointment_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[None]:
    """Soft delete an appointment."""
    service = AppointmentService(db, dispatcher)
    await service.soft_delete(
        appointment_id, account.id, account=account, action_by=account.action_by
    )
    return ok(None, "Appointment deleted successfully")


@router.put(
    "/{appointment_id}/restore",
    response_model=ApiResponse[AppointmentResponse],
    summary="Restore a deleted appointment",
)
async def restore_appointment(
    appointment_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """Undo a soft delete."""
    service = AppointmentService(db, dispatcher)
    appointment = await service.restore(
        appointment_id, account=account, action_by=account.action_by
    )
    return ok(appointment, "Appointment restored successfully")


@router.post(
    "/{appointment_id}/approve",
    response_model=ApiResponse[AppointmentResponse],
    summary="Approve appointment",
)
async def approve_appointment(
    appointment_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """Approve a pending appointment."""
    service = AppointmentService(db, dispatcher)
    appointment = await service.approve(
        appointment_id, account=account, action_by=account.action_by
    )
    return ok(appointment, "Appointment approved successfully")


@router.post(
    "/{appointment_id}/reject",
    response_model=ApiResponse[AppointmentResponse],
    summary="Reject appointment",
)
async def reject_appointment(
    appointment_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """Reject a pending appointment."""
    service = AppointmentService(db, dispatcher)
    appointment = await service.reject(
        appointment_id, account=account, action_by=account.action_by
    )
    return ok(appointment, "Appointment rejected successfully")


@router.post(
    "/{appointment_id}/cancel",
    response_model=ApiResponse[AppointmentResponse],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """Cancel a pending or approved appointment."""
    service = AppointmentService(db, dispatcher)
    appointment = await service.cancel(appointment_id, account=account, action_by=account.action_by)
    return ok(appointment, "Appointment cancelled successfully")


@router.get(
    "/{appointment_id}/approval-link",
    response_model=ApiResponse[ApprovalLinkResponse],
    summary="Get the approval link of an appointment",
)
async def get_approval_link(
    appointment_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
) -> ApiResponse[ApprovalLinkResponse]:
    """Approval link issued when the appointment was created pending."""
    link = await AppointmentService(db).get_approval_link(appointment_id, account)
    return ok(link, "Approval link retrieved successfully")
