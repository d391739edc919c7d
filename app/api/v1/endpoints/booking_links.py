"""Visitor self-booking link endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import AdminAccount, DatabaseSession, Dispatcher, verify_rate_limit
from app.schemas.appointments import AppointmentResponse
from app.schemas.booking_links import (
    BookingLinkCreate,
    BookingLinkListResponse,
    BookingLinkPublic,
    BookingLinkResponse,
    BookingRequest,
)
from app.schemas.common import ApiResponse, ok
from app.services.appointment_service import AppointmentService
from app.services.booking_link_service import BookingLinkService

router = APIRouter(prefix="/booking-links", tags=["Booking Links"])
public_router = APIRouter(
    prefix="/book", tags=["Booking Links"], dependencies=[Depends(verify_rate_limit)]
)


@router.post(
    "",
    response_model=ApiResponse[BookingLinkResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking link",
)
async def create_booking_link(
    data: BookingLinkCreate,
    account: AdminAccount,
    db: DatabaseSession,
) -> ApiResponse[BookingLinkResponse]:
    """Invite a visitor, by email, to book a slot with one employee."""
    link = await BookingLinkService(db).create(data, account)
    return ok(link, "Appointment link created successfully", status.HTTP_201_CREATED)


@router.get(
    "",
    response_model=ApiResponse[BookingLinkListResponse],
    summary="List booking links",
)
async def list_booking_links(
    account: AdminAccount,
    db: DatabaseSession,
    is_booked: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[BookingLinkListResponse]:
    result = await BookingLinkService(db).list_links(account, page, limit, is_booked)
    return ok(result, "Appointment links retrieved successfully")


@router.delete(
    "/{link_id}",
    response_model=ApiResponse[None],
    summary="Delete a booking link",
)
async def delete_booking_link(
    link_id: UUID,
    account: AdminAccount,
    db: DatabaseSession,
) -> ApiResponse[None]:
    await BookingLinkService(db).delete(link_id, account)
    return ok(None, "Appointment link deleted successfully")


@public_router.get(
    "/{token}",
    response_model=ApiResponse[BookingLinkPublic],
    summary="Open a booking link",
)
async def open_booking_link(token: str, db: DatabaseSession) -> ApiResponse[BookingLinkPublic]:
    """Employee and known visitor details for the public booking page."""
    result = await BookingLinkService(db).resolve(token)
    return ok(result, "Appointment link retrieved successfully")


@public_router.post(
    "/{token}",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment through a booking link",
)
async def book_through_link(
    token: str,
    data: BookingRequest,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """
    Create a pending appointment as the invited visitor.

    A link books once; a failed booking leaves it usable.
    """
    appointment = await AppointmentService(db, dispatcher).book_via_link(token, data)
    return ok(appointment, "Appointment created successfully", status.HTTP_201_CREATED)
