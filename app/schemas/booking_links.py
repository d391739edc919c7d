"""Visitor self-booking link schemas."""

from collections.abc import Mapping
from datetime import datetime
from math import ceil
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.base import as_utc
from app.schemas.appointments import AppointmentDetails, EmployeeSummary, VisitorSummary

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class BookingLinkCreate(BaseModel):
    """Invite a visitor to book a slot with an employee."""

    employee_id: UUID
    visitor_email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    visitor_phone: str | None = Field(None, max_length=20)
    expires_in_days: int | None = Field(None, ge=1, le=365)

    @field_validator("visitor_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class BookingLinkResponse(BaseModel):
    """Booking link as shown to the inviting admin."""

    id: UUID
    employee_id: UUID
    employee: EmployeeSummary | None = None
    visitor_id: UUID | None = None
    visitor_email: str
    visitor_phone: str | None = None
    is_booked: bool
    booked_at: datetime | None = None
    appointment_id: UUID | None = None
    expires_at: datetime
    created_at: datetime
    booking_url: str

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        booking_url: str,
        employee: Mapping[str, Any] | None = None,
    ) -> "BookingLinkResponse":
        return cls(
            id=row["id"],
            employee_id=row["employee_id"],
            employee=EmployeeSummary.model_validate(dict(employee)) if employee else None,
            visitor_id=row["visitor_id"],
            visitor_email=row["visitor_email"],
            visitor_phone=row["visitor_phone"],
            is_booked=row["is_booked"],
            booked_at=as_utc(row["booked_at"]),
            appointment_id=row["appointment_id"],
            expires_at=as_utc(row["expires_at"]),
            created_at=as_utc(row["created_at"]),
            booking_url=booking_url,
        )


class BookingLinkStats(BaseModel):
    total_booked: int
    total_not_booked: int


class BookingLinkListResponse(BaseModel):
    """Paginated booking links with booked / open counters."""

    items: list[BookingLinkResponse]
    current_page: int
    total_pages: int
    total_count: int
    stats: BookingLinkStats

    @classmethod
    def paginate(
        cls,
        items: list[BookingLinkResponse],
        total: int,
        page: int,
        limit: int,
        stats: BookingLinkStats,
    ) -> "BookingLinkListResponse":
        return cls(
            items=items,
            current_page=page,
            total_pages=ceil(total / limit) if total else 0,
            total_count=total,
            stats=stats,
        )


class BookingLinkPublic(BaseModel):
    """What the visitor sees when opening a booking link."""

    employee: EmployeeSummary
    visitor: VisitorSummary | None = None
    visitor_email: str
    expires_at: datetime


class BookingVisitor(BaseModel):
    """Visitor details supplied when the invited email has no visitor record yet."""

    name: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=20)
    company: str | None = Field(None, max_length=200)
    address: str | None = Field(None, max_length=500)


class BookingRequest(BaseModel):
    """Appointment booked by a visitor through a booking link."""

    appointment_details: AppointmentDetails
    visitor: BookingVisitor | None = None
