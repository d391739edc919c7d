"""Appointment schemas for request/response validation."""

from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.base import as_utc

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class ActionBy(str, Enum):
    """Who performed a lifecycle action."""

    ADMIN = "admin"
    EMPLOYEE = "employee"
    VISITOR = "visitor"


class AppointmentEvent(str, Enum):
    """Lifecycle events that produce notification intents."""

    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"


class AppointmentDetails(BaseModel):
    """What, when and where of an appointment."""

    purpose: str = Field(..., min_length=1, max_length=500)
    scheduled_date: date
    scheduled_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM, 24h")
    duration: int = Field(default=60, ge=15, le=480, description="Minutes")
    meeting_room: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)
    vehicle_number: str | None = Field(None, max_length=20)


class AppointmentDetailsUpdate(BaseModel):
    """Partial update of appointment details."""

    purpose: str | None = Field(None, min_length=1, max_length=500)
    scheduled_date: date | None = None
    scheduled_time: str | None = Field(None, pattern=TIME_PATTERN)
    duration: int | None = Field(None, ge=15, le=480)
    meeting_room: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)
    vehicle_number: str | None = Field(None, max_length=20)


class SecurityDetails(BaseModel):
    """Security desk fields."""

    badge_issued: bool = False
    badge_number: str | None = None
    security_clearance: bool = False
    security_notes: str | None = None


class DeliveryFlags(BaseModel):
    """Per-channel delivery audit flags."""

    email_sent: bool = False
    whatsapp_sent: bool = False
    sms_sent: bool = False
    reminder_sent: bool = False


class EmployeeSummary(BaseModel):
    """Employee projection embedded in appointment responses."""

    id: UUID
    name: str
    email: str
    phone: str | None = None
    department: str | None = None
    designation: str | None = None

    model_config = {"from_attributes": True}


class VisitorSummary(BaseModel):
    """Visitor projection embedded in appointment responses."""

    id: UUID
    name: str
    email: str | None = None
    phone: str | None = None
    company: str | None = None

    model_config = {"from_attributes": True}


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment."""

    employee_id: UUID
    visitor_id: UUID
    appointment_details: AppointmentDetails
    status: Literal["pending", "approved"] = "pending"
    send_notifications: bool = True


class AppointmentUpdate(BaseModel):
    """Schema for updating an existing appointment.

    Status is deliberately absent: it only moves through lifecycle operations.
    """

    employee_id: UUID | None = None
    visitor_id: UUID | None = None
    appointment_details: AppointmentDetailsUpdate | None = None
    security_details: SecurityDetails | None = None


class CheckInRequest(BaseModel):
    """Security desk check-in."""

    appointment_id: UUID
    badge_number: str | None = Field(None, max_length=50)
    security_notes: str | None = Field(None, max_length=1000)


class CheckOutRequest(BaseModel):
    """Security desk check-out."""

    appointment_id: UUID
    notes: str | None = Field(None, max_length=1000)


class AppointmentBulkUpdate(BaseModel):
    """Apply one lifecycle action to many appointments."""

    appointment_ids: list[UUID] = Field(..., min_length=1, max_length=100)
    action: Literal["approve", "reject", "cancel"]


class BulkUpdateFailure(BaseModel):
    """Appointment that could not be updated in a bulk request."""

    appointment_id: UUID
    message: str


class BulkUpdateResult(BaseModel):
    """Outcome of a bulk update."""

    updated: list[UUID]
    failed: list[BulkUpdateFailure]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    employee_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None
    sort_by: Literal["created_at", "scheduled_date", "updated_at"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class AppointmentSearchRequest(BaseModel):
    """Free-text appointment search."""

    query: str = Field(..., min_length=1, max_length=100)
    status: AppointmentStatus | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    employee_id: UUID
    visitor_id: UUID
    created_by: UUID
    appointment_details: AppointmentDetails
    status: AppointmentStatus
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    actual_duration: int | None = None
    security_details: SecurityDetails
    notifications: DeliveryFlags
    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by: UUID | None = None
    created_at: datetime
    updated_at: datetime
    employee: EmployeeSummary | None = None
    visitor: VisitorSummary | None = None
    approval_link: str | None = None

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        employee: Mapping[str, Any] | None = None,
        visitor: Mapping[str, Any] | None = None,
        approval_link: str | None = None,
    ) -> "AppointmentResponse":
        """Build a response from a flat ``appointments`` row."""
        return cls(
            id=row["id"],
            employee_id=row["employee_id"],
            visitor_id=row["visitor_id"],
            created_by=row["created_by"],
            appointment_details=AppointmentDetails.model_construct(
                purpose=row["purpose"],
                scheduled_date=row["scheduled_date"],
                scheduled_time=row["scheduled_time"],
                duration=row["duration"],
                meeting_room=row["meeting_room"],
                notes=row["notes"],
                vehicle_number=row["vehicle_number"],
            ),
            status=row["status"],
            check_in_time=as_utc(row["check_in_time"]),
            check_out_time=as_utc(row["check_out_time"]),
            actual_duration=row["actual_duration"],
            security_details=SecurityDetails(
                badge_issued=row["badge_issued"],
                badge_number=row["badge_number"],
                security_clearance=row["security_clearance"],
                security_notes=row["security_notes"],
            ),
            notifications=DeliveryFlags(
                email_sent=row["email_sent"],
                whatsapp_sent=row["whatsapp_sent"],
                sms_sent=row["sms_sent"],
                reminder_sent=row["reminder_sent"],
            ),
            is_deleted=row["is_deleted"],
            deleted_at=as_utc(row["deleted_at"]),
            deleted_by=row["deleted_by"],
            created_at=as_utc(row["created_at"]),
            updated_at=as_utc(row["updated_at"]),
            employee=EmployeeSummary.model_validate(dict(employee)) if employee else None,
            visitor=VisitorSummary.model_validate(dict(visitor)) if visitor else None,
            approval_link=approval_link,
        )


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    items: list[AppointmentResponse]
    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def paginate(
        cls, items: list[AppointmentResponse], total: int, page: int, limit: int
    ) -> "AppointmentListResponse":
        """Assemble the pagination contract from a page of items."""
        total_pages = (total + limit - 1) // limit
        return cls(
            items=items,
            current_page=page,
            total_pages=total_pages,
            total_count=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class AppointmentStats(BaseModel):
    """Dashboard counters."""

    total: int
    pending: int
    approved: int
    rejected: int
    completed: int
    upcoming: int
    today: int


class CalendarDay(BaseModel):
    """Appointments scheduled on one day."""

    day: date
    appointments: list[AppointmentResponse]


class CalendarResponse(BaseModel):
    """Calendar view grouped by scheduled date."""

    start_date: date
    end_date: date
    days: list[CalendarDay]

