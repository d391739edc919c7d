"""Approval link schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel

from app.schemas.appointments import (
    AppointmentDetails,
    AppointmentStatus,
    EmployeeSummary,
    VisitorSummary,
)


class ApprovalLinkResponse(BaseModel):
    """Issued approval link."""

    token: str
    link: str
    is_used: bool = False


class ApprovalLinkAppointment(BaseModel):
    """Appointment projection shown on the public verification page."""

    id: UUID
    status: AppointmentStatus
    employee: EmployeeSummary | None = None
    visitor: VisitorSummary | None = None
    appointment_details: AppointmentDetails
    created_at: datetime


class ApprovalLinkVerification(BaseModel):
    """Result of resolving a token."""

    is_valid: bool
    is_used: bool
    appointment: ApprovalLinkAppointment | None = None


class ApprovalDecision(BaseModel):
    """Decision submitted through a public approval link."""

    status: Literal["approved", "rejected"]
