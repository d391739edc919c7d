"""Plain-text message templates for outbound channels."""

from enum import Enum
from typing import Any


class TemplateKind(str, Enum):
    """Message kinds the dispatcher can send."""

    NEW_APPOINTMENT_REQUEST = "new_appointment_request"
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_APPROVED = "appointment_approved"
    APPOINTMENT_REJECTED = "appointment_rejected"
    APPOINTMENT_STATUS_UPDATE = "appointment_status_update"


def _when(args: dict[str, Any]) -> str:
    return f"{args.get('scheduled_date')} at {args.get('scheduled_time')}"


def render(kind: TemplateKind, args: dict[str, Any]) -> tuple[str, str]:
    """
    Render subject and body for a message.

    Args:
        kind: Template to render
        args: Values such as visitor_name, employee_name, scheduled_date,
            scheduled_time, purpose, approval_link and status

    Returns:
        Tuple of (subject, body)
    """
    visitor = args.get("visitor_name", "Visitor")
    employee = args.get("employee_name", "Employee")

    if kind is TemplateKind.NEW_APPOINTMENT_REQUEST:
        body = (
            f"Hello {employee},\n\n{visitor} has requested an appointment on {_when(args)}.\n"
            f"Purpose: {args.get('purpose')}\n"
        )
        if args.get("approval_link"):
            body += f"\nApprove or reject: {args['approval_link']}\n"
        return "New appointment request", body

    if kind is TemplateKind.APPOINTMENT_CONFIRMATION:
        return (
            "Appointment confirmed",
            f"Hello {employee},\n\nAn appointment with {visitor} on {_when(args)} "
            f"has been scheduled and confirmed.\nPurpose: {args.get('purpose')}\n",
        )

    if kind is TemplateKind.APPOINTMENT_APPROVED:
        return (
            "Your appointment has been approved",
            f"Hello {visitor},\n\nYour appointment with {employee} on {_when(args)} "
            "has been approved.\n",
        )

    if kind is TemplateKind.APPOINTMENT_REJECTED:
        return (
            "Your appointment has been rejected",
            f"Hello {visitor},\n\nUnfortunately your appointment with {employee} on "
            f"{_when(args)} has been rejected.\n",
        )

    status = args.get("status", "updated")
    return (
        "Appointment update",
        f"Hello {visitor}, your appointment with {employee} on {_when(args)} is now {status}.",
    )
