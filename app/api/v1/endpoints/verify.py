"""Public approval-link endpoints."""

from fastapi import APIRouter, Depends

from app.dependencies import DatabaseSession, Dispatcher, verify_rate_limit
from app.schemas.appointments import AppointmentResponse
from app.schemas.approval_links import ApprovalDecision, ApprovalLinkVerification
from app.schemas.common import ApiResponse, ok
from app.services.appointment_service import AppointmentService

router = APIRouter(dependencies=[Depends(verify_rate_limit)])


@router.get(
    "/{token}",
    response_model=ApiResponse[ApprovalLinkVerification],
    summary="Resolve an approval link",
)
async def verify_link(token: str, db: DatabaseSession) -> ApiResponse[ApprovalLinkVerification]:
    """
    Resolve an approval token without consuming it.

    Unknown tokens report ``is_valid=false``; used ones report ``is_used=true``.
    """
    verification = await AppointmentService(db).verify_link(token)
    return ok(verification, "Approval link resolved")


@router.post(
    "/{token}",
    response_model=ApiResponse[AppointmentResponse],
    summary="Approve or reject through an approval link",
)
async def respond_via_link(
    token: str,
    decision: ApprovalDecision,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> ApiResponse[AppointmentResponse]:
    """Consume the link with the employee's decision; a link works once."""
    appointment = await AppointmentService(db, dispatcher).respond_via_link(token, decision)
    return ok(appointment, f"Appointment {decision.status} successfully")
