"""Notification endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentAccount, DatabaseSession
from app.schemas.common import ApiResponse, ok
from app.schemas.notifications import (
    NotificationListResponse,
    NotificationRecord,
    PushTokenRegister,
    PushTokenResponse,
    UnreadCountResponse,
)
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=ApiResponse[NotificationListResponse],
    summary="List notifications",
)
async def list_notifications(
    account: CurrentAccount,
    db: DatabaseSession,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
) -> ApiResponse[NotificationListResponse]:
    """
    List the caller's notifications, newest first.

    Args:
        account: Authenticated account
        db: Database session
        page: Page number
        limit: Items per page
        unread_only: Only unread notifications
    """
    result = await NotificationService.list_notifications(
        db, account.id, page=page, limit=limit, unread_only=unread_only
    )
    return ok(result, "Notifications retrieved successfully")


@router.get(
    "/unread-count",
    response_model=ApiResponse[UnreadCountResponse],
    summary="Unread notification count",
)
async def unread_count(
    account: CurrentAccount, db: DatabaseSession
) -> ApiResponse[UnreadCountResponse]:
    count = await NotificationService.get_unread_count(db, account.id)
    return ok(UnreadCountResponse(unread_count=count), "Unread count retrieved successfully")


@router.patch(
    "/read-all",
    response_model=ApiResponse[UnreadCountResponse],
    summary="Mark all notifications read",
)
async def mark_all_read(
    account: CurrentAccount, db: DatabaseSession
) -> ApiResponse[UnreadCountResponse]:
    await NotificationService.mark_all_as_read(db, account.id)
    return ok(UnreadCountResponse(unread_count=0), "All notifications marked as read")


@router.patch(
    "/{notification_id}/read",
    response_model=ApiResponse[NotificationRecord],
    summary="Mark notification read",
)
async def mark_read(
    notification_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
) -> ApiResponse[NotificationRecord]:
    """Mark one of the caller's notifications read."""
    record = await NotificationService.mark_as_read(db, account.id, notification_id)
    return ok(record, "Notification marked as read")


@router.delete(
    "/{notification_id}",
    response_model=ApiResponse[None],
    summary="Delete notification",
)
async def delete_notification(
    notification_id: UUID,
    account: CurrentAccount,
    db: DatabaseSession,
) -> ApiResponse[None]:
    await NotificationService.delete_notification(db, account.id, notification_id)
    return ok(None, "Notification deleted successfully")


@router.post(
    "/register-token",
    response_model=ApiResponse[PushTokenResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register FCM token",
)
async def register_fcm_token(
    token_data: PushTokenRegister,
    account: CurrentAccount,
    db: DatabaseSession,
) -> ApiResponse[PushTokenResponse]:
    """
    Register or refresh an FCM token for the caller.

    Call after login, when the token is refreshed and when switching devices.
    """
    token = await NotificationService.register_token(
        db=db,
        user_id=account.id,
        fcm_token=token_data.fcm_token,
        platform=token_data.platform,
    )
    return ok(
        PushTokenResponse.model_validate(token),
        "Token registered successfully",
        status.HTTP_201_CREATED,
    )


@router.delete(
    "/deactivate-token",
    response_model=ApiResponse[None],
    summary="Deactivate FCM token",
)
async def deactivate_fcm_token(
    token_data: PushTokenRegister,
    account: CurrentAccount,
    db: DatabaseSession,
) -> ApiResponse[None]:
    """Deactivate a token, e.g. on logout from one device."""
    await NotificationService.deactivate_token(
        db=db,
        user_id=account.id,
        fcm_token=token_data.fcm_token,
    )
    return ok(None, "Token deactivated successfully")
