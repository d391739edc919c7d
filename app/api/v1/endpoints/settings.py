"""Tenant notification settings endpoints."""

from fastapi import APIRouter

from app.dependencies import AdminAccount, DatabaseSession
from app.schemas.common import ApiResponse, ok
from app.schemas.tenant_settings import SettingsResponse, SettingsUpdate
from app.services.settings_service import SettingsService

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get(
    "",
    response_model=ApiResponse[SettingsResponse],
    summary="Get notification settings",
)
async def get_settings(account: AdminAccount, db: DatabaseSession) -> ApiResponse[SettingsResponse]:
    """Settings of the caller's tenant, created with defaults on first read."""
    result = await SettingsService(db).get_settings(account.tenant_id)
    return ok(result, "Settings retrieved successfully")


@router.put(
    "",
    response_model=ApiResponse[SettingsResponse],
    summary="Update notification settings",
)
async def update_settings(
    data: SettingsUpdate,
    account: AdminAccount,
    db: DatabaseSession,
) -> ApiResponse[SettingsResponse]:
    """Update channel switches, per-category overrides and provider configs."""
    result = await SettingsService(db).update_settings(account.tenant_id, data)
    return ok(result, "Settings updated successfully")
