"""In-app notification and push token schemas."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    """In-app notification types."""

    APPOINTMENT_APPROVED = "appointment_approved"
    APPOINTMENT_REJECTED = "appointment_rejected"
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_DELETED = "appointment_deleted"
    APPOINTMENT_STATUS_CHANGED = "appointment_status_changed"
    GENERAL = "general"


class NotificationCreate(BaseModel):
    """Notification to persist for one account."""

    user_id: UUID
    type: NotificationType = NotificationType.GENERAL
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    appointment_id: UUID | None = None
    metadata: dict[str, Any] | None = None


class NotificationRecord(BaseModel):
    """Schema for notification record."""

    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    read: bool
    read_at: datetime | None
    appointment_id: UUID | None
    metadata: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    """Paginated inbox."""

    items: list[NotificationRecord]
    unread_count: int
    current_page: int
    total_pages: int
    total_count: int


class UnreadCountResponse(BaseModel):
    """Unread notification count."""

    unread_count: int


class PushTokenRegister(BaseModel):
    """Schema for registering FCM token."""

    fcm_token: str = Field(..., description="Firebase Cloud Messaging token")
    platform: str = Field(
        ...,
        description="Platform type",
        pattern="^(android|ios|web)$",
    )


class PushTokenResponse(BaseModel):
    """Schema for push token response."""

    id: UUID
    user_id: UUID
    fcm_token: str
    platform: str
    is_active: bool
    last_used_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}
