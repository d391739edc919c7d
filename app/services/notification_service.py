"""In-app notification inbox and FCM push delivery."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from firebase_admin import messaging
from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.core.firebase import is_firebase_initialized
from app.models.notifications import notifications
from app.models.push_tokens import push_tokens
from app.schemas.notifications import (
    NotificationCreate,
    NotificationListResponse,
    NotificationRecord,
)

logger = structlog.get_logger(__name__)


class NotificationService:
    """Service for in-app notifications and push devices."""

    @staticmethod
    async def send_push_notification(
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> tuple[int, int]:
        """
        Send push notification to multiple devices.

        Args:
            tokens: List of FCM tokens
            title: Notification title
            body: Notification body
            data: Optional data payload

        Returns:
            Tuple of (success_count, failure_count)
        """
        if not tokens:
            return 0, 0

        message = messaging.MulticastMessage(
            notification=messaging.Notification(title=title, body=body),
            data=data or {},
            tokens=tokens,
            android=messaging.AndroidConfig(priority="high"),
        )
        try:
            response = await asyncio.to_thread(messaging.send_each_for_multicast, message)
        except Exception as e:
            logger.error("push_notification_failed", error=str(e), title=title)
            return 0, len(tokens)

        logger.info(
            "push_notification_sent",
            title=title,
            success_count=response.success_count,
            failure_count=response.failure_count,
        )
        return response.success_count, response.failure_count

    @staticmethod
    async def push_to_user(
        db: AsyncSession,
        user_id: UUID,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> tuple[int, int]:
        """
        Mirror a notification to every active device of an account.

        Args:
            db: Database session
            user_id: Account ID
            title: Notification title
            body: Notification body
            data: Optional data payload

        Returns:
            Tuple of (success_count, failure_count)
        """
        if not is_firebase_initialized():
            return 0, 0

        result = await db.execute(
            select(push_tokens.c.fcm_token).where(
                push_tokens.c.user_id == user_id,
                push_tokens.c.is_active.is_(True),
            )
        )
        tokens = [row.fcm_token for row in result]
        return await NotificationService.send_push_notification(tokens, title, body, data)

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        data: NotificationCreate,
    ) -> NotificationRecord:
        """
        Persist an in-app notification.

        Args:
            db: Database session
            data: Notification content

        Returns:
            Stored notification
        """
        values = data.model_dump()
        values["type"] = data.type.value
        result = await db.execute(notifications.insert().values(**values))
        await db.commit()

        notification_id = result.inserted_primary_key[0]
        row = (
            await db.execute(select(notifications).where(notifications.c.id == notification_id))
        ).first()
        return NotificationRecord.model_validate(dict(row._mapping))

    @staticmethod
    async def list_notifications(
        db: AsyncSession,
        user_id: UUID,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> NotificationListResponse:
        """
        List notifications for an account, newest first.

        Args:
            db: Database session
            user_id: Account ID
            page: Page number
            limit: Items per page
            unread_only: Only return unread notifications

        Returns:
            Page of notifications with the unread count
        """
        conditions = [notifications.c.user_id == user_id]
        if unread_only:
            conditions.append(notifications.c.read.is_(False))

        total = (
            await db.execute(
                select(func.count()).select_from(notifications).where(and_(*conditions))
            )
        ).scalar() or 0

        rows = (
            await db.execute(
                select(notifications)
                .where(and_(*conditions))
                .order_by(notifications.c.created_at.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
        ).fetchall()

        return NotificationListResponse(
            items=[NotificationRecord.model_validate(dict(row._mapping)) for row in rows],
            unread_count=await NotificationService.get_unread_count(db, user_id),
            current_page=page,
            total_pages=(total + limit - 1) // limit,
            total_count=total,
        )

    @staticmethod
    async def get_unread_count(db: AsyncSession, user_id: UUID) -> int:
        """Number of unread notifications for an account."""
        result = await db.execute(
            select(func.count())
            .select_from(notifications)
            .where(notifications.c.user_id == user_id, notifications.c.read.is_(False))
        )
        return result.scalar() or 0

    @staticmethod
    async def mark_as_read(
        db: AsyncSession,
        user_id: UUID,
        notification_id: UUID,
    ) -> NotificationRecord:
        """
        Mark one notification read.

        Raises:
            NotFoundException: If the notification does not belong to the account
        """
        now = datetime.now(UTC)
        result = await db.execute(
            update(notifications)
            .where(notifications.c.id == notification_id, notifications.c.user_id == user_id)
            .values(read=True, read_at=now, updated_at=now)
        )
        if result.rowcount == 0:
            raise NotFoundException("Notification not found")
        await db.commit()

        row = (
            await db.execute(select(notifications).where(notifications.c.id == notification_id))
        ).first()
        return NotificationRecord.model_validate(dict(row._mapping))

    @staticmethod
    async def mark_all_as_read(db: AsyncSession, user_id: UUID) -> int:
        """Mark every unread notification read; returns how many changed."""
        now = datetime.now(UTC)
        result = await db.execute(
            update(notifications)
            .where(notifications.c.user_id == user_id, notifications.c.read.is_(False))
            .values(read=True, read_at=now, updated_at=now)
        )
        await db.commit()
        return result.rowcount

    @staticmethod
    async def delete_notification(
        db: AsyncSession,
        user_id: UUID,
        notification_id: UUID,
    ) -> None:
        """
        Delete one notification.

        Raises:
            NotFoundException: If the notification does not belong to the account
        """
        result = await db.execute(
            delete(notifications).where(
                notifications.c.id == notification_id,
                notifications.c.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundException("Notification not found")
        await db.commit()

    @staticmethod
    async def register_token(
        db: AsyncSession,
        user_id: UUID,
        fcm_token: str,
        platform: str,
    ) -> dict[str, Any]:
        """
        Register or refresh an FCM token for an account.

        Args:
            db: Database session
            user_id: Account ID
            fcm_token: FCM token
            platform: Platform (android, ios, web)

        Returns:
            Token record
        """
        now = datetime.now(UTC)

        # One active token per platform
        await db.execute(
            update(push_tokens)
            .where(
                push_tokens.c.user_id == user_id,
                push_tokens.c.platform == platform,
                push_tokens.c.fcm_token != fcm_token,
            )
            .values(is_active=False)
        )

        existing = (
            await db.execute(
                select(push_tokens.c.id).where(
                    push_tokens.c.user_id == user_id,
                    push_tokens.c.fcm_token == fcm_token,
                )
            )
        ).first()

        if existing:
            token_id = existing.id
            await db.execute(
                update(push_tokens)
                .where(push_tokens.c.id == token_id)
                .values(is_active=True, last_used_at=now, platform=platform)
            )
        else:
            result = await db.execute(
                push_tokens.insert().values(
                    user_id=user_id,
                    fcm_token=fcm_token,
                    platform=platform,
                    is_active=True,
                    last_used_at=now,
                )
            )
            token_id = result.inserted_primary_key[0]
        await db.commit()

        row = (await db.execute(select(push_tokens).where(push_tokens.c.id == token_id))).first()
        return dict(row._mapping)

    @staticmethod
    async def deactivate_token(
        db: AsyncSession,
        user_id: UUID,
        fcm_token: str,
    ) -> bool:
        """
        Deactivate a specific FCM token.

        Returns:
            True if token was deactivated
        """
        result = await db.execute(
            update(push_tokens)
            .where(
                push_tokens.c.user_id == user_id,
                push_tokens.c.fcm_token == fcm_token,
            )
            .values(is_active=False)
        )
        await db.commit()
        return result.rowcount > 0


class DatabaseNotificationRecorder:
    """Fire-and-forget notification persistence used by the realtime bus."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        """Initialize with a session factory; each record uses its own session."""
        self.session_factory = session_factory

    async def record(self, data: NotificationCreate) -> NotificationRecord | None:
        """
        Store a notification and mirror it to push devices.

        Failures are logged and swallowed.

        Returns:
            The stored record, or None if it could not be written
        """
        try:
            async with self.session_factory() as session:
                record = await NotificationService.create_notification(session, data)
                await NotificationService.push_to_user(
                    session,
                    data.user_id,
                    data.title,
                    data.message,
                    {"type": data.type.value, "appointment_id": str(data.appointment_id or "")},
                )
                await session.commit()
            return record
        except Exception as e:
            logger.warning(
                "notification_record_failed",
                user_id=str(data.user_id),
                type=data.type.value,
                error=str(e),
            )
            return None
