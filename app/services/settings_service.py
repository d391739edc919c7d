"""Per-tenant notification settings."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.settings import tenant_settings
from app.schemas.tenant_settings import (
    NotificationPreferences,
    SettingsResponse,
    SettingsUpdate,
    SmtpConfig,
    WhatsAppConfig,
)

logger = structlog.get_logger(__name__)


class SettingsService:
    """Read and update tenant settings, creating defaults on first access."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _get_or_create(self, tenant_id: UUID) -> dict[str, Any]:
        row = (
            await self.db.execute(
                select(tenant_settings).where(tenant_settings.c.tenant_id == tenant_id)
            )
        ).first()
        if row:
            return dict(row._mapping)

        try:
            async with self.db.begin_nested():
                await self.db.execute(tenant_settings.insert().values(tenant_id=tenant_id))
            logger.info("tenant_settings_created", tenant_id=str(tenant_id))
        except IntegrityError:
            # Created concurrently by another request
            pass
        row = (
            await self.db.execute(
                select(tenant_settings).where(tenant_settings.c.tenant_id == tenant_id)
            )
        ).first()
        return dict(row._mapping)

    async def get_settings(self, tenant_id: UUID) -> SettingsResponse:
        """
        Get settings for a tenant.

        Args:
            tenant_id: Tenant (admin account) ID

        Returns:
            Settings with credential presence flags
        """
        row = await self._get_or_create(tenant_id)
        await self.db.commit()
        return self._to_response(row)

    async def update_settings(self, tenant_id: UUID, data: SettingsUpdate) -> SettingsResponse:
        """
        Update settings for a tenant.

        Args:
            tenant_id: Tenant (admin account) ID
            data: Fields to change

        Returns:
            Updated settings
        """
        await self._get_or_create(tenant_id)

        values: dict[str, Any] = {}
        for field in ("email_enabled", "whatsapp_enabled", "sms_enabled"):
            value = getattr(data, field)
            if value is not None:
                values[field] = value
        if data.channel_overrides is not None:
            values["channel_overrides"] = {
                category.value: {channel.value: flag for channel, flag in channels.items()}
                for category, channels in data.channel_overrides.items()
            }
        if data.whatsapp_config is not None:
            values["whatsapp_config"] = data.whatsapp_config.model_dump()
        if data.smtp_config is not None:
            values["smtp_config"] = data.smtp_config.model_dump()

        if values:
            values["updated_at"] = datetime.now(UTC)
            await self.db.execute(
                update(tenant_settings)
                .where(tenant_settings.c.tenant_id == tenant_id)
                .values(**values)
            )
        await self.db.commit()
        logger.info("tenant_settings_updated", tenant_id=str(tenant_id), fields=sorted(values))

        return await self.get_settings(tenant_id)

    async def get_whatsapp_config(self, tenant_id: UUID) -> WhatsAppConfig:
        """Tenant WhatsApp credentials, or an unconfigured default."""
        row = await self._get_or_create(tenant_id)
        return WhatsAppConfig.model_validate(row["whatsapp_config"] or {})

    async def get_smtp_config(self, tenant_id: UUID) -> SmtpConfig | None:
        """Tenant SMTP override, if one is set."""
        row = await self._get_or_create(tenant_id)
        if not row["smtp_config"]:
            return None
        return SmtpConfig.model_validate(row["smtp_config"])

    async def resolve_preferences(self, tenant_id: UUID) -> NotificationPreferences:
        """
        Snapshot channel enablement for one lifecycle operation.

        Args:
            tenant_id: Tenant (admin account) ID

        Returns:
            Immutable preferences passed down to the dispatcher
        """
        row = await self._get_or_create(tenant_id)
        return NotificationPreferences(
            email_enabled=row["email_enabled"],
            whatsapp_enabled=row["whatsapp_enabled"],
            sms_enabled=row["sms_enabled"],
            overrides=row["channel_overrides"] or {},
        )

    @staticmethod
    def _to_response(row: dict[str, Any]) -> SettingsResponse:
        whatsapp = WhatsAppConfig.model_validate(row["whatsapp_config"] or {})
        return SettingsResponse(
            tenant_id=row["tenant_id"],
            email_enabled=row["email_enabled"],
            whatsapp_enabled=row["whatsapp_enabled"],
            sms_enabled=row["sms_enabled"],
            channel_overrides=row["channel_overrides"] or {},
            whatsapp_configured=whatsapp.is_configured,
            smtp_configured=bool(row["smtp_config"]),
            updated_at=row["updated_at"],
        )
