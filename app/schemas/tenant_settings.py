"""Tenant notification settings schemas."""

from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NotificationChannel(str, Enum):
    """Outbound delivery channels."""

    EMAIL = "email"
    WHATSAPP = "whatsapp"
    SMS = "sms"


class NotificationCategory(str, Enum):
    """Who or what a message is about, used for per-category overrides."""

    VISITOR = "visitor"
    EMPLOYEE = "employee"
    APPOINTMENT = "appointment"


class NotificationPreferences(BaseModel):
    """
    Channel enablement for one tenant, resolved once per operation.

    A channel fires for a category only when its master switch is on and no
    override for that category turns it off.
    """

    model_config = ConfigDict(frozen=True)

    email_enabled: bool = True
    whatsapp_enabled: bool = True
    sms_enabled: bool = False
    overrides: dict[str, dict[str, bool]] = Field(default_factory=dict)

    def allows(self, channel: NotificationChannel, category: NotificationCategory) -> bool:
        """
        Check whether a channel may be used for a category.

        Args:
            channel: Delivery channel
            category: Message category

        Returns:
            True if the message may be sent
        """
        master = {
            NotificationChannel.EMAIL: self.email_enabled,
            NotificationChannel.WHATSAPP: self.whatsapp_enabled,
            NotificationChannel.SMS: self.sms_enabled,
        }[channel]
        if not master:
            return False
        return self.overrides.get(category.value, {}).get(channel.value, True)


class WhatsAppConfig(BaseModel):
    """Tenant WhatsApp provider credentials."""

    provider: Literal["cloud", "custom"] = "cloud"
    api_url: str | None = None
    api_key: str | None = None
    phone_number_id: str | None = None
    access_token: str | None = None
    api_version: str = "v18.0"

    @property
    def is_configured(self) -> bool:
        """Whether enough credentials exist to send."""
        if self.provider == "custom":
            return bool(self.api_url and self.api_key)
        return bool(self.phone_number_id and self.access_token)


class SmtpConfig(BaseModel):
    """Tenant SMTP override."""

    host: str
    port: int = Field(default=587, ge=1, le=65535)
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    from_email: str
    from_name: str | None = None


class SettingsUpdate(BaseModel):
    """Partial settings update."""

    email_enabled: bool | None = None
    whatsapp_enabled: bool | None = None
    sms_enabled: bool | None = None
    channel_overrides: dict[NotificationCategory, dict[NotificationChannel, bool]] | None = None
    whatsapp_config: WhatsAppConfig | None = None
    smtp_config: SmtpConfig | None = None


class SettingsResponse(BaseModel):
    """Tenant settings with credentials reduced to presence flags."""

    tenant_id: UUID
    email_enabled: bool
    whatsapp_enabled: bool
    sms_enabled: bool
    channel_overrides: dict[str, dict[str, bool]]
    whatsapp_configured: bool
    smtp_configured: bool
    updated_at: datetime
