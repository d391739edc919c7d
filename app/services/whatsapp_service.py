"""WhatsApp channel over the Cloud API or a custom gateway."""

from typing import Any

import httpx
import structlog

from app.config import settings
from app.schemas.tenant_settings import WhatsAppConfig
from app.services.message_templates import TemplateKind, render

logger = structlog.get_logger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"


def normalize_phone(phone: str) -> str:
    """Digits only, as both providers expect."""
    return "".join(ch for ch in phone if ch.isdigit())


class WhatsAppService:
    """Send templated WhatsApp text messages."""

    def __init__(self, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        """
        Initialize the sender.

        Args:
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.timeout = timeout or settings.whatsapp_timeout_seconds
        self.transport = transport
        self.default_config = WhatsAppConfig(
            provider="custom" if settings.whatsapp_api_url else "cloud",
            api_url=settings.whatsapp_api_url or None,
            api_key=settings.whatsapp_api_key or None,
            phone_number_id=settings.whatsapp_phone_number_id or None,
            access_token=settings.whatsapp_access_token or None,
            api_version=settings.whatsapp_api_version,
        )

    def _build_request(
        self, config: WhatsAppConfig, to: str, text: str
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        if config.provider == "custom":
            return (
                config.api_url or "",
                {"Authorization": f"Bearer {config.api_key}"},
                {"to": to, "message": text},
            )
        return (
            f"{GRAPH_API_BASE}/{config.api_version}/{config.phone_number_id}/messages",
            {"Authorization": f"Bearer {config.access_token}"},
            {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": text},
            },
        )

    async def send(
        self,
        to: str,
        kind: TemplateKind,
        args: dict[str, Any],
        config: WhatsAppConfig | None = None,
    ) -> bool:
        """
        Send one templated WhatsApp message.

        Args:
            to: Recipient phone number
            kind: Template to render
            args: Template values
            config: Tenant provider config; falls back to the default account

        Returns:
            True if the provider accepted the message
        """
        whatsapp = config if config and config.is_configured else self.default_config
        if not whatsapp.is_configured:
            logger.warning("whatsapp_not_configured", kind=kind.value)
            return False

        _, text = render(kind, args)
        url, headers, payload = self._build_request(whatsapp, normalize_phone(to), text)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.warning("whatsapp_send_failed", kind=kind.value, error=str(e))
            return False

        if response.is_success:
            logger.info("whatsapp_sent", kind=kind.value)
            return True

        logger.warning(
            "whatsapp_send_rejected",
            kind=kind.value,
            status_code=response.status_code,
            body=response.text[:200],
        )
        return False
