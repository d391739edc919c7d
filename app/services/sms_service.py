"""SMS channel via Twilio."""

import asyncio
from typing import Any

import structlog
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from app.config import settings
from app.services.message_templates import TemplateKind, render

logger = structlog.get_logger(__name__)


def format_phone_number(phone_number: str, default_country_code: str = "91") -> str:
    """
    Format a phone number to E.164.

    Args:
        phone_number: Phone number in any format
        default_country_code: Prefix for bare 10-digit numbers

    Returns:
        Number such as +911234567890, or "" for empty input
    """
    if not phone_number:
        return ""

    digits = "".join(filter(str.isdigit, phone_number))
    if phone_number.strip().startswith("+"):
        return f"+{digits}"
    if digits.startswith("0"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"+{default_country_code}{digits}"
    return f"+{digits}"


class SmsService:
    """Send templated SMS through Twilio."""

    def __init__(self, client: Client | None = None, timeout: float | None = None):
        """Initialize the Twilio client when credentials are configured."""
        self.from_number = settings.twilio_from_number
        self.client = client
        if self.client is None and settings.twilio_account_sid and settings.twilio_auth_token:
            self.client = Client(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                http_client=TwilioHttpClient(
                    timeout=timeout or settings.twilio_timeout_seconds
                ),
            )

    async def send(self, to: str, kind: TemplateKind, args: dict[str, Any]) -> bool:
        """
        Send one templated SMS.

        Args:
            to: Recipient phone number
            kind: Template to render
            args: Template values

        Returns:
            True if Twilio accepted the message
        """
        if self.client is None or not self.from_number:
            logger.warning("sms_not_configured", kind=kind.value)
            return False

        _, body = render(kind, args)
        try:
            message = await asyncio.to_thread(
                self.client.messages.create,
                to=format_phone_number(to),
                from_=self.from_number,
                body=body,
            )
        except TwilioException as e:
            logger.warning("sms_send_failed", kind=kind.value, error=str(e))
            return False

        logger.info("sms_sent", kind=kind.value, sid=message.sid)
        return True
