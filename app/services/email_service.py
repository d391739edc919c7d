"""SMTP email channel."""

import asyncio
import smtplib
from email.mime.text import MIMEText
from typing import Any

import structlog

from app.config import settings
from app.schemas.tenant_settings import SmtpConfig
from app.services.message_templates import TemplateKind, render

logger = structlog.get_logger(__name__)


class EmailService:
    """Send templated emails over SMTP.

    The blocking smtplib session runs in a worker thread with a socket
    timeout so a slow server never stalls the event loop.
    """

    def __init__(self, timeout: float | None = None):
        """Initialize with the default SMTP account from settings."""
        self.timeout = timeout or settings.smtp_timeout_seconds
        self.default_config = (
            SmtpConfig(
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                use_tls=settings.smtp_use_tls,
                from_email=settings.smtp_from_email,
                from_name=settings.smtp_from_name,
            )
            if settings.smtp_host
            else None
        )

    def _deliver(self, config: SmtpConfig, to: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain", "utf-8")
        sender = config.from_email
        msg["From"] = f"{config.from_name} <{sender}>" if config.from_name else sender
        msg["To"] = to
        msg["Subject"] = subject

        if config.port == 465:
            server: smtplib.SMTP = smtplib.SMTP_SSL(config.host, config.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(config.host, config.port, timeout=self.timeout)
        with server:
            if config.use_tls and config.port != 465:
                server.starttls()
            if config.username and config.password:
                server.login(config.username, config.password)
            server.sendmail(sender, [to], msg.as_string())

    async def send(
        self,
        to: str,
        kind: TemplateKind,
        args: dict[str, Any],
        config: SmtpConfig | None = None,
    ) -> bool:
        """
        Send one templated email.

        Args:
            to: Recipient address
            kind: Template to render
            args: Template values
            config: Tenant SMTP override; falls back to the default account

        Returns:
            True if the SMTP server accepted the message
        """
        smtp = config or self.default_config
        if smtp is None:
            logger.warning("email_not_configured", kind=kind.value)
            return False

        subject, body = render(kind, args)
        try:
            await asyncio.to_thread(self._deliver, smtp, to, subject, body)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("email_send_failed", kind=kind.value, error=str(e))
            return False

        logger.info("email_sent", kind=kind.value)
        return True
