"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

import redis
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ForbiddenException,
    RateLimitException,
    UnauthorizedException,
)
from app.core.redis_client import RateLimiter, get_async_redis_client, get_redis_client
from app.core.security import decode_access_token
from app.database import AsyncSessionLocal, get_db
from app.schemas.accounts import Account
from app.services.email_service import EmailService
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.notification_service import DatabaseNotificationRecorder
from app.services.realtime import RealtimeEventBus, RedisRealtimeTransport
from app.services.sms_service import SmsService
from app.services.whatsapp_service import WhatsAppService

# Security
security = HTTPBearer(auto_error=False)


def account_from_token(token: str) -> Account:
    """
    Resolve the calling account from a JWT access token.

    The token carries ``sub`` (account ID), ``role``, ``tenant_id`` and, for
    employees, ``employee_id``.

    Raises:
        UnauthorizedException: If the token is invalid, expired or incomplete
    """
    payload = decode_access_token(token)
    if payload is None:
        raise UnauthorizedException("Could not validate credentials")

    try:
        account = Account(
            id=payload.get("sub"),
            role=payload.get("role"),
            tenant_id=payload.get("tenant_id"),
            employee_id=payload.get("employee_id"),
        )
    except ValidationError:
        raise UnauthorizedException("Could not validate credentials")

    if not account.is_admin and account.employee_id is None:
        raise UnauthorizedException("Employee account is not linked to an employee")
    return account


async def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Account:
    """
    Extract and validate the calling account from the bearer token.

    Raises:
        UnauthorizedException: If no token is sent or it cannot be validated
    """
    if credentials is None:
        raise UnauthorizedException("Not authenticated")
    return account_from_token(credentials.credentials)


async def get_admin_account(
    account: Annotated[Account, Depends(get_current_account)],
) -> Account:
    """Require an admin account."""
    if not account.is_admin:
        raise ForbiddenException("Admin access required")
    return account


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """Process-wide notification dispatcher."""
    realtime = RealtimeEventBus(
        RedisRealtimeTransport(get_async_redis_client(), settings.realtime_channel_prefix),
        recorder=DatabaseNotificationRecorder(AsyncSessionLocal),
    )
    return NotificationDispatcher(
        session_factory=AsyncSessionLocal,
        email=EmailService(),
        whatsapp=WhatsAppService(),
        sms=SmsService(),
        realtime=realtime,
    )


def verify_rate_limit(
    request: Request,
    redis_client: Annotated[redis.Redis, Depends(get_redis_client)],
) -> None:
    """
    Rate limit the public approval-link endpoints per client IP.

    Raises:
        RateLimitException: If the client exceeded the per-minute budget
    """
    client = request.client.host if request.client else "unknown"
    limiter = RateLimiter(redis_client)
    if not limiter.check_rate_limit(
        f"rate_limit:verify:{client}", settings.verify_rate_limit_per_minute
    ):
        raise RateLimitException()


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentAccount = Annotated[Account, Depends(get_current_account)]
AdminAccount = Annotated[Account, Depends(get_admin_account)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
