"""Tests for tenant notification settings and verify-endpoint rate limiting."""

from unittest.mock import MagicMock

import pytest
import redis
from httpx import AsyncClient

from app.core.redis_client import RateLimiter
from app.dependencies import verify_rate_limit
from app.main import app
from app.schemas.tenant_settings import (
    NotificationCategory,
    NotificationChannel,
    NotificationPreferences,
)

URL = "/api/v1/settings"


@pytest.mark.asyncio
async def test_defaults_created_on_first_read(client: AsyncClient, admin_headers: dict, tenant):
    response = await client.get(URL, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["tenant_id"] == str(tenant["tenant_id"])
    assert data["email_enabled"] is True
    assert data["whatsapp_enabled"] is True
    assert data["sms_enabled"] is False
    assert data["whatsapp_configured"] is False
    assert data["smtp_configured"] is False


@pytest.mark.asyncio
async def test_update_hides_credentials(client: AsyncClient, admin_headers: dict):
    response = await client.put(
        URL,
        json={
            "sms_enabled": True,
            "channel_overrides": {"visitor": {"whatsapp": False}},
            "whatsapp_config": {"phone_number_id": "1234", "access_token": "secret-token"},
        },
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["sms_enabled"] is True
    assert data["channel_overrides"] == {"visitor": {"whatsapp": False}}
    assert data["whatsapp_configured"] is True
    assert "secret-token" not in response.text


@pytest.mark.asyncio
async def test_settings_are_admin_only(client: AsyncClient, employee_headers: dict):
    response = await client.get(URL, headers=employee_headers)

    assert response.status_code == 403
    assert response.json()["message"] == "Admin access required"


def test_preferences_master_switch_and_overrides():
    prefs = NotificationPreferences(
        email_enabled=False, overrides={"employee": {"whatsapp": False}}
    )

    assert not prefs.allows(NotificationChannel.EMAIL, NotificationCategory.VISITOR)
    assert not prefs.allows(NotificationChannel.WHATSAPP, NotificationCategory.EMPLOYEE)
    assert prefs.allows(NotificationChannel.WHATSAPP, NotificationCategory.VISITOR)
    assert not prefs.allows(NotificationChannel.SMS, NotificationCategory.VISITOR)


def test_rate_limiter_counts_within_window():
    mock_redis = MagicMock()
    limiter = RateLimiter(redis_client=mock_redis)

    mock_redis.get.return_value = None
    assert limiter.check_rate_limit("rate_limit:verify:1.2.3.4", limit=2) is True
    mock_redis.setex.assert_called_once_with("rate_limit:verify:1.2.3.4", 60, 1)

    mock_redis.get.return_value = "1"
    assert limiter.check_rate_limit("rate_limit:verify:1.2.3.4", limit=2) is True
    mock_redis.incr.assert_called_once_with("rate_limit:verify:1.2.3.4")

    mock_redis.get.return_value = "2"
    assert limiter.check_rate_limit("rate_limit:verify:1.2.3.4", limit=2) is False


def test_rate_limiter_fails_open():
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("down")

    assert RateLimiter(redis_client=mock_redis).check_rate_limit("key", limit=1) is True


@pytest.mark.asyncio
async def test_verify_endpoint_returns_429_when_limited(client: AsyncClient):
    limited_redis = MagicMock()
    limited_redis.get.return_value = "1000"
    app.dependency_overrides[verify_rate_limit] = lambda: verify_rate_limit(
        MagicMock(client=MagicMock(host="10.0.0.1")), limited_redis
    )

    response = await client.get(f"/api/v1/verify/{'b' * 64}")

    assert response.status_code == 429
    assert response.json()["error"] == "RateLimitException"
    limited_redis.get.assert_called_once_with("rate_limit:verify:10.0.0.1")
