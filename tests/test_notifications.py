"""Tests for notification inbox and push token endpoints."""

from unittest.mock import patch
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import insert, select

from app.models.notifications import notifications
from app.models.push_tokens import push_tokens
from app.schemas.notifications import NotificationCreate, NotificationType
from app.services.notification_service import DatabaseNotificationRecorder

URL = "/api/v1/notifications"


@pytest.fixture
async def inbox(session_factory, tenant) -> list:
    """Two unread notifications for the employee account, one for someone else."""
    ids = [uuid4(), uuid4(), uuid4()]
    owners = [tenant["employee_user_id"], tenant["employee_user_id"], uuid4()]
    async with session_factory() as session:
        for notification_id, owner in zip(ids, owners, strict=True):
            await session.execute(
                insert(notifications).values(
                    id=notification_id,
                    user_id=owner,
                    type="appointment_created",
                    title="New appointment",
                    message="Rahul Verma has an appointment request",
                )
            )
        await session.commit()
    return ids


@pytest.mark.asyncio
async def test_list_and_count_only_own_notifications(
    client: AsyncClient, employee_headers: dict, inbox: list
) -> None:
    """Test listing notifications of the calling account."""
    response = await client.get(URL, headers=employee_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total_count"] == 2
    assert data["unread_count"] == 2
    assert {item["id"] for item in data["items"]} == {str(inbox[0]), str(inbox[1])}

    count = await client.get(f"{URL}/unread-count", headers=employee_headers)
    assert count.json()["data"] == {"unread_count": 2}


@pytest.mark.asyncio
async def test_mark_read_and_read_all(
    client: AsyncClient, employee_headers: dict, inbox: list
) -> None:
    """Test marking notifications read."""
    response = await client.patch(f"{URL}/{inbox[0]}/read", headers=employee_headers)

    assert response.status_code == 200
    assert response.json()["data"]["read"] is True
    assert response.json()["data"]["read_at"] is not None

    unread = await client.get(URL, params={"unread_only": True}, headers=employee_headers)
    assert [item["id"] for item in unread.json()["data"]["items"]] == [str(inbox[1])]

    await client.patch(f"{URL}/read-all", headers=employee_headers)
    count = await client.get(f"{URL}/unread-count", headers=employee_headers)
    assert count.json()["data"]["unread_count"] == 0


@pytest.mark.asyncio
async def test_foreign_notification_is_not_found(
    client: AsyncClient, employee_headers: dict, inbox: list
) -> None:
    """Test that another account's notification cannot be touched."""
    read = await client.patch(f"{URL}/{inbox[2]}/read", headers=employee_headers)
    deleted = await client.delete(f"{URL}/{inbox[2]}", headers=employee_headers)

    assert read.status_code == 404
    assert deleted.status_code == 404
    assert deleted.json()["message"] == "Notification not found"


@pytest.mark.asyncio
async def test_delete_notification(
    client: AsyncClient, employee_headers: dict, inbox: list, fetch
) -> None:
    """Test deleting a notification."""
    response = await client.delete(f"{URL}/{inbox[0]}", headers=employee_headers)

    assert response.status_code == 200
    remaining = await fetch(select(notifications.c.id))
    assert {row["id"] for row in remaining} == {inbox[1], inbox[2]}


@pytest.mark.asyncio
async def test_register_fcm_token_replaces_platform_token(
    client: AsyncClient, employee_headers: dict, tenant, fetch
) -> None:
    """Test registering FCM tokens keeps one active token per platform."""
    first = await client.post(
        f"{URL}/register-token",
        json={"fcm_token": "token_one", "platform": "android"},
        headers=employee_headers,
    )
    second = await client.post(
        f"{URL}/register-token",
        json={"fcm_token": "token_two", "platform": "android"},
        headers=employee_headers,
    )

    assert first.status_code == 201
    assert second.json()["data"]["fcm_token"] == "token_two"
    assert second.json()["data"]["is_active"] is True

    rows = await fetch(select(push_tokens).order_by(push_tokens.c.fcm_token))
    assert [(row["fcm_token"], row["is_active"]) for row in rows] == [
        ("token_one", False),
        ("token_two", True),
    ]
    assert {row["user_id"] for row in rows} == {tenant["employee_user_id"]}


@pytest.mark.asyncio
async def test_deactivate_fcm_token(client: AsyncClient, employee_headers: dict, fetch) -> None:
    """Test deactivating an FCM token."""
    payload = {"fcm_token": "token_logout", "platform": "web"}
    await client.post(f"{URL}/register-token", json=payload, headers=employee_headers)

    response = await client.request(
        "DELETE", f"{URL}/deactivate-token", json=payload, headers=employee_headers
    )

    assert response.status_code == 200
    (row,) = await fetch(select(push_tokens))
    assert row["is_active"] is False


@pytest.mark.asyncio
async def test_invalid_platform_is_rejected(client: AsyncClient, employee_headers: dict) -> None:
    response = await client.post(
        f"{URL}/register-token",
        json={"fcm_token": "token", "platform": "blackberry"},
        headers=employee_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_recorder_stores_and_pushes(session_factory, tenant, fetch) -> None:
    """Test the realtime recorder persists and mirrors to push devices."""
    async with session_factory() as session:
        await session.execute(
            insert(push_tokens).values(
                user_id=tenant["employee_user_id"], fcm_token="device", platform="ios"
            )
        )
        await session.commit()

    recorder = DatabaseNotificationRecorder(session_factory)
    with (
        patch("app.services.notification_service.is_firebase_initialized", return_value=True),
        patch(
            "app.services.notification_service.NotificationService.send_push_notification",
            return_value=(1, 0),
        ) as send_push,
    ):
        record = await recorder.record(
            NotificationCreate(
                user_id=tenant["employee_user_id"],
                type=NotificationType.APPOINTMENT_APPROVED,
                title="Appointment approved",
                message="Appointment with Rahul Verma was approved",
            )
        )

    assert record is not None
    assert record.type is NotificationType.APPOINTMENT_APPROVED
    tokens, title, _, data = send_push.await_args.args
    assert tokens == ["device"]
    assert title == "Appointment approved"
    assert data["type"] == "appointment_approved"
    assert len(await fetch(select(notifications))) == 1


@pytest.mark.asyncio
async def test_recorder_swallows_failures(session_factory) -> None:
    recorder = DatabaseNotificationRecorder(session_factory)

    with patch(
        "app.services.notification_service.NotificationService.create_notification",
        side_effect=RuntimeError("database unavailable"),
    ):
        record = await recorder.record(
            NotificationCreate(user_id=uuid4(), title="Hello", message="World")
        )

    assert record is None
