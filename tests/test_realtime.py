"""Tests for realtime audience routing and the event bus."""

import json
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from app.schemas.appointments import ActionBy, AppointmentEvent
from app.schemas.notifications import NotificationRecord, NotificationType
from app.services.realtime import (
    AudienceKind,
    RealtimeEventBus,
    RedisRealtimeTransport,
    compute_audience,
    user_room,
)

ADMIN = uuid4()
EMPLOYEE_USER = uuid4()


@pytest.mark.parametrize(
    ("kind", "action_by", "expected"),
    [
        (AudienceKind.CREATED, ActionBy.ADMIN, [EMPLOYEE_USER]),
        (AudienceKind.CREATED, ActionBy.EMPLOYEE, [ADMIN]),
        (AudienceKind.CREATED, ActionBy.VISITOR, [ADMIN, EMPLOYEE_USER]),
        (AudienceKind.STATUS_CHANGE, ActionBy.ADMIN, [EMPLOYEE_USER]),
        (AudienceKind.STATUS_CHANGE, ActionBy.EMPLOYEE, [ADMIN]),
        (AudienceKind.STATUS_CHANGE, ActionBy.VISITOR, [EMPLOYEE_USER]),
    ],
)
def test_compute_audience(kind, action_by, expected):
    assert compute_audience(kind, action_by, ADMIN, EMPLOYEE_USER) == expected


def test_compute_audience_skips_missing_and_duplicate_accounts():
    assert compute_audience(AudienceKind.CREATED, ActionBy.ADMIN, ADMIN, None) == []
    assert compute_audience(AudienceKind.CREATED, ActionBy.VISITOR, ADMIN, ADMIN) == [ADMIN]


class FakeRecorder:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.recorded = []

    async def record(self, data):
        if self.fail:
            return None
        self.recorded.append(data)
        return NotificationRecord(
            id=uuid4(),
            user_id=data.user_id,
            type=data.type,
            title=data.title,
            message=data.message,
            read=False,
            read_at=None,
            appointment_id=data.appointment_id,
            metadata=data.metadata,
            created_at="2026-01-01T00:00:00Z",
        )


def appointment_payload() -> dict:
    return {"id": str(uuid4()), "status": "approved"}


@pytest.mark.asyncio
async def test_publish_routes_to_rooms_and_records_notifications(transport):
    recorder = FakeRecorder()
    bus = RealtimeEventBus(transport, recorder)
    payload = appointment_payload()

    audience = await bus.publish(
        AppointmentEvent.APPROVED,
        payload,
        action_by=ActionBy.EMPLOYEE,
        admin_id=ADMIN,
        employee_user_id=EMPLOYEE_USER,
        show_notification=True,
        summary={"visitor_name": "Rahul Verma", "scheduled_date": "2026-01-10", "scheduled_time": "10:00"},
    )

    assert audience == [ADMIN]
    assert transport.events_for(user_room(ADMIN)) == [
        "appointment_status_changed",
        "new_notification",
    ]
    assert transport.events_for(user_room(EMPLOYEE_USER)) == []

    _, _, message = transport.emitted[0]
    assert message["type"] == "appointment_status_changed"
    assert message["show_notification"] is True
    assert message["payload"]["id"] == payload["id"]
    assert message["payload"]["action_by"] == "employee"
    assert "timestamp" in message

    (stored,) = recorder.recorded
    assert stored.type is NotificationType.APPOINTMENT_APPROVED
    assert stored.title == "Appointment approved"
    assert "Rahul Verma" in stored.message

    _, event, refresh = transport.emitted[-1]
    assert event == "appointment_updated"
    assert refresh["payload"] == {"appointment_id": payload["id"], "event": "approved"}


@pytest.mark.asyncio
async def test_publish_without_notification_skips_recorder(transport):
    recorder = FakeRecorder()
    bus = RealtimeEventBus(transport, recorder)

    await bus.publish(
        AppointmentEvent.CHECKED_IN,
        appointment_payload(),
        action_by=ActionBy.ADMIN,
        admin_id=ADMIN,
        employee_user_id=EMPLOYEE_USER,
        show_notification=False,
    )

    assert recorder.recorded == []
    assert transport.events_for(user_room(EMPLOYEE_USER)) == ["appointment_status_changed"]


@pytest.mark.asyncio
async def test_update_events_only_refresh(transport):
    bus = RealtimeEventBus(transport, FakeRecorder())

    audience = await bus.publish(
        AppointmentEvent.UPDATED,
        appointment_payload(),
        action_by=ActionBy.ADMIN,
        admin_id=ADMIN,
        employee_user_id=EMPLOYEE_USER,
        show_notification=True,
    )

    assert audience == []
    assert [event for _, event, _ in transport.emitted] == ["appointment_updated"]


@pytest.mark.asyncio
async def test_failed_recording_emits_no_toast(transport):
    bus = RealtimeEventBus(transport, FakeRecorder(fail=True))

    await bus.publish(
        AppointmentEvent.CREATED,
        appointment_payload(),
        action_by=ActionBy.VISITOR,
        admin_id=ADMIN,
        employee_user_id=EMPLOYEE_USER,
        show_notification=True,
    )

    assert transport.events_for(user_room(ADMIN)) == ["appointment_created"]
    assert transport.events_for(user_room(EMPLOYEE_USER)) == ["appointment_created"]


@pytest.mark.asyncio
async def test_transport_failures_are_swallowed():
    transport = AsyncMock()
    transport.emit_to_room.side_effect = ConnectionError("redis gone")
    transport.emit_broadcast.side_effect = ConnectionError("redis gone")
    bus = RealtimeEventBus(transport)

    audience = await bus.publish(
        AppointmentEvent.DELETED,
        appointment_payload(),
        action_by=ActionBy.ADMIN,
        admin_id=ADMIN,
        employee_user_id=EMPLOYEE_USER,
        show_notification=True,
    )

    assert audience == [EMPLOYEE_USER]
    transport.emit_broadcast.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_transport_publishes_json_per_room():
    redis_client = AsyncMock()
    transport = RedisRealtimeTransport(redis_client, prefix="realtime:")

    await transport.emit_to_room("user_42", "appointment_created", {"type": "appointment_created"})
    await transport.emit_broadcast("appointment_updated", {"type": "appointment_updated"})

    first, second = redis_client.publish.await_args_list
    assert first.args[0] == "realtime:user_42"
    assert json.loads(first.args[1]) == {
        "event": "appointment_created",
        "data": {"type": "appointment_created"},
    }
    assert second.args[0] == "realtime:broadcast"
