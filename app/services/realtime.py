"""Realtime event routing: audience rules, rooms and transports."""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

import structlog

from app.config import settings
from app.schemas.appointments import ActionBy, AppointmentEvent
from app.schemas.notifications import NotificationCreate, NotificationRecord, NotificationType

logger = structlog.get_logger(__name__)

BROADCAST_ROOM = "broadcast"


class RealtimeEvent(str, Enum):
    """Event names clients subscribe to."""

    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_STATUS_CHANGED = "appointment_status_changed"
    APPOINTMENT_UPDATED = "appointment_updated"
    APPOINTMENT_DELETED = "appointment_deleted"
    NEW_NOTIFICATION = "new_notification"


class AudienceKind(str, Enum):
    """Row of the audience table an event falls under."""

    CREATED = "created"
    STATUS_CHANGE = "status_change"


def user_room(account_id: UUID | str) -> str:
    """Room every connection of an account joins."""
    return f"user_{account_id}"


def compute_audience(
    kind: AudienceKind,
    action_by: ActionBy,
    admin_id: UUID | None,
    employee_user_id: UUID | None,
) -> list[UUID]:
    """
    Decide which accounts hear about an action.

    The actor is never told about their own action. A visitor creating an
    appointment informs both internal parties; a visitor status change
    (approval link) routes like an admin action.

    Args:
        kind: Created or status change
        action_by: Who performed the action
        admin_id: Tenant admin account
        employee_user_id: Login account of the employee, if any

    Returns:
        Distinct account IDs, admin first
    """
    if action_by is ActionBy.EMPLOYEE:
        candidates = [admin_id]
    elif action_by is ActionBy.VISITOR and kind is AudienceKind.CREATED:
        candidates = [admin_id, employee_user_id]
    else:
        candidates = [employee_user_id]

    audience: list[UUID] = []
    for account_id in candidates:
        if account_id is not None and account_id not in audience:
            audience.append(account_id)
    return audience


# event -> (realtime event, audience row, notification type); None means refresh only
EVENT_ROUTES: dict[AppointmentEvent, tuple[RealtimeEvent, AudienceKind, NotificationType] | None] = {
    AppointmentEvent.CREATED: (
        RealtimeEvent.APPOINTMENT_CREATED,
        AudienceKind.CREATED,
        NotificationType.APPOINTMENT_CREATED,
    ),
    AppointmentEvent.APPROVED: (
        RealtimeEvent.APPOINTMENT_STATUS_CHANGED,
        AudienceKind.STATUS_CHANGE,
        NotificationType.APPOINTMENT_APPROVED,
    ),
    AppointmentEvent.REJECTED: (
        RealtimeEvent.APPOINTMENT_STATUS_CHANGED,
        AudienceKind.STATUS_CHANGE,
        NotificationType.APPOINTMENT_REJECTED,
    ),
    AppointmentEvent.CHECKED_IN: (
        RealtimeEvent.APPOINTMENT_STATUS_CHANGED,
        AudienceKind.STATUS_CHANGE,
        NotificationType.APPOINTMENT_STATUS_CHANGED,
    ),
    AppointmentEvent.CHECKED_OUT: (
        RealtimeEvent.APPOINTMENT_STATUS_CHANGED,
        AudienceKind.STATUS_CHANGE,
        NotificationType.APPOINTMENT_STATUS_CHANGED,
    ),
    AppointmentEvent.CANCELLED: (
        RealtimeEvent.APPOINTMENT_STATUS_CHANGED,
        AudienceKind.STATUS_CHANGE,
        NotificationType.APPOINTMENT_STATUS_CHANGED,
    ),
    AppointmentEvent.DELETED: (
        RealtimeEvent.APPOINTMENT_DELETED,
        AudienceKind.STATUS_CHANGE,
        NotificationType.APPOINTMENT_DELETED,
    ),
    AppointmentEvent.UPDATED: None,
    AppointmentEvent.RESTORED: None,
}


def describe(event: AppointmentEvent, summary: dict[str, Any]) -> tuple[str, str]:
    """Title and message of the in-app notification for an event."""
    visitor = summary.get("visitor_name") or "A visitor"
    when = f"{summary.get('scheduled_date')} {summary.get('scheduled_time')}"
    if event is AppointmentEvent.CREATED:
        return "New appointment", f"{visitor} has an appointment request for {when}"
    if event is AppointmentEvent.APPROVED:
        return "Appointment approved", f"Appointment with {visitor} on {when} was approved"
    if event is AppointmentEvent.REJECTED:
        return "Appointment rejected", f"Appointment with {visitor} on {when} was rejected"
    if event is AppointmentEvent.CANCELLED:
        return "Appointment cancelled", f"Appointment with {visitor} on {when} was cancelled"
    if event is AppointmentEvent.DELETED:
        return "Appointment deleted", f"Appointment with {visitor} on {when} was deleted"
    if event is AppointmentEvent.CHECKED_IN:
        return "Visitor checked in", f"{visitor} checked in for {when}"
    if event is AppointmentEvent.CHECKED_OUT:
        return "Visitor checked out", f"{visitor} checked out"
    return "Appointment updated", f"Appointment with {visitor} on {when} was updated"


class RealtimeTransport(Protocol):
    """Pub/sub backend delivering events to connected clients."""

    async def emit_to_room(self, room: str, event: str, payload: dict[str, Any]) -> None:
        """Deliver an event to every connection in a room."""

    async def emit_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver an event to every connection."""


class NotificationRecorder(Protocol):
    """Persists user-visible notifications."""

    async def record(self, data: NotificationCreate) -> NotificationRecord | None:
        """Store a notification; must not raise."""


class RedisRealtimeTransport:
    """Publish events on Redis channels, one per room."""

    def __init__(self, redis_client: Any, prefix: str | None = None):
        """
        Initialize transport.

        Args:
            redis_client: ``redis.asyncio.Redis`` instance
            prefix: Channel prefix, e.g. ``realtime:``
        """
        self.redis = redis_client
        self.prefix = prefix if prefix is not None else settings.realtime_channel_prefix

    def channel(self, room: str) -> str:
        """Redis channel of a room."""
        return f"{self.prefix}{room}"

    async def emit_to_room(self, room: str, event: str, payload: dict[str, Any]) -> None:
        """Publish to a room channel."""
        await self.redis.publish(
            self.channel(room), json.dumps({"event": event, "data": payload}, default=str)
        )

    async def emit_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        """Publish to the broadcast channel."""
        await self.emit_to_room(BROADCAST_ROOM, event, payload)


class RealtimeEventBus:
    """
    Route appointment events to account rooms.

    Every emission is best effort: transport or recorder failures are logged
    and never raised to the caller.
    """

    def __init__(self, transport: RealtimeTransport, recorder: NotificationRecorder | None = None):
        """Initialize with a transport and an optional notification recorder."""
        self.transport = transport
        self.recorder = recorder

    @staticmethod
    def envelope(
        event: RealtimeEvent, payload: dict[str, Any], show_notification: bool
    ) -> dict[str, Any]:
        """Wire format of every realtime message."""
        return {
            "type": event.value,
            "payload": payload,
            "timestamp": datetime.now(UTC).isoformat(),
            "show_notification": show_notification,
        }

    async def _emit(self, room: str, event: RealtimeEvent, message: dict[str, Any]) -> bool:
        try:
            await self.transport.emit_to_room(room, event.value, message)
            return True
        except Exception as e:
            logger.warning("realtime_emit_failed", room=room, event=event.value, error=str(e))
            return False

    async def _broadcast(self, event: RealtimeEvent, message: dict[str, Any]) -> bool:
        try:
            await self.transport.emit_broadcast(event.value, message)
            return True
        except Exception as e:
            logger.warning("realtime_broadcast_failed", event=event.value, error=str(e))
            return False

    async def publish(
        self,
        event: AppointmentEvent,
        appointment: dict[str, Any],
        *,
        action_by: ActionBy,
        admin_id: UUID | None,
        employee_user_id: UUID | None,
        show_notification: bool,
        summary: dict[str, Any] | None = None,
    ) -> list[UUID]:
        """
        Deliver one appointment event.

        Args:
            event: Lifecycle event
            appointment: JSON-ready appointment payload
            action_by: Who performed the action
            admin_id: Tenant admin account
            employee_user_id: Login account of the employee
            show_notification: Persist a notification and emit a toast event
            summary: Names and slot used for notification text

        Returns:
            Accounts targeted directly (the refresh broadcast is not included)
        """
        route = EVENT_ROUTES[event]
        audience: list[UUID] = []

        if route is not None:
            realtime_event, kind, notification_type = route
            audience = compute_audience(kind, action_by, admin_id, employee_user_id)
            message = self.envelope(
                realtime_event,
                {**appointment, "action_by": action_by.value, "event": event.value},
                show_notification,
            )
            for account_id in audience:
                await self._emit(user_room(account_id), realtime_event, message)

            if show_notification and self.recorder is not None:
                title, text = describe(event, summary or {})
                for account_id in audience:
                    await self._notify(account_id, notification_type, title, text, appointment)

        await self._broadcast(
            RealtimeEvent.APPOINTMENT_UPDATED,
            self.envelope(
                RealtimeEvent.APPOINTMENT_UPDATED,
                {"appointment_id": str(appointment.get("id")), "event": event.value},
                False,
            ),
        )
        return audience

    async def _notify(
        self,
        account_id: UUID,
        notification_type: NotificationType,
        title: str,
        text: str,
        appointment: dict[str, Any],
    ) -> None:
        appointment_id = appointment.get("id")
        try:
            record = await self.recorder.record(  # type: ignore[union-attr]
                NotificationCreate(
                    user_id=account_id,
                    type=notification_type,
                    title=title,
                    message=text,
                    appointment_id=appointment_id,
                    metadata={"status": appointment.get("status")},
                )
            )
        except Exception as e:
            logger.warning("notification_record_failed", user_id=str(account_id), error=str(e))
            return

        if record is not None:
            await self._emit(
                user_room(account_id),
                RealtimeEvent.NEW_NOTIFICATION,
                self.envelope(
                    RealtimeEvent.NEW_NOTIFICATION, record.model_dump(mode="json"), True
                ),
            )
