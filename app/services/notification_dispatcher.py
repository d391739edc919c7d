"""Outbox-backed notification fan-out.

Lifecycle operations write a ``NotificationIntent`` into the outbox in the
same transaction as the state change. The dispatcher drains committed
intents after the fact, so channel sends never hold a transaction open and a
rolled-back operation never sends anything.
"""

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from prometheus_client import Counter
from pydantic import BaseModel
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.appointments import appointments
from app.models.notifications import notification_outbox
from app.schemas.appointments import (
    ActionBy,
    AppointmentEvent,
    AppointmentResponse,
    AppointmentStatus,
)
from app.schemas.tenant_settings import (
    NotificationCategory,
    NotificationChannel,
    NotificationPreferences,
)
from app.services.directory_service import EmployeeDirectory, VisitorDirectory
from app.services.message_templates import TemplateKind
from app.services.realtime import RealtimeEventBus
from app.services.settings_service import SettingsService

logger = structlog.get_logger(__name__)

channel_attempts = Counter(
    "notification_channel_attempts_total",
    "Outbound notification attempts by channel and outcome",
    ["channel", "outcome"],
)


class NotificationIntent(BaseModel):
    """Everything the dispatcher needs to deliver one lifecycle event."""

    appointment_id: UUID
    tenant_id: UUID
    event: AppointmentEvent
    status: AppointmentStatus
    action_by: ActionBy = ActionBy.ADMIN
    preferences: NotificationPreferences = NotificationPreferences()
    approval_link: str | None = None
    send_channels: bool = True
    suppress_emails: bool = False
    show_notification: bool = True


@dataclass(frozen=True)
class ChannelMessage:
    """One planned channel attempt."""

    channel: NotificationChannel
    category: NotificationCategory
    to: str
    kind: TemplateKind


class NotificationOutbox:
    """Write side of the outbox."""

    @staticmethod
    async def enqueue(db: AsyncSession, intent: NotificationIntent) -> None:
        """
        Record an intent inside the caller's transaction.

        Args:
            db: Session of the running lifecycle operation
            intent: Intent to deliver once the transaction commits
        """
        await db.execute(
            notification_outbox.insert().values(
                appointment_id=intent.appointment_id,
                event=intent.event.value,
                payload=intent.model_dump(mode="json"),
            )
        )


def plan_channels(
    intent: NotificationIntent,
    employee: dict[str, Any] | None,
    visitor: dict[str, Any] | None,
) -> list[ChannelMessage]:
    """
    Decide which channel messages an intent produces.

    Only messages whose channel is enabled for the category and whose
    recipient has an address are returned.

    Args:
        intent: Notification intent
        employee: Employee row
        visitor: Visitor row

    Returns:
        Planned messages, at most one per channel
    """
    if not intent.send_channels:
        return []

    candidates: list[ChannelMessage] = []
    employee = employee or {}
    visitor = visitor or {}

    if intent.event is AppointmentEvent.CREATED:
        if intent.status is AppointmentStatus.PENDING and intent.approval_link:
            for channel, to in (
                (NotificationChannel.EMAIL, employee.get("email")),
                (NotificationChannel.WHATSAPP, employee.get("phone")),
            ):
                if to:
                    candidates.append(
                        ChannelMessage(
                            channel,
                            NotificationCategory.EMPLOYEE,
                            to,
                            TemplateKind.NEW_APPOINTMENT_REQUEST,
                        )
                    )
        elif intent.status is AppointmentStatus.APPROVED and employee.get("email"):
            candidates.append(
                ChannelMessage(
                    NotificationChannel.EMAIL,
                    NotificationCategory.APPOINTMENT,
                    employee["email"],
                    TemplateKind.APPOINTMENT_CONFIRMATION,
                )
            )
    elif intent.event in (AppointmentEvent.APPROVED, AppointmentEvent.REJECTED):
        email_kind = (
            TemplateKind.APPOINTMENT_APPROVED
            if intent.event is AppointmentEvent.APPROVED
            else TemplateKind.APPOINTMENT_REJECTED
        )
        for channel, to, kind in (
            (NotificationChannel.EMAIL, visitor.get("email"), email_kind),
            (NotificationChannel.WHATSAPP, visitor.get("phone"), TemplateKind.APPOINTMENT_STATUS_UPDATE),
            (NotificationChannel.SMS, visitor.get("phone"), TemplateKind.APPOINTMENT_STATUS_UPDATE),
        ):
            if to:
                candidates.append(ChannelMessage(channel, NotificationCategory.VISITOR, to, kind))

    return [
        message
        for message in candidates
        if not (intent.suppress_emails and message.channel is NotificationChannel.EMAIL)
        and intent.preferences.allows(message.channel, message.category)
    ]


class NotificationDispatcher:
    """Drain the outbox: channel fan-out, delivery flags and realtime events."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        email: Any,
        whatsapp: Any,
        sms: Any,
        realtime: RealtimeEventBus,
        batch_size: int | None = None,
        poll_seconds: float | None = None,
        claim_timeout_seconds: float | None = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            session_factory: Creates sessions independent of request sessions
            email: Email sender with ``send(to, kind, args, config)``
            whatsapp: WhatsApp sender with ``send(to, kind, args, config)``
            sms: SMS sender with ``send(to, kind, args)``
            realtime: Realtime event bus
            batch_size: Intents claimed per round
            poll_seconds: Idle wake-up interval of the background loop
            claim_timeout_seconds: Age after which an unfinished claim is failed
        """
        self.session_factory = session_factory
        self.email = email
        self.whatsapp = whatsapp
        self.sms = sms
        self.realtime = realtime
        self.batch_size = batch_size or settings.notification_worker_batch_size
        self.poll_seconds = poll_seconds or settings.notification_worker_poll_seconds
        self.claim_timeout = timedelta(
            seconds=claim_timeout_seconds or settings.notification_claim_timeout_seconds
        )
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._stopping = False

    def wake(self) -> None:
        """Signal that new intents were committed."""
        self._wakeup.set()

    async def start(self) -> None:
        """Run the drain loop in the background."""
        if self._task is None:
            self._stopping = False
            self._task = asyncio.create_task(self._run(), name="notification-dispatcher")
            logger.info("notification_dispatcher_started")

    async def stop(self) -> None:
        """Stop the drain loop after the current round."""
        if self._task is None:
            return
        self._stopping = True
        self._wakeup.set()
        try:
            await asyncio.wait_for(self._task, timeout=self.poll_seconds + 5)
        except TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("notification_dispatcher_stopped")

    async def _run(self) -> None:
        while not self._stopping:
            try:
                await self.drain()
            except Exception as e:
                logger.error("notification_drain_failed", error=str(e))
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_seconds)
            except TimeoutError:
                pass
            self._wakeup.clear()

    async def drain(self) -> int:
        """
        Process every committed pending intent.

        Returns:
            Number of intents processed
        """
        await self.sweep_stale_claims()
        processed = 0
        while True:
            batch = await self._claim_batch()
            if not batch:
                return processed
            for outbox_id, payload in batch:
                await self._process(outbox_id, payload)
                processed += 1

    async def sweep_stale_claims(self) -> int:
        """
        Fail intents left in ``processing`` by a worker that died mid-flight.

        Such intents are not retried; they are marked failed so they show up
        next to the other undeliverable ones.

        Returns:
            Number of intents marked failed
        """
        cutoff = datetime.now(UTC) - self.claim_timeout
        async with self.session_factory() as session:
            result = await session.execute(
                update(notification_outbox)
                .where(
                    and_(
                        notification_outbox.c.status == "processing",
                        notification_outbox.c.claimed_at < cutoff,
                    )
                )
                .values(
                    status="failed",
                    last_error="claim expired before completion",
                    processed_at=datetime.now(UTC),
                )
            )
            await session.commit()
        if result.rowcount:
            logger.warning("notification_claims_expired", count=result.rowcount)
        return result.rowcount

    async def _claim_batch(self) -> list[tuple[UUID, dict[str, Any]]]:
        claimed: list[tuple[UUID, dict[str, Any]]] = []
        async with self.session_factory() as session:
            rows = (
                await session.execute(
                    select(notification_outbox.c.id, notification_outbox.c.payload)
                    .where(notification_outbox.c.status == "pending")
                    .order_by(notification_outbox.c.created_at)
                    .limit(self.batch_size)
                )
            ).fetchall()
            for row in rows:
                result = await session.execute(
                    update(notification_outbox)
                    .where(
                        and_(
                            notification_outbox.c.id == row.id,
                            notification_outbox.c.status == "pending",
                        )
                    )
                    .values(
                        status="processing",
                        attempts=notification_outbox.c.attempts + 1,
                        claimed_at=datetime.now(UTC),
                    )
                )
                if result.rowcount == 1:
                    claimed.append((row.id, row.payload))
            await session.commit()
        return claimed

    async def _finish(self, outbox_id: UUID, status: str, error: str | None = None) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(notification_outbox)
                .where(notification_outbox.c.id == outbox_id)
                .values(status=status, last_error=error, processed_at=datetime.now(UTC))
            )
            await session.commit()

    async def _process(self, outbox_id: UUID, payload: dict[str, Any]) -> None:
        try:
            intent = NotificationIntent.model_validate(payload)
            await self.dispatch(intent)
        except Exception as e:
            logger.error("notification_intent_failed", outbox_id=str(outbox_id), error=str(e))
            await self._finish(outbox_id, "failed", str(e))
            return
        await self._finish(outbox_id, "done")

    async def _load_context(self, intent: NotificationIntent) -> dict[str, Any] | None:
        async with self.session_factory() as session:
            row = (
                await session.execute(
                    select(appointments).where(appointments.c.id == intent.appointment_id)
                )
            ).first()
            if row is None:
                return None
            appointment = dict(row._mapping)
            employee = await EmployeeDirectory(session).find_by_id(appointment["employee_id"])
            visitor = await VisitorDirectory(session).find_by_id(appointment["visitor_id"])
            settings_service = SettingsService(session)
            whatsapp_config = await settings_service.get_whatsapp_config(intent.tenant_id)
            smtp_config = await settings_service.get_smtp_config(intent.tenant_id)
            await session.commit()
        return {
            "appointment": appointment,
            "employee": employee,
            "visitor": visitor,
            "whatsapp_config": whatsapp_config,
            "smtp_config": smtp_config,
        }

    async def _attempt(self, message: ChannelMessage, args: dict[str, Any], context: dict[str, Any]) -> bool:
        try:
            if message.channel is NotificationChannel.EMAIL:
                sent = await self.email.send(message.to, message.kind, args, context["smtp_config"])
            elif message.channel is NotificationChannel.WHATSAPP:
                sent = await self.whatsapp.send(
                    message.to, message.kind, args, context["whatsapp_config"]
                )
            else:
                sent = await self.sms.send(message.to, message.kind, args)
        except Exception as e:
            logger.warning(
                "notification_channel_failed",
                channel=message.channel.value,
                kind=message.kind.value,
                error=str(e),
            )
            sent = False

        channel_attempts.labels(
            channel=message.channel.value, outcome="sent" if sent else "failed"
        ).inc()
        return bool(sent)

    async def dispatch(self, intent: NotificationIntent) -> dict[NotificationChannel, bool]:
        """
        Deliver one intent: one attempt per planned channel, flags, realtime.

        Args:
            intent: Intent to deliver

        Returns:
            Outcome per attempted channel

        Raises:
            LookupError: If the appointment no longer exists
        """
        context = await self._load_context(intent)
        if context is None:
            raise LookupError(f"Appointment {intent.appointment_id} not found")

        appointment = context["appointment"]
        employee = context["employee"]
        visitor = context["visitor"]
        args = {
            "visitor_name": (visitor or {}).get("name"),
            "employee_name": (employee or {}).get("name"),
            "purpose": appointment["purpose"],
            "scheduled_date": appointment["scheduled_date"].isoformat(),
            "scheduled_time": appointment["scheduled_time"],
            "status": intent.status.value,
            "approval_link": intent.approval_link,
        }

        outcomes: dict[NotificationChannel, bool] = {}
        for message in plan_channels(intent, employee, visitor):
            sent = await self._attempt(message, args, context)
            outcomes[message.channel] = outcomes.get(message.channel, False) or sent

        if outcomes:
            flags = {f"{channel.value}_sent": sent for channel, sent in outcomes.items()}
            async with self.session_factory() as session:
                await session.execute(
                    update(appointments)
                    .where(appointments.c.id == intent.appointment_id)
                    .values(**flags)
                )
                await session.commit()
            appointment.update(flags)

        await self.realtime.publish(
            intent.event,
            AppointmentResponse.from_row(appointment, employee, visitor).model_dump(mode="json"),
            action_by=intent.action_by,
            admin_id=(employee or {}).get("tenant_id") or intent.tenant_id,
            employee_user_id=(employee or {}).get("user_id"),
            show_notification=intent.show_notification,
            summary=args,
        )

        logger.info(
            "notification_intent_processed",
            appointment_id=str(intent.appointment_id),
            notification_event=intent.event.value,
            channels={channel.value: sent for channel, sent in outcomes.items()},
        )
        return outcomes
