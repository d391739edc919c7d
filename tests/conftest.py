import os
from collections.abc import AsyncGenerator
from datetime import date, timedelta
from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///./.pytest-unused.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test/")
os.environ.setdefault("NOTIFICATION_WORKER_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.security import create_access_token
from app.database import enable_sqlite_immediate_transactions, get_db
from app.dependencies import get_dispatcher, verify_rate_limit
from app.main import app
from app.models import employees, metadata, notification_outbox, visitors
from app.schemas.accounts import Account, AccountRole
from app.schemas.appointments import AppointmentCreate
from app.services.appointment_service import AppointmentService
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.notification_service import DatabaseNotificationRecorder
from app.services.realtime import BROADCAST_ROOM, RealtimeEventBus


class RecordingTransport:
    """In-memory realtime transport that keeps every emission."""

    def __init__(self) -> None:
        self.emitted: list[tuple[str, str, dict[str, Any]]] = []

    async def emit_to_room(self, room: str, event: str, payload: dict[str, Any]) -> None:
        self.emitted.append((room, event, payload))

    async def emit_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        self.emitted.append((BROADCAST_ROOM, event, payload))

    def events_for(self, room: str) -> list[str]:
        return [event for target, event, _ in self.emitted if target == room]

    def clear(self) -> None:
        self.emitted.clear()


class LifecycleRunner:
    """Call ``AppointmentService`` methods, each in a fresh session.

    SQLite transactions take the write lock up front, so a session kept open
    between calls would block the dispatcher and concurrent callers.
    """

    def __init__(self, session_factory: async_sessionmaker, dispatcher: NotificationDispatcher):
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    def __getattr__(self, name: str) -> Any:
        async def call(*args: Any, **kwargs: Any) -> Any:
            async with self.session_factory() as session:
                service = AppointmentService(session, self.dispatcher)
                return await getattr(service, name)(*args, **kwargs)

        return call


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite database built from the shared metadata."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    enable_sqlite_immediate_transactions(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for direct service calls; close it before draining the outbox."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fetch(session_factory):
    """Run a query in a short-lived session and return all rows as dicts."""

    async def _fetch(stmt) -> list[dict[str, Any]]:
        async with session_factory() as session:
            rows = (await session.execute(stmt)).fetchall()
            return [dict(row._mapping) for row in rows]

    return _fetch


@pytest_asyncio.fixture
async def tenant(session_factory) -> dict[str, Any]:
    """Admin tenant with an active employee, an inactive employee and a visitor."""
    tenant_id = uuid4()
    employee_user_id = uuid4()
    employee_id = uuid4()
    inactive_employee_id = uuid4()
    visitor_id = uuid4()

    async with session_factory() as session:
        await session.execute(
            insert(employees).values(
                id=employee_id,
                tenant_id=tenant_id,
                user_id=employee_user_id,
                name="Priya Sharma",
                email="priya@acme.test",
                phone="+919876543210",
                department="Engineering",
                designation="Manager",
                status="Active",
            )
        )
        await session.execute(
            insert(employees).values(
                id=inactive_employee_id,
                tenant_id=tenant_id,
                name="Former Employee",
                email="former@acme.test",
                status="Inactive",
            )
        )
        await session.execute(
            insert(visitors).values(
                id=visitor_id,
                tenant_id=tenant_id,
                name="Rahul Verma",
                email="rahul@visitor.test",
                phone="+919812345678",
                company="Globex",
            )
        )
        await session.commit()

    return {
        "tenant_id": tenant_id,
        "employee_id": employee_id,
        "employee_user_id": employee_user_id,
        "inactive_employee_id": inactive_employee_id,
        "visitor_id": visitor_id,
    }


@pytest_asyncio.fixture
async def other_tenant(session_factory) -> dict[str, Any]:
    """A second tenant whose data must stay invisible to the first."""
    tenant_id = uuid4()
    employee_id = uuid4()
    visitor_id = uuid4()
    async with session_factory() as session:
        await session.execute(
            insert(employees).values(
                id=employee_id,
                tenant_id=tenant_id,
                user_id=uuid4(),
                name="Other Employee",
                email="other@initech.test",
                status="Active",
            )
        )
        await session.execute(
            insert(visitors).values(id=visitor_id, tenant_id=tenant_id, name="Other Visitor")
        )
        await session.commit()
    return {"tenant_id": tenant_id, "employee_id": employee_id, "visitor_id": visitor_id}


@pytest.fixture
def admin_account(tenant) -> Account:
    return Account(id=tenant["tenant_id"], role=AccountRole.ADMIN, tenant_id=tenant["tenant_id"])


@pytest.fixture
def employee_account(tenant) -> Account:
    return Account(
        id=tenant["employee_user_id"],
        role=AccountRole.EMPLOYEE,
        tenant_id=tenant["tenant_id"],
        employee_id=tenant["employee_id"],
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def senders() -> dict[str, AsyncMock]:
    """Channel senders that accept every message."""
    channels = {}
    for name in ("email", "whatsapp", "sms"):
        sender = AsyncMock()
        sender.send = AsyncMock(return_value=True)
        channels[name] = sender
    return channels


@pytest.fixture
def dispatcher(session_factory, senders, transport) -> NotificationDispatcher:
    realtime = RealtimeEventBus(transport, recorder=DatabaseNotificationRecorder(session_factory))
    return NotificationDispatcher(
        session_factory=session_factory,
        email=senders["email"],
        whatsapp=senders["whatsapp"],
        sms=senders["sms"],
        realtime=realtime,
        batch_size=10,
        poll_seconds=0.05,
    )


@pytest.fixture
def lifecycle(session_factory, dispatcher) -> LifecycleRunner:
    return LifecycleRunner(session_factory, dispatcher)


@pytest.fixture
def future_date() -> date:
    return date.today() + timedelta(days=7)


@pytest.fixture
def appointment_payload(tenant, future_date) -> dict[str, Any]:
    """JSON body for creating an appointment."""
    return {
        "employee_id": str(tenant["employee_id"]),
        "visitor_id": str(tenant["visitor_id"]),
        "appointment_details": {
            "purpose": "Quarterly review",
            "scheduled_date": future_date.isoformat(),
            "scheduled_time": "10:30",
            "duration": 45,
            "meeting_room": "Board Room",
        },
    }


@pytest_asyncio.fixture
async def client(session_factory, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test database and dispatcher."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[verify_rate_limit] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def bearer(claims: dict[str, Any]) -> dict[str, str]:
    token = create_access_token(data=claims, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_headers():
    """Build bearer headers for arbitrary token claims."""
    return bearer


@pytest.fixture
def admin_headers(tenant) -> dict[str, str]:
    """Authentication headers for the tenant admin."""
    return bearer(
        {"sub": str(tenant["tenant_id"]), "role": "admin", "tenant_id": str(tenant["tenant_id"])}
    )


@pytest.fixture
def employee_headers(tenant) -> dict[str, str]:
    """Authentication headers for the active employee."""
    return bearer(
        {
            "sub": str(tenant["employee_user_id"]),
            "role": "employee",
            "tenant_id": str(tenant["tenant_id"]),
            "employee_id": str(tenant["employee_id"]),
        }
    )


@pytest.fixture
def outbox(fetch):
    """Outbox rows, optionally for one appointment, oldest first."""

    async def _outbox(appointment_id: UUID | None = None) -> list[dict[str, Any]]:
        stmt = select(notification_outbox).order_by(notification_outbox.c.created_at)
        if appointment_id is not None:
            stmt = stmt.where(notification_outbox.c.appointment_id == appointment_id)
        return await fetch(stmt)

    return _outbox


@pytest.fixture
def make_appointment(tenant, future_date):
    """Build an ``AppointmentCreate`` for the tenant's active employee and visitor."""

    def _make(**overrides: Any) -> AppointmentCreate:
        details = {
            "purpose": "Quarterly review",
            "scheduled_date": future_date,
            "scheduled_time": "10:30",
        }
        details.update(overrides.pop("details", {}))
        data = {
            "employee_id": tenant["employee_id"],
            "visitor_id": tenant["visitor_id"],
            "appointment_details": details,
        }
        data.update(overrides)
        return AppointmentCreate.model_validate(data)

    return _make
