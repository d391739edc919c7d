"""Tests for the double-booking predicate."""

from datetime import timedelta

import pytest

from app.core.exceptions import ConflictException
from app.services.conflict_checker import ConflictChecker


async def test_pending_appointment_does_not_block_slot(
    lifecycle, make_appointment, session_factory, tenant, future_date
) -> None:
    await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    async with session_factory() as session:
        checker = ConflictChecker(session)
        assert not await checker.has_conflict(tenant["employee_id"], future_date, "10:30")


async def test_approved_appointment_blocks_same_slot_only(
    lifecycle, make_appointment, session_factory, tenant, future_date
) -> None:
    await lifecycle.create_appointment(make_appointment(status="approved"), tenant["tenant_id"])

    async with session_factory() as session:
        checker = ConflictChecker(session)
        assert await checker.has_conflict(tenant["employee_id"], future_date, "10:30")
        # Overlapping but different start times are not compared
        assert not await checker.has_conflict(tenant["employee_id"], future_date, "10:45")
        assert not await checker.has_conflict(
            tenant["employee_id"], future_date + timedelta(days=1), "10:30"
        )
        assert not await checker.has_conflict(tenant["inactive_employee_id"], future_date, "10:30")


async def test_exclude_id_ignores_the_appointment_itself(
    lifecycle, make_appointment, session_factory, tenant, future_date
) -> None:
    created = await lifecycle.create_appointment(
        make_appointment(status="approved"), tenant["tenant_id"]
    )

    async with session_factory() as session:
        checker = ConflictChecker(session)
        assert not await checker.has_conflict(
            tenant["employee_id"], future_date, "10:30", exclude_id=created.id
        )


async def test_deleted_and_rejected_appointments_free_the_slot(
    lifecycle, make_appointment, session_factory, tenant, future_date
) -> None:
    first = await lifecycle.create_appointment(
        make_appointment(status="approved"), tenant["tenant_id"]
    )
    await lifecycle.soft_delete(first.id, tenant["tenant_id"])

    second = await lifecycle.create_appointment(
        make_appointment(status="approved"), tenant["tenant_id"]
    )
    await lifecycle.cancel(second.id)

    async with session_factory() as session:
        assert not await ConflictChecker(session).has_conflict(
            tenant["employee_id"], future_date, "10:30"
        )


async def test_ensure_available_raises_conflict(
    lifecycle, make_appointment, session_factory, tenant, future_date
) -> None:
    await lifecycle.create_appointment(make_appointment(status="approved"), tenant["tenant_id"])

    async with session_factory() as session:
        with pytest.raises(ConflictException) as exc_info:
            await ConflictChecker(session).ensure_available(
                tenant["employee_id"], future_date, "10:30"
            )

    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Employee already has an appointment at this time"
