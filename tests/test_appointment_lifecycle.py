"""Tests for the appointment state machine."""

import asyncio
from datetime import UTC, date, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from app.core.exceptions import BadRequestException, ConflictException, NotFoundException
from app.models.appointments import approval_links, appointments
from app.schemas.appointments import (
    AppointmentBulkUpdate,
    AppointmentDetailsUpdate,
    AppointmentUpdate,
    CheckInRequest,
    CheckOutRequest,
)
from app.schemas.approval_links import ApprovalDecision
from app.services.directory_service import EmployeeDirectory

pytestmark = pytest.mark.asyncio


async def test_create_defaults_to_pending_with_approval_link(
    lifecycle, make_appointment, tenant, fetch, outbox
) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    assert created.status == "pending"
    assert created.approval_link.startswith("http://frontend.test/verify/")
    assert created.employee.name == "Priya Sharma"
    assert created.visitor.name == "Rahul Verma"
    assert created.appointment_details.duration == 60

    links = await fetch(select(approval_links).where(approval_links.c.appointment_id == created.id))
    assert len(links) == 1
    assert len(links[0]["token"]) == 64
    assert created.approval_link.endswith(links[0]["token"])

    intents = await outbox(created.id)
    assert [row["event"] for row in intents] == ["created"]
    assert intents[0]["payload"]["approval_link"] == created.approval_link


async def test_create_pre_approved_issues_no_link(
    lifecycle, make_appointment, tenant, fetch
) -> None:
    created = await lifecycle.create_appointment(
        make_appointment(status="approved"), tenant["tenant_id"]
    )

    assert created.status == "approved"
    assert created.approval_link is None
    assert await fetch(select(approval_links)) == []


async def test_create_for_inactive_employee_writes_nothing(
    lifecycle, make_appointment, tenant, fetch, outbox
) -> None:
    with pytest.raises(BadRequestException) as exc_info:
        await lifecycle.create_appointment(
            make_appointment(employee_id=tenant["inactive_employee_id"]), tenant["tenant_id"]
        )

    assert exc_info.value.message == "Employee is inactive. Please select an active employee."
    assert await fetch(select(appointments)) == []
    assert await outbox() == []


async def test_create_for_unknown_employee_or_visitor(lifecycle, make_appointment, tenant) -> None:
    with pytest.raises(NotFoundException) as exc_info:
        await lifecycle.create_appointment(make_appointment(employee_id=uuid4()), tenant["tenant_id"])
    assert exc_info.value.message == "Employee not found"

    with pytest.raises(NotFoundException) as exc_info:
        await lifecycle.create_appointment(make_appointment(visitor_id=uuid4()), tenant["tenant_id"])
    assert exc_info.value.message == "Visitor not found"


async def test_create_into_approved_slot_conflicts(lifecycle, make_appointment, tenant) -> None:
    await lifecycle.create_appointment(make_appointment(status="approved"), tenant["tenant_id"])

    with pytest.raises(ConflictException):
        await lifecycle.create_appointment(make_appointment(status="approved"), tenant["tenant_id"])
    with pytest.raises(ConflictException):
        await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])


async def test_concurrent_pre_approved_bookings_allow_one(
    lifecycle, make_appointment, tenant, fetch
) -> None:
    results = await asyncio.gather(
        *(
            lifecycle.create_appointment(make_appointment(status="approved"), tenant["tenant_id"])
            for _ in range(3)
        ),
        return_exceptions=True,
    )

    assert sum(not isinstance(result, Exception) for result in results) == 1
    assert all(isinstance(r, ConflictException) for r in results if isinstance(r, Exception))
    approved = await fetch(select(appointments).where(appointments.c.status == "approved"))
    assert len(approved) == 1


async def test_approve_and_reject_require_pending(lifecycle, make_appointment, tenant) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    approved = await lifecycle.approve(created.id)
    assert approved.status == "approved"

    with pytest.raises(BadRequestException) as exc_info:
        await lifecycle.approve(created.id)
    assert exc_info.value.message == "Only pending appointments can be approved"

    with pytest.raises(BadRequestException) as exc_info:
        await lifecycle.reject(created.id)
    assert exc_info.value.message == "Only pending appointments can be rejected"


async def test_approve_marks_link_used(lifecycle, make_appointment, tenant, fetch) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    await lifecycle.approve(created.id)

    (link,) = await fetch(select(approval_links))
    assert link["is_used"] is True
    assert link["used_at"] is not None


async def test_concurrent_decisions_have_one_winner(lifecycle, make_appointment, tenant) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    results = await asyncio.gather(
        lifecycle.approve(created.id),
        lifecycle.reject(created.id),
        lifecycle.approve(created.id),
        return_exceptions=True,
    )

    winners = [result for result in results if not isinstance(result, Exception)]
    losers = [result for result in results if isinstance(result, Exception)]
    assert len(winners) == 1
    assert len(losers) == 2
    assert all(isinstance(loser, BadRequestException) for loser in losers)


async def test_approve_does_not_recheck_conflicts(lifecycle, make_appointment, tenant) -> None:
    first = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])
    second = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    await lifecycle.approve(first.id)
    approved_second = await lifecycle.approve(second.id)

    assert approved_second.status == "approved"


async def test_update_into_approved_slot_conflicts(
    lifecycle, make_appointment, tenant
) -> None:
    await lifecycle.create_appointment(make_appointment(status="approved"), tenant["tenant_id"])
    other = await lifecycle.create_appointment(
        make_appointment(details={"scheduled_time": "14:00"}), tenant["tenant_id"]
    )

    with pytest.raises(ConflictException):
        await lifecycle.update_appointment(
            other.id,
            AppointmentUpdate(appointment_details=AppointmentDetailsUpdate(scheduled_time="10:30")),
        )


async def test_update_keeps_own_slot_and_status(lifecycle, make_appointment, tenant, outbox) -> None:
    created = await lifecycle.create_appointment(
        make_appointment(status="approved"), tenant["tenant_id"]
    )

    updated = await lifecycle.update_appointment(
        created.id,
        AppointmentUpdate(
            appointment_details=AppointmentDetailsUpdate(
                scheduled_time="10:30", purpose="Contract signing", meeting_room="Room 4"
            )
        ),
    )

    assert updated.status == "approved"
    assert updated.appointment_details.purpose == "Contract signing"
    assert updated.appointment_details.meeting_room == "Room 4"
    assert [row["event"] for row in await outbox(created.id)] == ["created", "updated"]


async def test_check_in_moves_pending_to_approved(lifecycle, make_appointment, tenant) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    checked_in = await lifecycle.check_in(
        CheckInRequest(appointment_id=created.id, badge_number="B-17", security_notes="Laptop")
    )

    assert checked_in.status == "approved"
    assert checked_in.check_in_time is not None
    assert checked_in.security_details.badge_issued is True
    assert checked_in.security_details.badge_number == "B-17"
    assert checked_in.security_details.security_notes == "Laptop"

    with pytest.raises(BadRequestException) as exc_info:
        await lifecycle.check_in(CheckInRequest(appointment_id=created.id))
    assert exc_info.value.message == "Appointment is not in pending status"


async def test_check_out_derives_whole_minutes(
    lifecycle, make_appointment, tenant, session_factory
) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])
    await lifecycle.check_in(CheckInRequest(appointment_id=created.id))

    async with session_factory() as session:
        await session.execute(
            update(appointments)
            .where(appointments.c.id == created.id)
            .values(check_in_time=datetime.now(UTC) - timedelta(minutes=42, seconds=50))
        )
        await session.commit()

    checked_out = await lifecycle.check_out(
        CheckOutRequest(appointment_id=created.id, notes="Left via gate 2")
    )

    assert checked_out.status == "completed"
    assert checked_out.check_out_time is not None
    assert checked_out.actual_duration == 42
    assert checked_out.appointment_details.notes == "Left via gate 2"


async def test_check_out_without_check_in_leaves_duration_unset(
    lifecycle, make_appointment, tenant
) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    checked_out = await lifecycle.check_out(CheckOutRequest(appointment_id=created.id))

    assert checked_out.status == "completed"
    assert checked_out.actual_duration is None


async def test_check_out_twice_is_rejected(lifecycle, make_appointment, tenant, fetch) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])
    await lifecycle.check_in(CheckInRequest(appointment_id=created.id))
    await lifecycle.check_out(CheckOutRequest(appointment_id=created.id))
    (before,) = await fetch(select(appointments).where(appointments.c.id == created.id))

    with pytest.raises(BadRequestException) as exc_info:
        await lifecycle.check_out(CheckOutRequest(appointment_id=created.id, notes="again"))

    assert exc_info.value.message == "Appointment is already checked out"
    (after,) = await fetch(select(appointments).where(appointments.c.id == created.id))
    assert after["check_out_time"] == before["check_out_time"]
    assert after["actual_duration"] == before["actual_duration"]
    assert after["notes"] == before["notes"]


async def test_check_in_retires_approval_link(lifecycle, make_appointment, tenant, fetch) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])
    token = created.approval_link.rsplit("/", 1)[1]

    await lifecycle.check_in(CheckInRequest(appointment_id=created.id))

    (link,) = await fetch(select(approval_links).where(approval_links.c.token == token))
    assert link["is_used"] is True
    resolved = await lifecycle.verify_link(token)
    assert resolved.is_used is True
    assert resolved.appointment is None


async def test_check_in_into_approved_slot_conflicts(
    lifecycle, make_appointment, tenant, fetch
) -> None:
    first = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])
    second = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])
    await lifecycle.approve(first.id)

    with pytest.raises(ConflictException):
        await lifecycle.check_in(CheckInRequest(appointment_id=second.id))

    (row,) = await fetch(select(appointments).where(appointments.c.id == second.id))
    assert row["status"] == "pending"
    assert row["check_in_time"] is None
    (link,) = await fetch(
        select(approval_links).where(approval_links.c.appointment_id == second.id)
    )
    assert link["is_used"] is False


async def test_update_locks_employee_before_slot_check(
    lifecycle, make_appointment, tenant, monkeypatch
) -> None:
    created = await lifecycle.create_appointment(
        make_appointment(status="approved"), tenant["tenant_id"]
    )
    locked = []
    unpatched = EmployeeDirectory.find_by_id

    async def recording_find_by_id(self, employee_id, for_update=False):
        if for_update:
            locked.append(employee_id)
        return await unpatched(self, employee_id, for_update=for_update)

    monkeypatch.setattr(EmployeeDirectory, "find_by_id", recording_find_by_id)

    await lifecycle.update_appointment(
        created.id,
        AppointmentUpdate(appointment_details=AppointmentDetailsUpdate(scheduled_time="11:00")),
    )

    assert locked == [tenant["employee_id"]]


async def test_cancel_guards_terminal_states(lifecycle, make_appointment, tenant) -> None:
    pending = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])
    approved = await lifecycle.create_appointment(
        make_appointment(status="approved", details={"scheduled_time": "15:00"}),
        tenant["tenant_id"],
    )

    assert (await lifecycle.cancel(pending.id)).status == "rejected"
    assert (await lifecycle.cancel(approved.id)).status == "rejected"

    with pytest.raises(BadRequestException) as exc_info:
        await lifecycle.cancel(pending.id)
    assert exc_info.value.message == "Appointment is already cancelled"

    completed = await lifecycle.create_appointment(
        make_appointment(details={"scheduled_time": "16:00"}), tenant["tenant_id"]
    )
    await lifecycle.check_out(CheckOutRequest(appointment_id=completed.id))
    with pytest.raises(BadRequestException) as exc_info:
        await lifecycle.cancel(completed.id)
    assert exc_info.value.message == "Cannot cancel a completed appointment"


async def test_soft_delete_and_restore_keep_status(lifecycle, make_appointment, tenant) -> None:
    created = await lifecycle.create_appointment(
        make_appointment(status="approved"), tenant["tenant_id"]
    )

    await lifecycle.soft_delete(created.id, tenant["tenant_id"])
    with pytest.raises(NotFoundException):
        await lifecycle.get_appointment(created.id)
    with pytest.raises(NotFoundException):
        await lifecycle.soft_delete(created.id, tenant["tenant_id"])

    restored = await lifecycle.restore(created.id)
    assert restored.status == "approved"
    assert restored.is_deleted is False
    assert restored.deleted_at is None

    with pytest.raises(NotFoundException) as exc_info:
        await lifecycle.restore(created.id)
    assert exc_info.value.message == "Deleted appointment not found"


async def test_scope_hides_other_tenants_and_other_employees(
    lifecycle, make_appointment, tenant, other_tenant, admin_account, employee_account
) -> None:
    created = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])

    assert (await lifecycle.get_appointment(created.id, admin_account)).id == created.id
    assert (await lifecycle.get_appointment(created.id, employee_account)).id == created.id

    outsider = admin_account.model_copy(update={"tenant_id": other_tenant["tenant_id"]})
    with pytest.raises(NotFoundException):
        await lifecycle.get_appointment(created.id, outsider)
    with pytest.raises(NotFoundException):
        await lifecycle.approve(created.id, account=outsider)

    with pytest.raises(NotFoundException):
        await lifecycle.create_appointment(
            make_appointment(employee_id=other_tenant["employee_id"]),
            tenant["tenant_id"],
            account=admin_account,
        )


async def test_bulk_update_reports_each_failure(lifecycle, make_appointment, tenant) -> None:

    pending = await lifecycle.create_appointment(make_appointment(), tenant["tenant_id"])
    approved = await lifecycle.create_appointment(
        make_appointment(status="approved", details={"scheduled_time": "09:00"}),
        tenant["tenant_id"],
    )
    missing = uuid4()

    result = await lifecycle.bulk_update(
        AppointmentBulkUpdate(appointment_ids=[pending.id, approved.id, missing], action="approve")
    )

    assert result.updated == [pending.id]
    failures = {failure.appointment_id: failure.message for failure in result.failed}
    assert failures == {
        approved.id: "Only pending appointments can be approved",
        missing: "Appointment not found",
    }


async def test_scenario_link_approval_then_replay(lifecycle, make_appointment, tenant) -> None:

    created = await lifecycle.create_appointment(
        make_appointment(details={"scheduled_date": date(2024, 1, 10), "scheduled_time": "10:00"}),
        tenant["tenant_id"],
    )
    token = created.approval_link.rsplit("/", 1)[1]

    decided = await lifecycle.respond_via_link(token, ApprovalDecision(status="approved"))
    assert decided.status == "approved"

    verification = await lifecycle.verify_link(token)
    assert verification.is_valid is True
    assert verification.is_used is True

    with pytest.raises(BadRequestException) as exc_info:
        await lifecycle.respond_via_link(token, ApprovalDecision(status="rejected"))
    assert exc_info.value.message == "Link expired or already used"
