"""Tests for the appointment and approval-link HTTP API."""

from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import insert

from app.models import employees

pytestmark = pytest.mark.asyncio

BASE = "/api/v1/appointments"


async def create(client: AsyncClient, headers, payload, **overrides) -> dict:
    response = await client.post(BASE, json={**payload, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def test_create_returns_envelope_with_link(client, admin_headers, appointment_payload):
    response = await client.post(BASE, json=appointment_payload, headers=admin_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["statusCode"] == 201
    assert body["message"] == "Appointment created successfully"
    assert body["data"]["status"] == "pending"
    assert body["data"]["approval_link"].startswith("http://frontend.test/verify/")
    assert body["data"]["appointment_details"]["duration"] == 45
    assert body["data"]["employee"]["email"] == "priya@acme.test"
    assert body["data"]["notifications"] == {
        "email_sent": False,
        "whatsapp_sent": False,
        "sms_sent": False,
        "reminder_sent": False,
    }


async def test_requests_without_token_are_rejected(client):
    response = await client.get(BASE)

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "message": "Not authenticated",
        "statusCode": 401,
        "error": "UnauthorizedException",
    }


async def test_invalid_token_is_rejected(client):
    response = await client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["message"] == "Could not validate credentials"


async def test_validation_errors_use_error_envelope(client, admin_headers, appointment_payload):
    payload = {**appointment_payload}
    payload["appointment_details"] = {**payload["appointment_details"], "scheduled_time": "25:00"}

    response = await client.post(BASE, json=payload, headers=admin_headers)

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "ValidationError"
    assert body["details"]


async def test_conflict_maps_to_409(client, admin_headers, appointment_payload):
    await create(client, admin_headers, appointment_payload, status="approved")

    response = await client.post(
        BASE, json={**appointment_payload, "status": "approved"}, headers=admin_headers
    )

    assert response.status_code == 409
    assert response.json()["message"] == "Employee already has an appointment at this time"


async def test_employee_cannot_book_for_colleague(
    client, tenant, employee_headers, appointment_payload, session_factory
):
    colleague_id = uuid4()
    async with session_factory() as session:
        await session.execute(
            insert(employees).values(
                id=colleague_id,
                tenant_id=tenant["tenant_id"],
                name="Colleague",
                email="colleague@acme.test",
                status="Active",
            )
        )
        await session.commit()

    response = await client.post(
        BASE,
        json={**appointment_payload, "employee_id": str(colleague_id)},
        headers=employee_headers,
    )

    assert response.status_code == 403
    assert response.json()["message"] == "Access denied to this appointment"


async def test_approve_then_approve_again(client, admin_headers, appointment_payload):
    created = await create(client, admin_headers, appointment_payload)

    first = await client.post(f"{BASE}/{created['id']}/approve", headers=admin_headers)
    second = await client.post(f"{BASE}/{created['id']}/approve", headers=admin_headers)

    assert first.status_code == 200
    assert first.json()["data"]["status"] == "approved"
    assert second.status_code == 400
    assert second.json()["message"] == "Only pending appointments can be approved"


async def test_other_tenant_sees_not_found(
    client, other_tenant, admin_headers, appointment_payload, make_headers
):
    created = await create(client, admin_headers, appointment_payload)
    outsider = make_headers(
        {
            "sub": str(other_tenant["tenant_id"]),
            "role": "admin",
            "tenant_id": str(other_tenant["tenant_id"]),
        }
    )

    response = await client.get(f"{BASE}/{created['id']}", headers=outsider)

    assert response.status_code == 404
    assert response.json()["message"] == "Appointment not found"


async def test_list_filters_and_paginates(client, admin_headers, appointment_payload, future_date):
    for time in ("09:00", "10:00", "11:00"):
        details = {**appointment_payload["appointment_details"], "scheduled_time": time}
        await create(client, admin_headers, {**appointment_payload, "appointment_details": details})

    response = await client.get(
        BASE,
        params={
            "status": "pending",
            "start_date": future_date.isoformat(),
            "end_date": future_date.isoformat(),
            "sort_by": "scheduled_date",
            "limit": 2,
        },
        headers=admin_headers,
    )

    data = response.json()["data"]
    assert response.status_code == 200
    assert len(data["items"]) == 2
    assert data["total_count"] == 3
    assert data["total_pages"] == 2
    assert data["has_next_page"] is True
    assert data["has_prev_page"] is False


async def test_search_matches_visitor_and_escapes_wildcards(
    client, admin_headers, appointment_payload
):
    await create(client, admin_headers, appointment_payload)

    by_name = await client.post(f"{BASE}/search", json={"query": "rahul"}, headers=admin_headers)
    by_department = await client.post(
        f"{BASE}/search", json={"query": "ENGINEER"}, headers=admin_headers
    )
    wildcard = await client.post(f"{BASE}/search", json={"query": "%"}, headers=admin_headers)

    assert by_name.json()["data"]["total_count"] == 1
    assert by_department.json()["data"]["total_count"] == 1
    assert wildcard.json()["data"]["total_count"] == 0


async def test_stats_and_calendar(client, admin_headers, appointment_payload, future_date):
    created = await create(client, admin_headers, appointment_payload)
    await client.post(f"{BASE}/{created['id']}/approve", headers=admin_headers)

    stats = (await client.get(f"{BASE}/stats", headers=admin_headers)).json()["data"]
    assert stats["total"] == 1
    assert stats["approved"] == 1
    assert stats["upcoming"] == 1
    assert stats["today"] == 0

    calendar = await client.get(
        f"{BASE}/calendar",
        params={"start_date": future_date.isoformat(), "end_date": future_date.isoformat()},
        headers=admin_headers,
    )
    (day,) = calendar.json()["data"]["days"]
    assert day["day"] == future_date.isoformat()
    assert [item["id"] for item in day["appointments"]] == [created["id"]]

    missing = await client.get(f"{BASE}/calendar", headers=admin_headers)
    assert missing.status_code == 400
    assert missing.json()["message"] == "Start date and end date are required"


async def test_check_in_and_check_out(client, admin_headers, appointment_payload):
    created = await create(client, admin_headers, appointment_payload)

    checked_in = await client.post(
        f"{BASE}/check-in",
        json={"appointment_id": created["id"], "badge_number": "V-7"},
        headers=admin_headers,
    )
    checked_out = await client.post(
        f"{BASE}/check-out", json={"appointment_id": created["id"]}, headers=admin_headers
    )

    assert checked_in.json()["data"]["status"] == "approved"
    assert checked_in.json()["data"]["security_details"]["badge_number"] == "V-7"
    assert checked_out.json()["data"]["status"] == "completed"
    assert checked_out.json()["data"]["actual_duration"] == 0


async def test_delete_restore_round(client, admin_headers, appointment_payload):
    created = await create(client, admin_headers, appointment_payload)

    deleted = await client.delete(f"{BASE}/{created['id']}", headers=admin_headers)
    hidden = await client.get(f"{BASE}/{created['id']}", headers=admin_headers)
    restored = await client.put(f"{BASE}/{created['id']}/restore", headers=admin_headers)

    assert deleted.json() == {
        "success": True,
        "message": "Appointment deleted successfully",
        "data": None,
        "statusCode": 200,
    }
    assert hidden.status_code == 404
    assert restored.json()["data"]["status"] == "pending"


async def test_bulk_update_reports_failures(client, admin_headers, appointment_payload):
    created = await create(client, admin_headers, appointment_payload)
    missing = str(uuid4())

    response = await client.put(
        f"{BASE}/bulk-update",
        json={"appointment_ids": [created["id"], missing], "action": "reject"},
        headers=admin_headers,
    )

    data = response.json()["data"]
    assert response.json()["message"] == "1 appointments updated"
    assert data["updated"] == [created["id"]]
    assert data["failed"] == [{"appointment_id": missing, "message": "Appointment not found"}]


async def test_approval_link_endpoints(client, admin_headers, appointment_payload):
    created = await create(client, admin_headers, appointment_payload)
    token = created["approval_link"].rsplit("/", 1)[1]

    link = await client.get(f"{BASE}/{created['id']}/approval-link", headers=admin_headers)
    assert link.json()["data"] == {
        "token": token,
        "link": created["approval_link"],
        "is_used": False,
    }

    resolved = await client.get(f"/api/v1/verify/{token}")
    assert resolved.json()["data"]["is_valid"] is True
    assert resolved.json()["data"]["appointment"]["visitor"]["name"] == "Rahul Verma"

    decided = await client.post(f"/api/v1/verify/{token}", json={"status": "rejected"})
    assert decided.status_code == 200
    assert decided.json()["message"] == "Appointment rejected successfully"
    assert decided.json()["data"]["status"] == "rejected"

    replay = await client.post(f"/api/v1/verify/{token}", json={"status": "approved"})
    assert replay.status_code == 400
    assert replay.json()["message"] == "Link expired or already used"


async def test_unknown_token_resolves_invalid(client):
    resolved = await client.get(f"/api/v1/verify/{'a' * 64}")
    decided = await client.post(f"/api/v1/verify/{'a' * 64}", json={"status": "approved"})

    assert resolved.status_code == 200
    assert resolved.json()["data"] == {"is_valid": False, "is_used": False, "appointment": None}
    assert decided.status_code == 404


async def test_health_endpoints(client):
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"]
