"""
HTTP-level tests for the tenant and booking endpoints.

Requests go through the ASGI app in-process; the database dependency is
overridden to use the per-test SQLite database.
"""

from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from app.database import get_db
from app.main import app

from conftest import create_tenant


@pytest_asyncio.fixture
async def client(session_maker):
    async def _get_test_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _tenant(session_maker):
    # Short-lived session so no transaction stays open on the shared database
    async with session_maker() as session:
        return await create_tenant(session)


def _booking(**overrides):
    body = {
        "customer_name": "Jane Doe",
        "customer_phone": "+15550001111",
        "appointment_date": "2025-06-02",
        "appointment_time": "10:00",
    }
    body.update(overrides)
    return body


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestTenantHeader:
    @pytest.mark.asyncio
    async def test_missing_header(self, client):
        response = await client.get("/api/v1/booking/slots", params={"date": "2025-06-02"})
        assert response.status_code == 400
        assert "X-Tenant-ID" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_malformed_header(self, client):
        response = await client.get(
            "/api/v1/booking/slots",
            params={"date": "2025-06-02"},
            headers={"X-Tenant-ID": "not-a-uuid"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_tenant_is_404(self, client):
        response = await client.get(
            "/api/v1/booking/slots",
            params={"date": "2025-06-02"},
            headers={"X-Tenant-ID": str(uuid4())},
        )
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestTenants:
    @pytest.mark.asyncio
    async def test_create_and_connect_backend(self, client):
        response = await client.post("/api/v1/tenants", json={"name": "Acme Dental"})
        assert response.status_code == 201
        tenant = response.json()
        assert tenant["business_hours_start"] == "09:00:00"
        assert tenant["active_weekdays"] == [0, 1, 2, 3, 4]

        response = await client.put(
            f"/api/v1/tenants/{tenant['id']}/credentials/ghl",
            json={"secret_bundle": {"api_key": "k", "location_id": "l"}, "calendar_id": "cal-9"},
        )
        assert response.status_code == 200
        assert "secret_bundle" not in response.json()

        response = await client.get(
            "/api/v1/booking/config", headers={"X-Tenant-ID": tenant["id"]}
        )
        assert response.status_code == 200
        assert response.json()["system_of_record"] == "ghl"
        assert response.json()["connected_backends"] == ["ghl"]

    @pytest.mark.asyncio
    async def test_unknown_backend_kind_rejected(self, client):
        response = await client.post("/api/v1/tenants", json={"name": "Acme"})
        tenant_id = response.json()["id"]

        response = await client.put(
            f"/api/v1/tenants/{tenant_id}/credentials/outlook",
            json={"secret_bundle": {}},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_refused_while_appointments_exist(self, client, session_maker):
        tenant = await _tenant(session_maker)
        headers = {"X-Tenant-ID": str(tenant.id)}
        booked = (
            await client.post("/api/v1/booking/appointments", json=_booking(), headers=headers)
        ).json()
        await client.post(f"/api/v1/booking/appointments/{booked['appointment_id']}/cancel", headers=headers)

        response = await client.delete(f"/api/v1/tenants/{tenant.id}")

        assert response.status_code == 409
        response = await client.get(
            f"/api/v1/booking/appointments/by-code/{booked['confirmation_code']}", headers=headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_delete_tenant_without_appointments(self, client):
        tenant_id = (await client.post("/api/v1/tenants", json={"name": "Acme"})).json()["id"]

        response = await client.delete(f"/api/v1/tenants/{tenant_id}")

        assert response.status_code == 204
        assert (await client.get(f"/api/v1/tenants/{tenant_id}")).status_code == 404


class TestBooking:
    @pytest.mark.asyncio
    async def test_book_lookup_cancel(self, client, session_maker):
        tenant = await _tenant(session_maker)
        headers = {"X-Tenant-ID": str(tenant.id)}

        response = await client.post("/api/v1/booking/appointments", json=_booking(), headers=headers)
        assert response.status_code == 201
        booked = response.json()
        assert booked["success"] is True
        assert booked["system"] == "local"

        response = await client.get(
            "/api/v1/booking/slots/check",
            params={"date": "2025-06-02", "time": "10:00"},
            headers=headers,
        )
        assert response.json()["available"] is False

        response = await client.get(
            f"/api/v1/booking/appointments/by-code/{booked['confirmation_code'].lower()}",
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["id"] == booked["appointment_id"]

        response = await client.post(
            f"/api/v1/booking/appointments/{booked['appointment_id']}/cancel", headers=headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_taken_slot_is_409(self, client, session_maker):
        tenant = await _tenant(session_maker)
        headers = {"X-Tenant-ID": str(tenant.id)}

        await client.post("/api/v1/booking/appointments", json=_booking(), headers=headers)
        response = await client.post(
            "/api/v1/booking/appointments",
            json=_booking(customer_name="John Roe", customer_phone="555"),
            headers=headers,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "slot_conflict"

    @pytest.mark.asyncio
    async def test_invalid_body_is_422(self, client, session_maker):
        tenant = await _tenant(session_maker)

        response = await client.post(
            "/api/v1/booking/appointments",
            json=_booking(customer_email="not-an-email"),
            headers={"X-Tenant-ID": str(tenant.id)},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_sync_provenance_cannot_be_claimed(self, client, session_maker):
        tenant = await _tenant(session_maker)

        response = await client.post(
            "/api/v1/booking/appointments",
            json=_booking(source="ghl_sync"),
            headers={"X-Tenant-ID": str(tenant.id)},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_sync_range_validated(self, client, session_maker):
        tenant = await _tenant(session_maker)

        response = await client.post(
            "/api/v1/booking/sync",
            json={"start_date": "2025-06-10", "end_date": "2025-06-01"},
            headers={"X-Tenant-ID": str(tenant.id)},
        )

        assert response.status_code == 422
