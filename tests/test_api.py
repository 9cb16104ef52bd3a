"""
Integration tests for the PitStop HTTP API.
Covers tenant scoping, confirmation of destructive operations and the pipeline
automation driven by appointments and service orders.
"""

import pytest
from decimal import Decimal
from fastapi import status
from httpx import AsyncClient


async def _column_id(client: AsyncClient, headers: dict, key: str) -> int:
    response = await client.get("/api/pipeline/columns", headers=headers)
    return next(c["id"] for c in response.json() if c["key"] == key)


async def _create_lead(client: AsyncClient, headers: dict, **fields) -> dict:
    payload = {"name": "Ana Souza", **fields}
    response = await client.post("/api/leads", json=payload, headers=headers)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


async def _create_unit(client: AsyncClient, headers: dict) -> dict:
    response = await client.post("/api/settings/units", json={"name": "Main Street"}, headers=headers)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


@pytest.mark.integration
class TestInfraAPI:
    """Test health endpoints and tenant resolution."""

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "ok"

    async def test_database_health(self, client: AsyncClient):
        response = await client.get("/api/health/db")

        assert response.status_code == status.HTTP_200_OK
        checks = response.json()["checks"]
        assert checks["connectivity"]["status"] == "pass"
        assert checks["schema"]["missing_tables"] == []

    async def test_database_ready(self, client: AsyncClient):
        response = await client.get("/api/health/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"ready": True}

    async def test_unhealthy_database_is_not_ready(self, client: AsyncClient, monkeypatch):
        from app.core.database import db_manager

        async def unhealthy(session):
            return {"status": "unhealthy", "checks": {}}

        monkeypatch.setattr(db_manager, "check_database_health", unhealthy)

        response = await client.get("/api/health/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["detail"]["type"] == "not_ready"

    async def test_unknown_organization_is_not_found(self, client: AsyncClient, organization):
        response = await client.get("/api/leads", headers={"X-Organization-ID": "999"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["type"] == "not_found"

    async def test_default_organization_is_used_without_header(self, client: AsyncClient, organization):
        response = await client.get("/api/pipeline/columns")

        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()) == 11


@pytest.mark.integration
class TestPipelineAPI:
    """Test kanban column endpoints."""

    async def test_column_lifecycle(self, client: AsyncClient, tenant_headers):
        created = await client.post(
            "/api/pipeline/columns", json={"name": "Follow Up", "color": "pink"}, headers=tenant_headers
        )
        assert created.status_code == status.HTTP_201_CREATED
        column = created.json()
        assert column["order"] == 11
        assert column["key"] is None

        edited = await client.patch(
            f"/api/pipeline/columns/{column['id']}", json={"name": "Call Back"}, headers=tenant_headers
        )
        assert edited.status_code == status.HTTP_200_OK
        assert edited.json()["name"] == "Call Back"
        assert edited.json()["color"] == "pink"

    async def test_invalid_color_is_rejected(self, client: AsyncClient, tenant_headers):
        response = await client.post(
            "/api/pipeline/columns", json={"name": "Follow Up", "color": "teal"}, headers=tenant_headers
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_delete_requires_confirmation(self, client: AsyncClient, tenant_headers):
        column_id = await _column_id(client, tenant_headers, "qualification")

        unconfirmed = await client.delete(f"/api/pipeline/columns/{column_id}", headers=tenant_headers)
        assert unconfirmed.status_code == status.HTTP_428_PRECONDITION_REQUIRED
        assert unconfirmed.json()["detail"]["type"] == "confirmation_required"

        columns = await client.get("/api/pipeline/columns", headers=tenant_headers)
        assert len(columns.json()) == 11

        confirmed = await client.delete(
            f"/api/pipeline/columns/{column_id}", params={"confirm": "true"}, headers=tenant_headers
        )
        assert confirmed.status_code == status.HTTP_200_OK
        assert confirmed.json() == {"deleted": True, "id": column_id}

        columns = (await client.get("/api/pipeline/columns", headers=tenant_headers)).json()
        assert len(columns) == 10
        assert [c["order"] for c in columns] == list(range(10))

    async def test_reorder(self, client: AsyncClient, tenant_headers):
        columns = (await client.get("/api/pipeline/columns", headers=tenant_headers)).json()
        ids = [c["id"] for c in columns]

        response = await client.post(
            "/api/pipeline/columns/reorder",
            json={"dragged_id": ids[10], "target_id": ids[0]},
            headers=tenant_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert [c["id"] for c in response.json()] == [ids[10]] + ids[:10]

    async def test_columns_of_other_organizations_are_hidden(self, client: AsyncClient, tenant_headers):
        other = await client.post("/api/organizations", json={"name": "Other Shop"})
        assert other.status_code == status.HTTP_201_CREATED
        other_headers = {"X-Organization-ID": str(other.json()["id"])}
        foreign_column = await _column_id(client, other_headers, "prospect")

        response = await client.patch(
            f"/api/pipeline/columns/{foreign_column}", json={"name": "Hijacked"}, headers=tenant_headers
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.integration
class TestLeadsAPI:
    """Test lead endpoints."""

    async def test_create_and_get_lead(self, client: AsyncClient, tenant_headers):
        lead = await _create_lead(client, tenant_headers, car_plate="ABC1D23")

        assert lead["column_id"] == await _column_id(client, tenant_headers, "prospect")
        assert lead["history"][0]["type"] == "creation"
        assert lead["history"][0]["user_id"] == 7

        fetched = await client.get(f"/api/leads/{lead['id']}", headers=tenant_headers)
        assert fetched.status_code == status.HTTP_200_OK
        assert fetched.json()["car_plate"] == "ABC1D23"

    async def test_create_lead_requires_name(self, client: AsyncClient, tenant_headers):
        response = await client.post("/api/leads", json={"phone": "555"}, headers=tenant_headers)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_update_rejects_column_change(self, client: AsyncClient, tenant_headers):
        lead = await _create_lead(client, tenant_headers)

        response = await client.patch(f"/api/leads/{lead['id']}", json={"column_id": 3}, headers=tenant_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_update_records_edit(self, client: AsyncClient, tenant_headers):
        lead = await _create_lead(client, tenant_headers)

        response = await client.patch(f"/api/leads/{lead['id']}", json={"phone": "555-0101"}, headers=tenant_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["history"][0]["type"] == "edit"
        assert response.json()["history"][0]["description"] == "Lead details updated: phone"

    async def test_move_lead(self, client: AsyncClient, tenant_headers):
        lead = await _create_lead(client, tenant_headers)
        proposal = await _column_id(client, tenant_headers, "proposal")

        moved = await client.post(f"/api/leads/{lead['id']}/move", json={"column_id": proposal}, headers=tenant_headers)

        assert moved.status_code == status.HTTP_200_OK
        assert moved.json()["column_id"] == proposal
        history = (await client.get(f"/api/leads/{lead['id']}/history", headers=tenant_headers)).json()
        assert [entry["type"] for entry in history] == ["stage_change", "creation"]

    async def test_filter_by_column(self, client: AsyncClient, tenant_headers):
        first = await _create_lead(client, tenant_headers, name="First")
        await _create_lead(client, tenant_headers, name="Second")
        proposal = await _column_id(client, tenant_headers, "proposal")
        await client.post(f"/api/leads/{first['id']}/move", json={"column_id": proposal}, headers=tenant_headers)

        response = await client.get("/api/leads", params={"column_id": proposal}, headers=tenant_headers)

        assert [lead["name"] for lead in response.json()] == ["First"]

    async def test_delete_lead(self, client: AsyncClient, tenant_headers):
        lead = await _create_lead(client, tenant_headers)

        unconfirmed = await client.delete(f"/api/leads/{lead['id']}", headers=tenant_headers)
        assert unconfirmed.status_code == status.HTTP_428_PRECONDITION_REQUIRED

        confirmed = await client.delete(f"/api/leads/{lead['id']}?confirm=true", headers=tenant_headers)
        assert confirmed.status_code == status.HTTP_200_OK

        missing = await client.get(f"/api/leads/{lead['id']}", headers=tenant_headers)
        assert missing.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.integration
class TestPipelineAutomationAPI:
    """Test lead movement driven by appointments and service orders."""

    async def test_customer_journey(self, client: AsyncClient, tenant_headers):
        unit = await _create_unit(client, tenant_headers)
        lead = await _create_lead(client, tenant_headers)

        appointment = await client.post(
            "/api/appointments",
            json={"lead_id": lead["id"], "unit_id": unit["id"], "date": "2024-05-10", "time": "09:30"},
            headers=tenant_headers,
        )
        assert appointment.status_code == status.HTTP_201_CREATED
        lead_now = (await client.get(f"/api/leads/{lead['id']}", headers=tenant_headers)).json()
        assert lead_now["column_id"] == await _column_id(client, tenant_headers, "scheduled")

        attended = await client.post(f"/api/appointments/{appointment.json()['id']}/attendance", headers=tenant_headers)
        assert attended.status_code == status.HTTP_200_OK
        assert attended.json()["attended"] is True

        order = await client.post(
            "/api/service-orders",
            json={
                "lead_id": lead["id"],
                "vehicle_info": "Honda Civic",
                "items": [{"description": "Pads", "cost": "150.00"}, {"description": "Labor", "cost": "80.00"}],
            },
            headers=tenant_headers,
        )
        assert order.status_code == status.HTTP_201_CREATED
        assert order.json()["os_number"].startswith("OS")
        assert order.json()["status"] == "diagnosis"
        assert Decimal(order.json()["total_cost"]) == Decimal("230.00")

        paid = await client.put(
            f"/api/service-orders/{order.json()['id']}/status", json={"status": "paid"}, headers=tenant_headers
        )
        assert paid.status_code == status.HTTP_200_OK

        lead_now = (await client.get(f"/api/leads/{lead['id']}", headers=tenant_headers)).json()
        assert lead_now["column_id"] == await _column_id(client, tenant_headers, "invoiced")
        assert [entry["type"] for entry in lead_now["history"]] == [
            "service_order_status",
            "service_order_created",
            "attendance_registered",
            "appointment_created",
            "creation",
        ]
        assert all(entry["user_id"] == 7 for entry in lead_now["history"])

    async def test_invalid_status_is_rejected(self, client: AsyncClient, tenant_headers):
        lead = await _create_lead(client, tenant_headers)
        order = await client.post("/api/service-orders", json={"lead_id": lead["id"]}, headers=tenant_headers)

        response = await client.put(
            f"/api/service-orders/{order.json()['id']}/status", json={"status": "lost"}, headers=tenant_headers
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_service_order_for_unknown_lead(self, client: AsyncClient, tenant_headers):
        response = await client.post("/api/service-orders", json={"lead_id": 999}, headers=tenant_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["lead_id"] == 999

    async def test_appointment_with_bad_time(self, client: AsyncClient, tenant_headers):
        unit = await _create_unit(client, tenant_headers)
        lead = await _create_lead(client, tenant_headers)

        response = await client.post(
            "/api/appointments",
            json={"lead_id": lead["id"], "unit_id": unit["id"], "date": "2024-05-10", "time": "9h30"},
            headers=tenant_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["type"] == "validation_error"

    async def test_delete_service_order_requires_confirmation(self, client: AsyncClient, tenant_headers):
        lead = await _create_lead(client, tenant_headers)
        order = (await client.post("/api/service-orders", json={"lead_id": lead["id"]}, headers=tenant_headers)).json()

        unconfirmed = await client.delete(f"/api/service-orders/{order['id']}", headers=tenant_headers)
        assert unconfirmed.status_code == status.HTTP_428_PRECONDITION_REQUIRED

        confirmed = await client.delete(
            f"/api/service-orders/{order['id']}", params={"confirm": "true"}, headers=tenant_headers
        )
        assert confirmed.status_code == status.HTTP_200_OK

        history = (await client.get(f"/api/leads/{lead['id']}/history", headers=tenant_headers)).json()
        assert history[0]["type"] == "service_order_deleted"

    async def test_service_order_statuses(self, client: AsyncClient):
        response = await client.get("/api/service-orders/statuses")

        assert response.status_code == status.HTTP_200_OK
        statuses = {s["status"]: s for s in response.json()}
        assert statuses["paid"]["stage_key"] == "invoiced"
        assert statuses["cancelled"]["color"] == "red"
        assert len(statuses) == 7

    async def test_get_service_order_by_number(self, client: AsyncClient, tenant_headers):
        lead = await _create_lead(client, tenant_headers)
        order = (await client.post("/api/service-orders", json={"lead_id": lead["id"]}, headers=tenant_headers)).json()

        found = await client.get(f"/api/service-orders/by-number/{order['os_number']}", headers=tenant_headers)
        missing = await client.get("/api/service-orders/by-number/OS2000010001", headers=tenant_headers)

        assert found.status_code == status.HTTP_200_OK
        assert found.json()["id"] == order["id"]
        assert missing.status_code == status.HTTP_404_NOT_FOUND
        assert missing.json()["detail"]["os_number"] == "OS2000010001"

    async def test_status_change_on_unknown_order(self, client: AsyncClient, tenant_headers):
        response = await client.put("/api/service-orders/999/status", json={"status": "paid"}, headers=tenant_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["type"] == "not_found"


@pytest.mark.integration
class TestSettingsAPI:
    """Test organization, unit and catalog endpoints."""

    async def test_catalog(self, client: AsyncClient, tenant_headers):
        created = await client.post(
            "/api/settings/services",
            json={"name": "Oil Change", "price": "120.00", "estimated_time_minutes": 45},
            headers=tenant_headers,
        )
        assert created.status_code == status.HTTP_201_CREATED
        service_id = created.json()["id"]

        deactivated = await client.post(f"/api/settings/services/{service_id}/deactivate", headers=tenant_headers)
        assert deactivated.status_code == status.HTTP_200_OK
        assert deactivated.json()["is_active"] is False

        active = await client.get("/api/settings/services", params={"active_only": "true"}, headers=tenant_headers)
        assert active.json() == []

    async def test_unit_with_appointments_is_conflict(self, client: AsyncClient, tenant_headers):
        unit = await _create_unit(client, tenant_headers)
        lead = await _create_lead(client, tenant_headers)
        await client.post(
            "/api/appointments",
            json={"lead_id": lead["id"], "unit_id": unit["id"], "date": "2024-05-10", "time": "09:30"},
            headers=tenant_headers,
        )

        response = await client.delete(f"/api/settings/units/{unit['id']}?confirm=true", headers=tenant_headers)

        assert response.status_code == status.HTTP_409_CONFLICT

    async def test_unknown_organization(self, client: AsyncClient):
        response = await client.get("/api/organizations/404")
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.integration
class TestReportsAPI:

    async def test_dashboard(self, client: AsyncClient, tenant_headers):
        await _create_lead(client, tenant_headers)

        response = await client.get("/api/reports/dashboard", headers=tenant_headers)

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["leads"]["total"] == 1
        assert len(body["leads"]["by_stage"]) == 11
        assert body["service_orders"]["by_status"]["diagnosis"] == 0
        assert Decimal(body["average_ticket"]["value"]) == Decimal("0")

    async def test_dashboard_rejects_inverted_range(self, client: AsyncClient, tenant_headers):
        response = await client.get(
            "/api/reports/dashboard",
            params={"date_from": "2024-06-01", "date_to": "2024-05-01"},
            headers=tenant_headers,
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
