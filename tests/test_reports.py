"""
Tests for dashboard figures.
"""

import pytest
from datetime import date
from decimal import Decimal

from app.core.exceptions import ValidationError
from app.core.service_order_workflow import ServiceOrderStatus
from app.services.appointment import AppointmentService
from app.services.reports import ReportsService
from app.services.service_order import ServiceOrderService


@pytest.mark.integration
class TestDashboard:
    """Test dashboard aggregation."""

    async def test_empty_organization(self, db_session, organization):
        figures = await ReportsService().dashboard(db_session, organization.id)

        assert figures["leads"]["total"] == 0
        assert figures["leads"]["conversion_rate"] == 0.0
        assert all(stage["count"] == 0 for stage in figures["leads"]["by_stage"])
        assert figures["appointments"]["attendance_rate"] == 0.0
        assert figures["appointments"]["top_services"] == []
        assert figures["service_orders"]["by_status"] == {s.value: 0 for s in ServiceOrderStatus}
        assert figures["service_orders"]["revenue"] == Decimal("0")
        assert figures["average_ticket"] == {"value": Decimal("0"), "orders": 0}

    async def test_figures(self, db_session, organization, test_factory):
        unit = await test_factory.create_unit(db_session, organization.id)
        oil = await test_factory.create_service(db_session, organization.id, "Oil Change")
        ana = await test_factory.create_lead(db_session, organization.id, name="Ana")
        bruno = await test_factory.create_lead(db_session, organization.id, name="Bruno")
        await test_factory.create_lead(db_session, organization.id, name="Carla")
        await test_factory.create_lead(db_session, organization.id, name="Davi")

        appointments = AppointmentService()
        first = await test_factory.create_appointment(
            db_session, organization.id, ana.id, unit.id, date(2024, 5, 10), service_id=oil.id
        )
        await test_factory.create_appointment(db_session, organization.id, bruno.id, unit.id, date(2024, 5, 11), service_id=oil.id)
        await test_factory.create_appointment(db_session, organization.id, bruno.id, unit.id, date(2024, 5, 12), service_type="Alignment")
        await test_factory.create_appointment(db_session, organization.id, bruno.id, unit.id, date(2024, 5, 13))
        await appointments.mark_attended(db_session, organization.id, first.id)

        orders = ServiceOrderService()
        paid = await test_factory.create_service_order(
            db_session, organization.id, ana.id, items=[{"description": "Pads", "cost": "300.00"}]
        )
        await orders.update_status(db_session, organization.id, paid.id, "paid")
        done = await test_factory.create_service_order(
            db_session, organization.id, bruno.id, items=[{"description": "Oil", "cost": "100.00"}]
        )
        await orders.update_status(db_session, organization.id, done.id, "completed")
        await test_factory.create_service_order(
            db_session, organization.id, bruno.id, items=[{"description": "Quote", "cost": "999.00"}]
        )

        figures = await ReportsService().dashboard(db_session, organization.id)

        leads = figures["leads"]
        assert leads["total"] == 4
        counts = {stage["name"]: stage["count"] for stage in leads["by_stage"]}
        assert counts["Invoiced"] == 1
        assert counts["Prospect"] == 2
        assert leads["converted"] == 1
        assert leads["conversion_rate"] == 25.0

        appointments_figures = figures["appointments"]
        assert appointments_figures["total"] == 4
        assert appointments_figures["attended"] == 1
        assert appointments_figures["attendance_rate"] == 25.0
        assert appointments_figures["top_services"][0] == {"name": "Oil Change", "count": 2}
        assert {"name": "Alignment", "count": 1} in appointments_figures["top_services"]
        assert {"name": "Unspecified", "count": 1} in appointments_figures["top_services"]

        service_orders = figures["service_orders"]
        assert service_orders["total"] == 3
        assert service_orders["by_status"]["paid"] == 1
        assert service_orders["by_status"]["completed"] == 1
        assert service_orders["by_status"]["diagnosis"] == 1
        assert service_orders["revenue"] == Decimal("400.00")
        assert sum(service_orders["monthly_revenue"].values()) == Decimal("400.00")
        assert "average_ticket" not in service_orders

        assert set(figures) == {"leads", "appointments", "service_orders", "average_ticket"}
        assert figures["average_ticket"] == {"value": Decimal("200.00"), "orders": 2}

    async def test_appointments_filtered_by_date(self, db_session, organization, test_factory):
        unit = await test_factory.create_unit(db_session, organization.id)
        lead = await test_factory.create_lead(db_session, organization.id)
        await test_factory.create_appointment(db_session, organization.id, lead.id, unit.id, date(2024, 5, 1))
        await test_factory.create_appointment(db_session, organization.id, lead.id, unit.id, date(2024, 6, 1))

        figures = await ReportsService().dashboard(
            db_session, organization.id, date_from=date(2024, 5, 1), date_to=date(2024, 5, 31)
        )

        assert figures["appointments"]["total"] == 1

    async def test_unit_filter(self, db_session, organization, test_factory):
        north = await test_factory.create_unit(db_session, organization.id, "North")
        south = await test_factory.create_unit(db_session, organization.id, "South")
        await test_factory.create_lead(db_session, organization.id, unit_id=north.id)
        await test_factory.create_lead(db_session, organization.id, unit_id=south.id)
        await test_factory.create_lead(db_session, organization.id, unit_id=south.id)

        figures = await ReportsService().dashboard(db_session, organization.id, unit_id=south.id)

        assert figures["leads"]["total"] == 2

    async def test_inverted_range_is_rejected(self, db_session, organization):
        with pytest.raises(ValidationError):
            await ReportsService().dashboard(
                db_session, organization.id, date_from=date(2024, 6, 1), date_to=date(2024, 5, 1)
            )

    async def test_totals_from_a_new_session(self, db_session, fresh_session, organization, test_factory):
        lead = await test_factory.create_lead(db_session, organization.id)
        order = await test_factory.create_service_order(
            db_session, organization.id, lead.id, items=[{"description": "Pads", "cost": "300.00"}]
        )
        await ServiceOrderService().update_status(db_session, organization.id, order.id, "paid")
        await db_session.commit()

        figures = await ReportsService().dashboard(fresh_session, organization.id)

        assert figures["service_orders"]["revenue"] == Decimal("300.00")
        assert figures["average_ticket"] == {"value": Decimal("300.00"), "orders": 1}
