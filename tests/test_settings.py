"""
Tests for organization, unit and service catalog management.
"""

import pytest
from decimal import Decimal

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.services.catalog import CatalogService, parse_price
from app.services.organization import OrganizationService
from app.services.unit import UnitService


@pytest.mark.unit
class TestPrices:

    def test_price_is_parsed_as_decimal(self):
        assert parse_price("120.50") == Decimal("120.50")
        assert parse_price(0) == Decimal("0")

    @pytest.mark.parametrize("value", ["-1", "cheap", None])
    def test_invalid_prices(self, value):
        with pytest.raises(ValidationError):
            parse_price(value)


@pytest.mark.integration
class TestOrganizations:

    async def test_create_and_list(self, db_session):
        svc = OrganizationService()
        created = await svc.create(db_session, "  Garage Uno ")

        assert created.name == "Garage Uno"
        assert [o.id for o in await svc.list(db_session)] == [created.id]
        assert (await svc.get(db_session, created.id)).name == "Garage Uno"

    async def test_unknown_organization(self, db_session):
        with pytest.raises(NotFoundError):
            await OrganizationService().get(db_session, 77)

    async def test_name_is_required(self, db_session):
        with pytest.raises(ValidationError):
            await OrganizationService().create(db_session, "")


@pytest.mark.integration
class TestUnits:

    async def test_create_update_and_list(self, db_session, organization):
        svc = UnitService()
        unit = await svc.create(db_session, organization.id, "Downtown", address="5th Ave")

        updated = await svc.update(db_session, organization.id, unit.id, {"phone": " 555-0200 "})

        assert updated.phone == "555-0200"
        assert [u.name for u in await svc.list(db_session, organization.id)] == ["Downtown"]

    async def test_update_rejects_unknown_fields(self, db_session, organization, test_factory):
        unit = await test_factory.create_unit(db_session, organization.id)

        with pytest.raises(ValidationError):
            await UnitService().update(db_session, organization.id, unit.id, {"organization_id": 2})

    async def test_delete_requires_confirmation(self, db_session, organization, test_factory, confirm_no, confirm_yes):
        svc = UnitService()
        unit = await test_factory.create_unit(db_session, organization.id)

        assert await svc.delete(db_session, organization.id, unit.id, confirm_no) is False
        assert await svc.delete(db_session, organization.id, unit.id, confirm_yes) is True
        with pytest.raises(NotFoundError):
            await svc.get(db_session, organization.id, unit.id)

    async def test_delete_keeps_leads_without_unit(self, db_session, organization, test_factory, confirm_yes):
        from app.services.lead import LeadService

        unit = await test_factory.create_unit(db_session, organization.id)
        lead = await test_factory.create_lead(db_session, organization.id, unit_id=unit.id)

        await UnitService().delete(db_session, organization.id, unit.id, confirm_yes)
        await db_session.refresh(lead)

        assert lead.unit_id is None
        assert (await LeadService().get(db_session, organization.id, lead.id)).id == lead.id

    async def test_unit_with_appointments_cannot_be_deleted(self, db_session, organization, test_factory, confirm_yes):
        unit = await test_factory.create_unit(db_session, organization.id)
        lead = await test_factory.create_lead(db_session, organization.id)
        await test_factory.create_appointment(db_session, organization.id, lead.id, unit.id)

        with pytest.raises(ConflictError):
            await UnitService().delete(db_session, organization.id, unit.id, confirm_yes)


@pytest.mark.integration
class TestCatalog:

    async def test_create_and_update(self, db_session, organization):
        svc = CatalogService()
        service = await svc.create(db_session, organization.id, "Brake Service", price="350", estimated_time_minutes=90)

        updated = await svc.update(db_session, organization.id, service.id, {"price": "375.00", "name": " Brakes "})

        assert updated.price == Decimal("375.00")
        assert updated.name == "Brakes"
        assert updated.is_active is True

    async def test_deactivated_services_are_kept(self, db_session, organization, test_factory):
        svc = CatalogService()
        oil = await test_factory.create_service(db_session, organization.id, "Oil Change")
        await test_factory.create_service(db_session, organization.id, "Alignment")

        await svc.set_active(db_session, organization.id, oil.id, False)

        assert [s.name for s in await svc.list(db_session, organization.id, active_only=True)] == ["Alignment"]
        assert len(await svc.list(db_session, organization.id)) == 2

        reactivated = await svc.set_active(db_session, organization.id, oil.id, True)
        assert reactivated.is_active is True

    async def test_estimated_time_must_be_positive(self, db_session, organization):
        with pytest.raises(ValidationError):
            await CatalogService().create(db_session, organization.id, "Wash", estimated_time_minutes=0)

    async def test_services_are_scoped_to_organization(self, db_session, organization, test_factory):
        other = await test_factory.create_organization(db_session, "Other Shop")
        foreign = await test_factory.create_service(db_session, other.id)

        with pytest.raises(NotFoundError):
            await CatalogService().get(db_session, organization.id, foreign.id)
