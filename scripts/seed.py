import asyncio
import logging
from datetime import timedelta
from decimal import Decimal
from sqlalchemy import select
from app.core.clock import utcnow
from app.core.logging import setup_logging
from app.db.session import SessionLocal, engine
from app.db.base import Base
from app.db.models import Organization
from app.services.appointment import AppointmentService
from app.services.catalog import CatalogService
from app.services.lead import LeadService
from app.services.organization import OrganizationService
from app.services.service_order import ServiceOrderService
from app.services.unit import UnitService
logger = logging.getLogger(__name__)

DEMO_ORGANIZATION = "PitStop Demo"


async def seed() -> None:
    """Seed a demo organization for development.

    Creates the organization with its default pipeline, one unit, a small catalog and a
    few leads pushed through appointments and service orders. Skipped when it exists.
    """

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as session:
        existing = await session.execute(select(Organization).where(Organization.name == DEMO_ORGANIZATION))
        if existing.scalar_one_or_none() is not None:
            logger.info("Demo organization already exists; skipping seeding")
            return

        organization = await OrganizationService().create(session, DEMO_ORGANIZATION)
        org_id = organization.id

        unit = await UnitService().create(session, org_id, "Main Street", address="123 Main Street", phone="555-0100")
        catalog = CatalogService()
        oil = await catalog.create(session, org_id, "Oil Change", price=Decimal("120.00"), estimated_time_minutes=45)
        brakes = await catalog.create(session, org_id, "Brake Service", price=Decimal("350.00"), estimated_time_minutes=120)

        leads = LeadService()
        ana = await leads.create(session, org_id, {"name": "Ana Souza", "phone": "555-0101", "car_model": "Honda Civic", "car_plate": "ABC1D23", "unit_id": unit.id})
        bruno = await leads.create(session, org_id, {"name": "Bruno Lima", "phone": "555-0102", "car_model": "VW Gol", "unit_id": unit.id})
        await leads.create(session, org_id, {"name": "Carla Dias", "email": "carla@example.com"})

        appointments = AppointmentService()
        tomorrow = (utcnow() + timedelta(days=1)).date()
        await appointments.create(session, org_id, bruno.id, unit.id, tomorrow, "09:30", service_id=oil.id)
        visit = await appointments.create(session, org_id, ana.id, unit.id, utcnow().date(), "14:00", service_id=brakes.id)
        await appointments.mark_attended(session, org_id, visit.id)

        orders = ServiceOrderService()
        order = await orders.create(
            session, org_id, ana.id,
            items=[{"service_id": brakes.id, "description": "Front brake pads", "parts": "Pads", "cost": "350.00"}],
            vehicle_info="Honda Civic ABC1D23",
            reported_issues="Squeaking brakes",
            primary_service_id=brakes.id,
        )
        await orders.update_status(session, org_id, order.id, "completed")

        await session.commit()
        logger.info(f"Seeded demo organization {org_id}")


if __name__ == "__main__":
    setup_logging(log_file=None)
    asyncio.run(seed())
