"""
Test configuration and fixtures for the PitStop test suite.
Provides database setup, tenant headers and common test utilities.
"""

import os

os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("AUTO_MIGRATE", "false")
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from datetime import date
from typing import AsyncGenerator, Optional
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.db.session import configure_sqlite_engine, get_db
from app.db import models  # noqa: F401

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False
)
configure_sqlite_engine(test_engine)

# Create test session maker
TestSessionLocal = async_sessionmaker(
    autoflush=False,
    expire_on_commit=False,
    bind=test_engine,
    class_=AsyncSession
)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    # Create all tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Create session
    async with TestSessionLocal() as session:
        yield session

    # Drop all tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def fresh_session(db_session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """A second session with an empty identity map, like the one a new request gets."""
    await db_session.commit()
    async with TestSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


class TestDataFactory:
    """Factory class for creating test data through the services."""

    @staticmethod
    async def create_organization(session: AsyncSession, name: str = "Test Shop"):
        """Create an organization with the default pipeline."""
        from app.services.organization import OrganizationService

        return await OrganizationService().create(session, name)

    @staticmethod
    async def create_unit(session: AsyncSession, organization_id: int, name: str = "Main Street"):
        from app.services.unit import UnitService

        return await UnitService().create(session, organization_id, name, address="1 Main Street", phone="555-0100")

    @staticmethod
    async def create_service(session: AsyncSession, organization_id: int, name: str = "Oil Change", price: str = "120.00"):
        from app.services.catalog import CatalogService

        return await CatalogService().create(session, organization_id, name, price=price, estimated_time_minutes=45)

    @staticmethod
    async def create_lead(session: AsyncSession, organization_id: int, name: str = "Test Lead", **fields):
        from app.services.lead import LeadService

        return await LeadService().create(session, organization_id, {"name": name, **fields})

    @staticmethod
    async def create_appointment(
        session: AsyncSession,
        organization_id: int,
        lead_id: int,
        unit_id: int,
        appointment_date: Optional[date] = None,
        time: str = "09:30",
        **fields,
    ):
        from app.services.appointment import AppointmentService

        return await AppointmentService().create(
            session, organization_id, lead_id, unit_id, appointment_date or date(2024, 5, 10), time, **fields
        )

    @staticmethod
    async def create_service_order(session: AsyncSession, organization_id: int, lead_id: int, **fields):
        from app.services.service_order import ServiceOrderService

        fields.setdefault("items", [{"description": "Labor", "cost": "100.00"}])
        return await ServiceOrderService().create(session, organization_id, lead_id, **fields)

    @staticmethod
    async def stage(session: AsyncSession, organization_id: int, key: str):
        """Pipeline column of an organization by its automation key."""
        from app.repositories.pipeline_stage import PipelineStageRepository

        return await PipelineStageRepository().get_by_key(session, organization_id, key)

    @staticmethod
    async def current_stage_key(session: AsyncSession, lead_id: int) -> Optional[str]:
        """Key of the column a lead currently sits in, read from the database."""
        from app.db.models import PipelineStage
        from app.repositories.lead import LeadRepository

        lead = await LeadRepository().get_by_id_global(session, lead_id, refresh=True)
        stage = await session.get(PipelineStage, lead.column_id)
        return stage.key

    @staticmethod
    async def history_types(session: AsyncSession, lead_id: int) -> list:
        """History entry types of a lead, newest first."""
        from app.repositories.lead_history import LeadHistoryRepository

        entries = await LeadHistoryRepository().list_for_lead(session, lead_id)
        return [entry.type.value for entry in entries]


@pytest.fixture
def test_factory():
    """Provide access to test data factory."""
    return TestDataFactory


@pytest_asyncio.fixture
async def organization(db_session: AsyncSession):
    """A committed organization with the default pipeline."""
    org = await TestDataFactory.create_organization(db_session)
    await db_session.commit()
    return org


@pytest.fixture
def tenant_headers(organization) -> dict:
    """Request headers acting on the test organization as user 7."""
    return {"X-Organization-ID": str(organization.id), "X-User-ID": "7"}


@pytest.fixture
def confirm_yes():
    prompts = []

    def confirm(prompt: str) -> bool:
        prompts.append(prompt)
        return True

    confirm.prompts = prompts
    return confirm


@pytest.fixture
def confirm_no():
    prompts = []

    def confirm(prompt: str) -> bool:
        prompts.append(prompt)
        return False

    confirm.prompts = prompts
    return confirm
