from decimal import Decimal
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Service


class ServiceRepository:
    """Repository for the service catalog."""

    async def list_by_organization(
        self, session: AsyncSession, organization_id: int, active_only: bool = False
    ) -> List[Service]:
        stmt = select(Service).where(Service.organization_id == organization_id)
        if active_only:
            stmt = stmt.where(Service.is_active.is_(True))
        res = await session.execute(stmt.order_by(Service.name))
        return list(res.scalars().all())

    async def get_by_id(self, session: AsyncSession, organization_id: int, service_id: int) -> Optional[Service]:
        stmt = select(Service).where(Service.id == service_id, Service.organization_id == organization_id)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        name: str,
        price: Decimal,
        description: Optional[str] = None,
        estimated_time_minutes: Optional[int] = None,
    ) -> Service:
        entity = Service(
            organization_id=organization_id,
            name=name,
            price=price,
            description=description,
            estimated_time_minutes=estimated_time_minutes,
            is_active=True,
        )
        session.add(entity)
        await session.flush()
        return entity

    async def update(self, session: AsyncSession, service: Service, **updates) -> Service:
        for field, value in updates.items():
            if hasattr(service, field):
                setattr(service, field, value)
        await session.flush()
        return service
