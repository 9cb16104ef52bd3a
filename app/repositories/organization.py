from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Organization


class OrganizationRepository:
    """Repository for `Organization` operations."""

    async def get_by_id(self, session: AsyncSession, organization_id: int) -> Optional[Organization]:
        return await session.get(Organization, organization_id)

    async def list_all(self, session: AsyncSession) -> List[Organization]:
        res = await session.execute(select(Organization).order_by(Organization.id))
        return list(res.scalars().all())

    async def create(self, session: AsyncSession, name: str) -> Organization:
        entity = Organization(name=name)
        session.add(entity)
        await session.flush()
        return entity
