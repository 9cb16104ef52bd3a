from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Unit, Appointment


class UnitRepository:
    """Repository for `Unit` (shop location) operations with organization scoping."""

    async def list_by_organization(self, session: AsyncSession, organization_id: int) -> List[Unit]:
        stmt = select(Unit).where(Unit.organization_id == organization_id).order_by(Unit.name)
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def get_by_id(self, session: AsyncSession, organization_id: int, unit_id: int) -> Optional[Unit]:
        stmt = select(Unit).where(Unit.id == unit_id, Unit.organization_id == organization_id)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        name: str,
        address: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Unit:
        entity = Unit(organization_id=organization_id, name=name, address=address, phone=phone)
        session.add(entity)
        await session.flush()
        return entity

    async def count_appointments(self, session: AsyncSession, unit_id: int) -> int:
        stmt = select(func.count(Appointment.id)).where(Appointment.unit_id == unit_id)
        return int((await session.execute(stmt)).scalar_one())

    async def delete(self, session: AsyncSession, unit: Unit) -> None:
        await session.delete(unit)
        await session.flush()
