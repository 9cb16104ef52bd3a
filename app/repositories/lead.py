from __future__ import annotations
from typing import Optional, List
from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Lead


class LeadRepository:
    """Repository for Lead operations with organization scoping. Writes are row-level."""

    async def list_by_organization(
        self,
        session: AsyncSession,
        organization_id: int,
        column_id: Optional[int] = None,
        unit_id: Optional[int] = None,
        search: Optional[str] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> List[Lead]:
        stmt = select(Lead).where(Lead.organization_id == organization_id)
        if column_id is not None:
            stmt = stmt.where(Lead.column_id == column_id)
        if unit_id is not None:
            stmt = stmt.where(Lead.unit_id == unit_id)
        if search:
            term = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    Lead.name.ilike(term),
                    Lead.phone.ilike(term),
                    Lead.email.ilike(term),
                    Lead.car_plate.ilike(term),
                )
            )
        stmt = stmt.order_by(Lead.created_at.desc(), Lead.id.desc()).offset(offset).limit(limit)
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def get_by_id(self, session: AsyncSession, organization_id: int, lead_id: int) -> Optional[Lead]:
        stmt = select(Lead).where(Lead.id == lead_id, Lead.organization_id == organization_id)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def get_by_id_global(
        self, session: AsyncSession, lead_id: int, refresh: bool = False
    ) -> Optional[Lead]:
        stmt = select(Lead).where(Lead.id == lead_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def create(self, session: AsyncSession, organization_id: int, column_id: int, **fields) -> Lead:
        entity = Lead(organization_id=organization_id, column_id=column_id, **fields)
        session.add(entity)
        await session.flush()
        return entity

    async def update(self, session: AsyncSession, lead: Lead, **updates) -> Lead:
        for field, value in updates.items():
            if hasattr(lead, field):
                setattr(lead, field, value)
        await session.flush()
        return lead

    async def reassign_column(
        self, session: AsyncSession, organization_id: int, from_column_id: int, to_column_id: int
    ) -> int:
        """Move every lead of one column to another. Returns how many leads moved."""
        stmt = (
            update(Lead)
            .where(Lead.organization_id == organization_id, Lead.column_id == from_column_id)
            .values(column_id=to_column_id, version_id=Lead.version_id + 1)
            .execution_options(synchronize_session="fetch")
        )
        res = await session.execute(stmt)
        return int(res.rowcount or 0)

    async def delete(self, session: AsyncSession, lead: Lead) -> None:
        await session.delete(lead)
        await session.flush()
