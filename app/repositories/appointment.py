from __future__ import annotations
from datetime import date
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Appointment


class AppointmentRepository:
    """Repository for Appointment operations with organization scoping."""

    async def list_by_organization(
        self,
        session: AsyncSession,
        organization_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        unit_id: Optional[int] = None,
        lead_id: Optional[int] = None,
    ) -> List[Appointment]:
        stmt = select(Appointment).where(Appointment.organization_id == organization_id)
        if date_from is not None:
            stmt = stmt.where(Appointment.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Appointment.date <= date_to)
        if unit_id is not None:
            stmt = stmt.where(Appointment.unit_id == unit_id)
        if lead_id is not None:
            stmt = stmt.where(Appointment.lead_id == lead_id)
        stmt = stmt.order_by(Appointment.date, Appointment.time, Appointment.id)
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def get_by_id(self, session: AsyncSession, organization_id: int, appointment_id: int) -> Optional[Appointment]:
        stmt = select(Appointment).where(
            Appointment.id == appointment_id, Appointment.organization_id == organization_id
        )
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def create(self, session: AsyncSession, organization_id: int, **fields) -> Appointment:
        entity = Appointment(organization_id=organization_id, attended=False, **fields)
        session.add(entity)
        await session.flush()
        return entity

    async def update(self, session: AsyncSession, appointment: Appointment, **updates) -> Appointment:
        for field, value in updates.items():
            if hasattr(appointment, field):
                setattr(appointment, field, value)
        await session.flush()
        return appointment

    async def delete(self, session: AsyncSession, appointment: Appointment) -> None:
        await session.delete(appointment)
        await session.flush()
