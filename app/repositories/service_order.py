from __future__ import annotations
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.db.models import ServiceOrder, ServiceOrderItem, ServiceOrderCounter
from app.core.service_order_workflow import ServiceOrderStatus


class ServiceOrderRepository:
    """Repository for ServiceOrder operations with organization scoping."""

    @staticmethod
    def _select():
        # items is lazy="raise"; totals need it on every read
        return select(ServiceOrder).options(selectinload(ServiceOrder.items))

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        os_number: str,
        lead_id: int,
        status: ServiceOrderStatus,
        items: List[ServiceOrderItem],
        vehicle_info: Optional[str] = None,
        reported_issues: Optional[str] = None,
        primary_service_id: Optional[int] = None,
    ) -> ServiceOrder:
        """Create a new service order with its line items."""
        entity = ServiceOrder(
            organization_id=organization_id,
            os_number=os_number,
            lead_id=lead_id,
            status=status,
            vehicle_info=vehicle_info,
            reported_issues=reported_issues,
            primary_service_id=primary_service_id,
            items=items,
        )
        session.add(entity)
        await session.flush()
        return entity

    async def get_by_id(self, session: AsyncSession, organization_id: int, service_order_id: int) -> Optional[ServiceOrder]:
        """Get a service order by ID."""
        stmt = self._select().where(
            ServiceOrder.id == service_order_id, ServiceOrder.organization_id == organization_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_os_number(self, session: AsyncSession, organization_id: int, os_number: str) -> Optional[ServiceOrder]:
        """Get a service order by its number."""
        stmt = self._select().where(
            ServiceOrder.os_number == os_number, ServiceOrder.organization_id == organization_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_organization(
        self,
        session: AsyncSession,
        organization_id: int,
        status: Optional[ServiceOrderStatus] = None,
        lead_id: Optional[int] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> List[ServiceOrder]:
        stmt = self._select().where(ServiceOrder.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(ServiceOrder.status == status)
        if lead_id is not None:
            stmt = stmt.where(ServiceOrder.lead_id == lead_id)
        stmt = stmt.order_by(ServiceOrder.created_at.desc(), ServiceOrder.id.desc()).offset(offset).limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def update(self, session: AsyncSession, service_order: ServiceOrder, **updates) -> ServiceOrder:
        """Update a service order with the provided fields."""
        for field, value in updates.items():
            if hasattr(service_order, field):
                setattr(service_order, field, value)
        await session.flush()
        return service_order

    async def delete(self, session: AsyncSession, service_order: ServiceOrder) -> None:
        await session.delete(service_order)
        await session.flush()

    async def next_sequence(self, session: AsyncSession, organization_id: int, period: str) -> int:
        """Reserve the next order sequence number of an organization for one month."""
        stmt = select(ServiceOrderCounter).where(
            ServiceOrderCounter.organization_id == organization_id,
            ServiceOrderCounter.period == period,
        )
        counter = (await session.execute(stmt)).scalar_one_or_none()
        if counter is None:
            counter = ServiceOrderCounter(organization_id=organization_id, period=period, next_value=2)
            session.add(counter)
            await session.flush()
            return 1

        value = counter.next_value or 1
        counter.next_value = value + 1
        await session.flush()
        return value
