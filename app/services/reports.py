"""
Dashboard figures of an organization: lead funnel, appointment attendance and service order revenue.
"""

from __future__ import annotations
import logging
from collections import Counter
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import StorageError, ValidationError
from app.core.pipeline import CONVERTED_STAGE_KEYS, StageColor
from app.core.service_order_workflow import REVENUE_STATUSES, ServiceOrderStatus
from app.db.models import Appointment, Lead, PipelineStage, Service, ServiceOrder
from app.repositories.pipeline_stage import PipelineStageRepository

logger = logging.getLogger(__name__)

TOP_SERVICES_LIMIT = 5
UNSPECIFIED_SERVICE = "Unspecified"


def _rate(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part * 100.0 / whole, 2)


def revenue_date(order: ServiceOrder) -> datetime:
    """Orders are dated by completion, falling back to creation."""
    return order.completed_at or order.created_at


class ReportsService:
    def __init__(self) -> None:
        self.stage_repo = PipelineStageRepository()

    async def dashboard(
        self,
        session: AsyncSession,
        organization_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        unit_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Aggregate the dashboard of an organization.

        Leads are filtered by creation date, appointments by their scheduled date and
        service orders by completion date (creation date while not completed). The unit
        filter applies to orders through their lead.
        """
        if date_from and date_to and date_from > date_to:
            raise ValidationError(
                "date_from must not be after date_to",
                {"date_from": str(date_from), "date_to": str(date_to)}
            )
        try:
            stages = await self.stage_repo.list_ordered(session, organization_id)
            leads = await self._leads(session, organization_id, date_from, date_to, unit_id)
            appointments = await self._appointments(session, organization_id, date_from, date_to, unit_id)
            orders = await self._service_orders(session, organization_id, date_from, date_to, unit_id)
            service_names = await self._service_names(session, organization_id)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to load dashboard data for organization {organization_id}: {e}")
            raise StorageError("Failed to load report data", {"organization_id": organization_id})

        return {
            "leads": self._lead_figures(stages, leads),
            "appointments": self._appointment_figures(appointments, service_names),
            "service_orders": self._service_order_figures(orders),
            "average_ticket": self._average_ticket(orders),
        }

    @staticmethod
    def _lead_figures(stages: List[PipelineStage], leads: List[Lead]) -> Dict[str, Any]:
        per_stage = Counter(lead.column_id for lead in leads)
        converted_ids = {s.id for s in stages if s.key in {k.value for k in CONVERTED_STAGE_KEYS}}
        converted = sum(per_stage[stage_id] for stage_id in converted_ids)
        return {
            "total": len(leads),
            "by_stage": [
                {"column_id": s.id, "name": s.name, "color": StageColor(s.color).value, "count": per_stage.get(s.id, 0)}
                for s in stages
            ],
            "converted": converted,
            "conversion_rate": _rate(converted, len(leads)),
        }

    @staticmethod
    def _appointment_figures(appointments: List[Appointment], service_names: Dict[int, str]) -> Dict[str, Any]:
        attended = sum(1 for a in appointments if a.attended)
        services = Counter(
            service_names.get(a.service_id) if a.service_id is not None else (a.service_type or UNSPECIFIED_SERVICE)
            for a in appointments
        )
        return {
            "total": len(appointments),
            "attended": attended,
            "attendance_rate": _rate(attended, len(appointments)),
            "top_services": [
                {"name": name or UNSPECIFIED_SERVICE, "count": count}
                for name, count in services.most_common(TOP_SERVICES_LIMIT)
            ],
        }

    @staticmethod
    def _service_order_figures(orders: List[ServiceOrder]) -> Dict[str, Any]:
        by_status = Counter(ServiceOrderStatus(o.status).value for o in orders)
        revenue_orders = [o for o in orders if ServiceOrderStatus(o.status) in REVENUE_STATUSES]

        revenue = Decimal("0")
        monthly: Dict[str, Decimal] = {}
        for order in revenue_orders:
            total = order.total_cost
            revenue += total
            month = revenue_date(order).strftime("%Y-%m")
            monthly[month] = monthly.get(month, Decimal("0")) + total

        return {
            "total": len(orders),
            "by_status": {s.value: by_status.get(s.value, 0) for s in ServiceOrderStatus},
            "revenue": revenue,
            "monthly_revenue": dict(sorted(monthly.items())),
        }

    @staticmethod
    def _average_ticket(orders: List[ServiceOrder]) -> Dict[str, Any]:
        totals = [o.total_cost for o in orders if ServiceOrderStatus(o.status) in REVENUE_STATUSES]
        value = (sum(totals, Decimal("0")) / len(totals)).quantize(Decimal("0.01")) if totals else Decimal("0")
        return {"value": value, "orders": len(totals)}

    async def _leads(self, session, organization_id, date_from, date_to, unit_id) -> List[Lead]:
        stmt = select(Lead).where(Lead.organization_id == organization_id)
        if date_from:
            stmt = stmt.where(Lead.created_at >= datetime.combine(date_from, time.min))
        if date_to:
            stmt = stmt.where(Lead.created_at <= datetime.combine(date_to, time.max))
        if unit_id is not None:
            stmt = stmt.where(Lead.unit_id == unit_id)
        return list((await session.execute(stmt)).scalars().all())

    async def _appointments(self, session, organization_id, date_from, date_to, unit_id) -> List[Appointment]:
        stmt = select(Appointment).where(Appointment.organization_id == organization_id)
        if date_from:
            stmt = stmt.where(Appointment.date >= date_from)
        if date_to:
            stmt = stmt.where(Appointment.date <= date_to)
        if unit_id is not None:
            stmt = stmt.where(Appointment.unit_id == unit_id)
        return list((await session.execute(stmt)).scalars().all())

    async def _service_orders(self, session, organization_id, date_from, date_to, unit_id) -> List[ServiceOrder]:
        stmt = (
            select(ServiceOrder)
            .options(selectinload(ServiceOrder.items))
            .where(ServiceOrder.organization_id == organization_id)
        )
        effective = func.coalesce(ServiceOrder.completed_at, ServiceOrder.created_at)
        if date_from:
            stmt = stmt.where(effective >= datetime.combine(date_from, time.min))
        if date_to:
            stmt = stmt.where(effective <= datetime.combine(date_to, time.max))
        if unit_id is not None:
            stmt = stmt.join(Lead, Lead.id == ServiceOrder.lead_id).where(Lead.unit_id == unit_id)
        return list((await session.execute(stmt)).scalars().all())

    async def _service_names(self, session, organization_id) -> Dict[int, str]:
        stmt = select(Service.id, Service.name).where(Service.organization_id == organization_id)
        return {row.id: row.name for row in (await session.execute(stmt)).all()}
