from __future__ import annotations
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.events import (
    EventDispatcher, ServiceOrderCreatedEvent, ServiceOrderDeletedEvent, ServiceOrderStatusChangedEvent
)
from app.core.exceptions import (
    BusinessLogicError, ErrorHandler, NotFoundError, ServiceOrderError, ValidationError
)
from app.core.pipeline import ConfirmCallback, is_confirmed
from app.core.service_order_workflow import (
    ServiceOrderStatus, format_os_number, parse_status, period_key
)
from app.db.models import ServiceOrder, ServiceOrderItem
from app.repositories.lead import LeadRepository
from app.repositories.service import ServiceRepository
from app.repositories.service_order import ServiceOrderRepository
from app.services.pipeline_sync import get_event_dispatcher

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("vehicle_info", "reported_issues", "items", "primary_service_id")


def coerce_status(value: Any) -> ServiceOrderStatus:
    status = parse_status(value)
    if status is None:
        raise ValidationError(
            f"Invalid service order status: {value}",
            {"status": value, "allowed": [s.value for s in ServiceOrderStatus]}
        )
    return status


class ServiceOrderService:
    """Service order lifecycle: numbering, status changes and the lead pipeline effects they publish."""

    def __init__(self, dispatcher: Optional[EventDispatcher] = None) -> None:
        self.repo = ServiceOrderRepository()
        self.lead_repo = LeadRepository()
        self.service_repo = ServiceRepository()
        self.dispatcher = dispatcher or get_event_dispatcher()

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        lead_id: int,
        items: Optional[List[Dict[str, Any]]] = None,
        vehicle_info: Optional[str] = None,
        reported_issues: Optional[str] = None,
        initial_status: Any = ServiceOrderStatus.DIAGNOSIS,
        primary_service_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> ServiceOrder:
        """
        Create a service order numbered OS<YYYY><MM><seq> from the organization's monthly counter.

        Publishes `ServiceOrderCreated`; the lead moves to the in-service stage whatever the
        initial status is.

        Args:
            session: Database session
            organization_id: Organization ID for tenant scoping
            lead_id: Customer lead the order belongs to
            items: Line items with description, parts, cost and an optional catalog service
            vehicle_info: Free-text vehicle description
            reported_issues: Problems reported by the customer
            initial_status: Starting status, diagnosis by default
            primary_service_id: Main catalog service of the order
            user_id: Acting user recorded on the lead history

        Returns:
            Created service order

        Raises:
            ValidationError: For invalid status or items
            NotFoundError: When the lead or a service is not in the organization
            ServiceOrderError: For unexpected failures
        """
        try:
            ErrorHandler.validate_positive_integer(organization_id, "organization_id")
            status = coerce_status(initial_status)

            lead = await self.lead_repo.get_by_id(session, organization_id, lead_id)
            if lead is None:
                raise NotFoundError(f"Lead {lead_id} not found", {"lead_id": lead_id})
            await self._validate_service(session, organization_id, primary_service_id)
            order_items = await self._build_items(session, organization_id, items or [])

            now = utcnow()
            sequence = await self.repo.next_sequence(session, organization_id, period_key(now.year, now.month))
            os_number = format_os_number(now.year, now.month, sequence)

            order = await self.repo.create(
                session,
                organization_id=organization_id,
                os_number=os_number,
                lead_id=lead.id,
                status=status,
                items=order_items,
                vehicle_info=vehicle_info,
                reported_issues=reported_issues,
                primary_service_id=primary_service_id,
            )
            if status == ServiceOrderStatus.COMPLETED:
                order.completed_at = now
                await session.flush()

            logger.info(f"Created service order {os_number} for lead {lead.id} in organization {organization_id}")

            await self.dispatcher.publish(session, ServiceOrderCreatedEvent(
                order.id, lead.id, organization_id, os_number, status.value, user_id
            ))
            return order

        except BusinessLogicError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error creating service order: {e}")
            raise ServiceOrderError(
                "An unexpected error occurred while creating the service order",
                {"error": str(e), "organization_id": organization_id}
            )

    async def get(self, session: AsyncSession, organization_id: int, service_order_id: int) -> ServiceOrder:
        order = await self.repo.get_by_id(session, organization_id, service_order_id)
        if order is None:
            raise NotFoundError(
                f"Service order {service_order_id} not found", {"service_order_id": service_order_id}
            )
        return order

    async def get_by_number(self, session: AsyncSession, organization_id: int, os_number: str) -> ServiceOrder:
        """Look an order up by its display number, e.g. OS2024050001."""
        number = (os_number or "").strip().upper()
        order = await self.repo.get_by_os_number(session, organization_id, number)
        if order is None:
            raise NotFoundError(f"Service order #{number} not found", {"os_number": number})
        return order

    async def list(
        self,
        session: AsyncSession,
        organization_id: int,
        status: Optional[Any] = None,
        lead_id: Optional[int] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> List[ServiceOrder]:
        return await self.repo.list_by_organization(
            session, organization_id,
            status=coerce_status(status) if status is not None else None,
            lead_id=lead_id, limit=limit, offset=offset,
        )

    async def update_status(
        self,
        session: AsyncSession,
        organization_id: int,
        service_order_id: int,
        new_status: Any,
        user_id: Optional[int] = None,
    ) -> ServiceOrder:
        """
        Change the status of a service order.

        An unchanged status is a no-op. Entering `completed` stamps `completed_at`, which is
        never cleared afterwards. Publishes `ServiceOrderStatusChanged`, which moves the lead
        to the stage mapped to the new status.

        Raises:
            ValidationError: For an unknown status
            NotFoundError: When the order is not in the organization
        """
        status = coerce_status(new_status)
        order = await self.get(session, organization_id, service_order_id)

        old_status = ServiceOrderStatus(order.status)
        if old_status == status:
            logger.debug(f"Service order {order.os_number} already in status {status.value}")
            return order

        updates: Dict[str, Any] = {"status": status}
        if status == ServiceOrderStatus.COMPLETED:
            updates["completed_at"] = utcnow()
        await self.repo.update(session, order, **updates)
        logger.info(f"Service order {order.os_number} status {old_status.value} -> {status.value}")

        await self.dispatcher.publish(session, ServiceOrderStatusChangedEvent(
            order.id, order.lead_id, organization_id, order.os_number,
            old_status.value, status.value, user_id
        ))
        return order

    async def update(
        self,
        session: AsyncSession,
        organization_id: int,
        service_order_id: int,
        updates: Dict[str, Any],
    ) -> ServiceOrder:
        """Edit order details. Status changes go through `update_status`."""
        rejected = sorted(set(updates) - set(EDITABLE_FIELDS))
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited on a service order: {', '.join(rejected)}",
                {"fields": rejected}
            )

        order = await self.get(session, organization_id, service_order_id)
        fields = dict(updates)
        if "primary_service_id" in fields:
            await self._validate_service(session, organization_id, fields["primary_service_id"])
        if "items" in fields:
            fields["items"] = await self._build_items(session, organization_id, fields["items"] or [])

        await self.repo.update(session, order, **fields)
        logger.info(f"Updated service order {order.os_number}: {', '.join(sorted(fields))}")
        return order

    async def delete(
        self,
        session: AsyncSession,
        organization_id: int,
        service_order_id: int,
        confirm: Optional[ConfirmCallback] = None,
        user_id: Optional[int] = None,
    ) -> bool:
        """Delete a service order after confirmation. The lead keeps its current stage."""
        order = await self.get(session, organization_id, service_order_id)
        if not is_confirmed(confirm, f"Delete service order #{order.os_number}?"):
            logger.info(f"Deletion of service order {order.os_number} declined")
            return False

        event = ServiceOrderDeletedEvent(order.id, order.lead_id, organization_id, order.os_number, user_id)
        await self.repo.delete(session, order)
        logger.info(f"Deleted service order {event.payload['os_number']}")

        await self.dispatcher.publish(session, event)
        return True

    async def _validate_service(self, session: AsyncSession, organization_id: int, service_id: Optional[int]) -> None:
        if service_id is None:
            return
        if await self.service_repo.get_by_id(session, organization_id, service_id) is None:
            raise NotFoundError(f"Service {service_id} not found", {"service_id": service_id})

    async def _build_items(
        self, session: AsyncSession, organization_id: int, items: List[Dict[str, Any]]
    ) -> List[ServiceOrderItem]:
        built = []
        for position, item in enumerate(items):
            try:
                cost = Decimal(str(item.get("cost") or 0))
            except InvalidOperation:
                raise ValidationError(f"Invalid cost on item {position}", {"item": position, "cost": item.get("cost")})
            if cost < 0:
                raise ValidationError(f"Item {position} cost cannot be negative", {"item": position})

            await self._validate_service(session, organization_id, item.get("service_id"))
            built.append(ServiceOrderItem(
                position=position,
                service_id=item.get("service_id"),
                description=(item.get("description") or "").strip(),
                parts=item.get("parts"),
                cost=cost,
            ))
        return built
