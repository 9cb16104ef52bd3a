"""
In-process domain event dispatcher.
Services publish what happened (an appointment was created, an order changed status)
and subscribers such as the pipeline synchronizer apply the cross-entity side effects
inside the same database session.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Domain event types."""
    APPOINTMENT_CREATED = "appointment.created"
    APPOINTMENT_EDITED = "appointment.edited"
    APPOINTMENT_DELETED = "appointment.deleted"
    ATTENDANCE_REGISTERED = "appointment.attendance_registered"

    SERVICE_ORDER_CREATED = "service_order.created"
    SERVICE_ORDER_STATUS_CHANGED = "service_order.status.changed"
    SERVICE_ORDER_DELETED = "service_order.deleted"


@dataclass
class DomainEvent:
    """Base domain event structure."""
    event_type: str
    aggregate_type: str
    aggregate_id: str
    payload: Dict[str, Any]
    organization_id: Optional[int] = None
    user_id: Optional[int] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def lead_id(self) -> Optional[int]:
        return self.payload.get("lead_id")


class _AppointmentEvent(DomainEvent):
    event_kind: EventType

    def __init__(
        self,
        appointment_id: int,
        lead_id: int,
        organization_id: int,
        appointment_date: date,
        appointment_time: str,
        service_name: Optional[str] = None,
        user_id: Optional[int] = None,
    ):
        super().__init__(
            event_type=self.event_kind,
            aggregate_type="appointment",
            aggregate_id=str(appointment_id),
            payload={
                "appointment_id": appointment_id,
                "lead_id": lead_id,
                "date": appointment_date,
                "time": appointment_time,
                "service_name": service_name,
            },
            organization_id=organization_id,
            user_id=user_id,
        )


class AppointmentCreatedEvent(_AppointmentEvent):
    """Fired when an appointment is scheduled for a lead."""
    event_kind = EventType.APPOINTMENT_CREATED


class AppointmentEditedEvent(_AppointmentEvent):
    """Fired when an appointment's slot, service or notes change."""
    event_kind = EventType.APPOINTMENT_EDITED


class AppointmentDeletedEvent(_AppointmentEvent):
    """Fired after an appointment was removed."""
    event_kind = EventType.APPOINTMENT_DELETED


class AttendanceRegisteredEvent(_AppointmentEvent):
    """Fired when the customer showed up for an appointment."""
    event_kind = EventType.ATTENDANCE_REGISTERED


class ServiceOrderCreatedEvent(DomainEvent):
    """Fired when a service order is created."""

    def __init__(self, service_order_id: int, lead_id: int, organization_id: int, os_number: str,
                 status: str, user_id: Optional[int] = None):
        super().__init__(
            event_type=EventType.SERVICE_ORDER_CREATED,
            aggregate_type="service_order",
            aggregate_id=str(service_order_id),
            payload={
                "service_order_id": service_order_id,
                "lead_id": lead_id,
                "os_number": os_number,
                "status": status,
            },
            organization_id=organization_id,
            user_id=user_id,
        )


class ServiceOrderStatusChangedEvent(DomainEvent):
    """Fired when a service order status actually changes."""

    def __init__(self, service_order_id: int, lead_id: int, organization_id: int, os_number: str,
                 old_status: str, new_status: str, user_id: Optional[int] = None):
        super().__init__(
            event_type=EventType.SERVICE_ORDER_STATUS_CHANGED,
            aggregate_type="service_order",
            aggregate_id=str(service_order_id),
            payload={
                "service_order_id": service_order_id,
                "lead_id": lead_id,
                "os_number": os_number,
                "old_status": old_status,
                "new_status": new_status,
            },
            organization_id=organization_id,
            user_id=user_id,
        )


class ServiceOrderDeletedEvent(DomainEvent):
    """Fired after a service order was removed."""

    def __init__(self, service_order_id: int, lead_id: int, organization_id: int, os_number: str,
                 user_id: Optional[int] = None):
        super().__init__(
            event_type=EventType.SERVICE_ORDER_DELETED,
            aggregate_type="service_order",
            aggregate_id=str(service_order_id),
            payload={
                "service_order_id": service_order_id,
                "lead_id": lead_id,
                "os_number": os_number,
            },
            organization_id=organization_id,
            user_id=user_id,
        )


EventHandler = Callable[[AsyncSession, DomainEvent], Awaitable[Any]]


class EventDispatcher:
    """
    Synchronous in-process publish/subscribe.
    Handlers run in subscription order, awaited one after another, in the publisher's session.
    """

    def __init__(self):
        self._event_handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register an event handler for a specific event type."""
        key = EventType(event_type).value
        self._event_handlers.setdefault(key, []).append(handler)
        logger.debug(f"Registered handler {getattr(handler, '__qualname__', handler)} for {key}")

    def handlers_for(self, event_type: str) -> List[EventHandler]:
        return list(self._event_handlers.get(EventType(event_type).value, []))

    async def publish(self, session: AsyncSession, event: DomainEvent) -> List[Any]:
        """
        Deliver an event to every subscriber.

        Returns:
            The handlers' results, in subscription order
        """
        if not event.event_type or not event.aggregate_type or not event.aggregate_id:
            raise ValidationError("Event must have type, aggregate_type, and aggregate_id")

        handlers = self.handlers_for(event.event_type)
        if not handlers:
            logger.debug(f"No handlers for event {event.event_type}")
            return []

        results = []
        for handler in handlers:
            try:
                results.append(await handler(session, event))
            except Exception as e:
                logger.error(f"Handler failed for event {event.event_type} {event.aggregate_type}:{event.aggregate_id}: {e}")
                raise

        logger.info(f"Published event {EventType(event.event_type).value} for {event.aggregate_type}:{event.aggregate_id}")
        return results
