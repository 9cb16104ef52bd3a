from __future__ import annotations
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.events import (
    AppointmentCreatedEvent, AppointmentDeletedEvent, AppointmentEditedEvent,
    AttendanceRegisteredEvent, EventDispatcher,
)
from app.core.exceptions import (
    AppointmentError, BusinessLogicError, ErrorHandler, NotFoundError, ValidationError
)
from app.core.pipeline import ConfirmCallback, is_confirmed
from app.db.models import Appointment
from app.repositories.appointment import AppointmentRepository
from app.repositories.lead import LeadRepository
from app.repositories.service import ServiceRepository
from app.repositories.unit import UnitRepository
from app.services.pipeline_sync import get_event_dispatcher

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
EDITABLE_FIELDS = ("unit_id", "date", "time", "service_id", "service_type", "notes")


def validate_time(value: Any) -> str:
    """Appointment times are 24h HH:MM strings."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise ValidationError(
            f"Invalid appointment time: {value}. Expected HH:MM",
            {"field": "time", "value": value}
        )
    return value.strip()


class AppointmentService:
    """Appointment scheduling. Every change is published so the lead pipeline follows it."""

    def __init__(self, dispatcher: Optional[EventDispatcher] = None) -> None:
        self.repo = AppointmentRepository()
        self.lead_repo = LeadRepository()
        self.unit_repo = UnitRepository()
        self.service_repo = ServiceRepository()
        self.dispatcher = dispatcher or get_event_dispatcher()

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        lead_id: int,
        unit_id: int,
        appointment_date: date,
        time: str,
        service_id: Optional[int] = None,
        service_type: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> Appointment:
        """
        Schedule an appointment. Double booking of a slot is allowed.

        Publishes `AppointmentCreated`, which moves the lead to the scheduled stage.

        Raises:
            ValidationError: For a malformed time
            NotFoundError: When the lead, unit or service is not in the organization
        """
        try:
            ErrorHandler.validate_positive_integer(organization_id, "organization_id")
            time = validate_time(time)
            if await self.lead_repo.get_by_id(session, organization_id, lead_id) is None:
                raise NotFoundError(f"Lead {lead_id} not found", {"lead_id": lead_id})
            await self._validate_unit(session, organization_id, unit_id)
            service_name = await self._service_name(session, organization_id, service_id, service_type)

            appointment = await self.repo.create(
                session,
                organization_id,
                lead_id=lead_id,
                unit_id=unit_id,
                date=appointment_date,
                time=time,
                service_id=service_id,
                service_type=service_type,
                notes=notes,
            )
            logger.info(f"Created appointment {appointment.id} for lead {lead_id} on {appointment_date} {time}")

            await self.dispatcher.publish(session, AppointmentCreatedEvent(
                appointment.id, lead_id, organization_id, appointment_date, time, service_name, user_id
            ))
            return appointment

        except BusinessLogicError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error creating appointment: {e}")
            raise AppointmentError(
                "An unexpected error occurred while creating the appointment",
                {"error": str(e), "lead_id": lead_id}
            )

    async def get(self, session: AsyncSession, organization_id: int, appointment_id: int) -> Appointment:
        appointment = await self.repo.get_by_id(session, organization_id, appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found", {"appointment_id": appointment_id})
        return appointment

    async def list(
        self,
        session: AsyncSession,
        organization_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        unit_id: Optional[int] = None,
        lead_id: Optional[int] = None,
    ) -> List[Appointment]:
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must not be after date_to", {"date_from": str(date_from), "date_to": str(date_to)})
        return await self.repo.list_by_organization(
            session, organization_id, date_from=date_from, date_to=date_to, unit_id=unit_id, lead_id=lead_id
        )

    async def update(
        self,
        session: AsyncSession,
        organization_id: int,
        appointment_id: int,
        updates: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> Appointment:
        """Edit an appointment. Attendance is never changed here."""
        rejected = sorted(set(updates) - set(EDITABLE_FIELDS))
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited on an appointment: {', '.join(rejected)}",
                {"fields": rejected}
            )

        appointment = await self.get(session, organization_id, appointment_id)
        fields = dict(updates)
        if "time" in fields:
            fields["time"] = validate_time(fields["time"])
        if fields.get("unit_id") is not None:
            await self._validate_unit(session, organization_id, fields["unit_id"])
        elif "unit_id" in fields:
            raise ValidationError("unit_id cannot be empty", {"field": "unit_id"})

        changed = {f: v for f, v in fields.items() if getattr(appointment, f) != v}
        if not changed:
            return appointment

        service_name = await self._service_name(
            session, organization_id,
            changed.get("service_id", appointment.service_id),
            changed.get("service_type", appointment.service_type),
        )
        await self.repo.update(session, appointment, **changed)
        logger.info(f"Updated appointment {appointment.id}: {', '.join(sorted(changed))}")

        await self.dispatcher.publish(session, AppointmentEditedEvent(
            appointment.id, appointment.lead_id, organization_id,
            appointment.date, appointment.time, service_name, user_id
        ))
        return appointment

    async def delete(
        self,
        session: AsyncSession,
        organization_id: int,
        appointment_id: int,
        confirm: Optional[ConfirmCallback] = None,
        user_id: Optional[int] = None,
    ) -> bool:
        """Delete an appointment after confirmation. False when declined."""
        appointment = await self.get(session, organization_id, appointment_id)
        if not is_confirmed(confirm, f"Delete the appointment on {appointment.date} at {appointment.time}?"):
            logger.info(f"Deletion of appointment {appointment_id} declined")
            return False

        event = AppointmentDeletedEvent(
            appointment.id, appointment.lead_id, organization_id,
            appointment.date, appointment.time, None, user_id
        )
        await self.repo.delete(session, appointment)
        logger.info(f"Deleted appointment {appointment_id}")

        await self.dispatcher.publish(session, event)
        return True

    async def mark_attended(
        self,
        session: AsyncSession,
        organization_id: int,
        appointment_id: int,
        user_id: Optional[int] = None,
    ) -> Appointment:
        """
        Register that the customer showed up. One-way: repeating it changes nothing
        and records no further history.
        """
        appointment = await self.get(session, organization_id, appointment_id)
        if appointment.attended:
            logger.debug(f"Appointment {appointment_id} already marked as attended")
            return appointment

        await self.repo.update(session, appointment, attended=True)
        logger.info(f"Registered attendance for appointment {appointment_id}")

        await self.dispatcher.publish(session, AttendanceRegisteredEvent(
            appointment.id, appointment.lead_id, organization_id,
            appointment.date, appointment.time, None, user_id
        ))
        return appointment

    async def _validate_unit(self, session: AsyncSession, organization_id: int, unit_id: int) -> None:
        if await self.unit_repo.get_by_id(session, organization_id, unit_id) is None:
            raise NotFoundError(f"Unit {unit_id} not found", {"unit_id": unit_id})

    async def _service_name(
        self,
        session: AsyncSession,
        organization_id: int,
        service_id: Optional[int],
        service_type: Optional[str],
    ) -> Optional[str]:
        if service_id is None:
            return service_type
        service = await self.service_repo.get_by_id(session, organization_id, service_id)
        if service is None:
            raise NotFoundError(f"Service {service_id} not found", {"service_id": service_id})
        return service.name
