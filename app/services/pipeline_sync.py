"""
Pipeline state synchronizer.

The only place where a lead's stage and history change as a side effect of activity
elsewhere (appointments, service orders). Operations are best-effort: they never raise
storage problems across this boundary and report a `SyncResult` instead. Every mutation
runs inside a SAVEPOINT so a failed synchronization leaves the caller's transaction usable.
"""

from __future__ import annotations
import logging
from functools import lru_cache
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.clock import utcnow
from app.core.events import DomainEvent, EventDispatcher, EventType
from app.core.exceptions import ValidationError
from app.core.pipeline import HistoryType, StageKey, SyncOutcome, SyncResult
from app.core.service_order_workflow import get_status_summary, target_stage_for
from app.db.models import Lead
from app.repositories.lead import LeadRepository
from app.repositories.lead_history import LeadHistoryRepository
from app.repositories.pipeline_stage import PipelineStageRepository

logger = logging.getLogger(__name__)


def coerce_history_type(value: Union[HistoryType, str]) -> HistoryType:
    """Validate a history type. Unknown values are a caller bug, reported as ValidationError."""
    try:
        return HistoryType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid history type: {value}",
            {"history_type": str(value), "allowed": [t.value for t in HistoryType]}
        )


class PipelineSynchronizer:
    """Keeps lead stage and lead history consistent with appointments and service orders."""

    def __init__(self) -> None:
        self.leads = LeadRepository()
        self.history = LeadHistoryRepository()
        self.stages = PipelineStageRepository()

    async def get_lead_by_id(self, session: AsyncSession, lead_id: int) -> Optional[Lead]:
        """Fresh read of a lead with its history loaded. None when missing or unreadable."""
        try:
            lead = await self.leads.get_by_id_global(session, lead_id, refresh=True)
            return await self.history.load_onto(session, lead) if lead is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load lead {lead_id}: {e}")
            return None

    async def update_lead_status(
        self,
        session: AsyncSession,
        lead_id: int,
        new_stage_id: int,
        history_type: Union[HistoryType, str],
        description: str,
        user_id: Optional[int] = None,
    ) -> SyncResult:
        """Move a lead to a stage and append one history entry, as one row-level update."""
        history_type = coerce_history_type(history_type)
        return await self._apply(session, lead_id, history_type, description, user_id, new_stage_id=new_stage_id)

    async def add_lead_history_entry(
        self,
        session: AsyncSession,
        lead_id: int,
        history_type: Union[HistoryType, str],
        description: str,
        user_id: Optional[int] = None,
    ) -> SyncResult:
        """Append one history entry, leaving the stage untouched."""
        history_type = coerce_history_type(history_type)
        return await self._apply(session, lead_id, history_type, description, user_id)

    async def move_lead_to_stage(
        self,
        session: AsyncSession,
        lead_id: int,
        stage_key: Union[StageKey, str],
        history_type: Union[HistoryType, str],
        description: str,
        user_id: Optional[int] = None,
    ) -> SyncResult:
        """Resolve a stage key within the lead's organization, then `update_lead_status`."""
        history_type = coerce_history_type(history_type)
        key = StageKey(stage_key).value

        try:
            lead = await self.leads.get_by_id_global(session, lead_id)
            if lead is None:
                logger.warning(f"Lead {lead_id} not found while moving to stage '{key}'")
                return SyncResult(SyncOutcome.NOT_FOUND, lead_id, f"Lead {lead_id} not found")
            stage = await self.stages.get_by_key(session, lead.organization_id, key)
        except SQLAlchemyError as e:
            logger.error(f"Storage error resolving stage '{key}' for lead {lead_id}: {e}")
            return SyncResult(SyncOutcome.STORAGE_ERROR, lead_id, str(e))

        if stage is None:
            logger.warning(f"Organization {lead.organization_id} has no stage '{key}'; lead {lead_id} not moved")
            return SyncResult(SyncOutcome.NOT_FOUND, lead_id, f"Stage '{key}' not found")

        return await self.update_lead_status(session, lead_id, stage.id, history_type, description, user_id)

    async def _apply(
        self,
        session: AsyncSession,
        lead_id: int,
        history_type: HistoryType,
        description: str,
        user_id: Optional[int],
        new_stage_id: Optional[int] = None,
    ) -> SyncResult:
        try:
            async with session.begin_nested():
                lead = await self.leads.get_by_id_global(session, lead_id)
                if lead is None:
                    logger.warning(f"Lead {lead_id} not found; history '{history_type.value}' skipped")
                    return SyncResult(SyncOutcome.NOT_FOUND, lead_id, f"Lead {lead_id} not found")

                if new_stage_id is not None:
                    stage = await self.stages.get_by_id(session, lead.organization_id, new_stage_id)
                    if stage is None:
                        logger.warning(f"Stage {new_stage_id} not found for lead {lead_id}")
                        return SyncResult(SyncOutcome.NOT_FOUND, lead_id, f"Stage {new_stage_id} not found")
                    lead.column_id = stage.id

                timestamp = utcnow()
                latest = await self.history.latest_timestamp(session, lead_id)
                if latest is not None and latest > timestamp:
                    timestamp = latest

                # Flushes the lead update as well; the version check happens here
                await self.history.append(
                    session,
                    lead_id=lead_id,
                    type=history_type,
                    description=description,
                    timestamp=timestamp,
                    user_id=user_id,
                )
        except StaleDataError as e:
            logger.warning(f"Concurrent update on lead {lead_id}; '{history_type.value}' not applied: {e}")
            return SyncResult(SyncOutcome.CONFLICT, lead_id, "Lead was modified concurrently")
        except SQLAlchemyError as e:
            logger.error(f"Storage error synchronizing lead {lead_id}: {e}")
            return SyncResult(SyncOutcome.STORAGE_ERROR, lead_id, str(e))

        logger.info(f"Lead {lead_id} synchronized: {history_type.value}")
        return SyncResult(SyncOutcome.OK, lead_id)

    # Event handlers

    async def on_appointment_created(self, session: AsyncSession, event: DomainEvent) -> SyncResult:
        payload = event.payload
        description = f"Appointment scheduled for {payload['date']} at {payload['time']}"
        if payload.get("service_name"):
            description += f" ({payload['service_name']})"
        return await self.move_lead_to_stage(
            session, event.lead_id, StageKey.SCHEDULED, HistoryType.APPOINTMENT_CREATED, description, event.user_id
        )

    async def on_appointment_edited(self, session: AsyncSession, event: DomainEvent) -> SyncResult:
        payload = event.payload
        return await self.add_lead_history_entry(
            session, event.lead_id, HistoryType.APPOINTMENT_EDITED,
            f"Appointment updated to {payload['date']} at {payload['time']}", event.user_id
        )

    async def on_appointment_deleted(self, session: AsyncSession, event: DomainEvent) -> SyncResult:
        payload = event.payload
        return await self.add_lead_history_entry(
            session, event.lead_id, HistoryType.APPOINTMENT_DELETED,
            f"Appointment on {payload['date']} at {payload['time']} deleted", event.user_id
        )

    async def on_attendance_registered(self, session: AsyncSession, event: DomainEvent) -> SyncResult:
        payload = event.payload
        return await self.move_lead_to_stage(
            session, event.lead_id, StageKey.IN_SERVICE, HistoryType.ATTENDANCE_REGISTERED,
            f"Customer attended the appointment on {payload['date']} at {payload['time']}", event.user_id
        )

    async def on_service_order_created(self, session: AsyncSession, event: DomainEvent) -> SyncResult:
        return await self.move_lead_to_stage(
            session, event.lead_id, StageKey.IN_SERVICE, HistoryType.SERVICE_ORDER_CREATED,
            f"Service order #{event.payload['os_number']} created", event.user_id
        )

    async def on_service_order_status_changed(self, session: AsyncSession, event: DomainEvent) -> SyncResult:
        payload = event.payload
        new_status = payload["new_status"]
        title = get_status_summary(new_status)["title"]
        return await self.move_lead_to_stage(
            session, event.lead_id, target_stage_for(new_status), HistoryType.SERVICE_ORDER_STATUS,
            f"Service order #{payload['os_number']} updated to '{title}'", event.user_id
        )

    async def on_service_order_deleted(self, session: AsyncSession, event: DomainEvent) -> SyncResult:
        return await self.add_lead_history_entry(
            session, event.lead_id, HistoryType.SERVICE_ORDER_DELETED,
            f"Service order #{event.payload['os_number']} deleted", event.user_id
        )

    def register(self, dispatcher: EventDispatcher) -> EventDispatcher:
        """Subscribe the synchronizer's handlers to a dispatcher."""
        dispatcher.subscribe(EventType.APPOINTMENT_CREATED, self.on_appointment_created)
        dispatcher.subscribe(EventType.APPOINTMENT_EDITED, self.on_appointment_edited)
        dispatcher.subscribe(EventType.APPOINTMENT_DELETED, self.on_appointment_deleted)
        dispatcher.subscribe(EventType.ATTENDANCE_REGISTERED, self.on_attendance_registered)
        dispatcher.subscribe(EventType.SERVICE_ORDER_CREATED, self.on_service_order_created)
        dispatcher.subscribe(EventType.SERVICE_ORDER_STATUS_CHANGED, self.on_service_order_status_changed)
        dispatcher.subscribe(EventType.SERVICE_ORDER_DELETED, self.on_service_order_deleted)
        return dispatcher


def build_event_dispatcher() -> EventDispatcher:
    return PipelineSynchronizer().register(EventDispatcher())


@lru_cache
def get_event_dispatcher() -> EventDispatcher:
    """Process-wide dispatcher with the pipeline synchronizer subscribed."""
    return build_event_dispatcher()
