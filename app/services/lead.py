from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.exceptions import (
    BusinessLogicError, ErrorHandler, NotFoundError, StorageError, ValidationError
)
from app.core.pipeline import ConfirmCallback, HistoryType, StageKey, is_confirmed
from app.db.models import Lead, LeadHistory, PipelineStage
from app.repositories.lead import LeadRepository
from app.repositories.lead_history import LeadHistoryRepository
from app.repositories.pipeline_stage import PipelineStageRepository
from app.repositories.unit import UnitRepository
from app.services.pipeline_sync import PipelineSynchronizer

logger = logging.getLogger(__name__)

LEAD_FIELDS = (
    "name", "phone", "email", "address", "birth_date", "national_id",
    "car_model", "car_plate", "unit_id", "assigned_user_id",
)


class LeadService:
    """Lead CRUD. Stage changes after creation go through the kanban service."""

    def __init__(self, synchronizer: Optional[PipelineSynchronizer] = None) -> None:
        self.repo = LeadRepository()
        self.history_repo = LeadHistoryRepository()
        self.stage_repo = PipelineStageRepository()
        self.unit_repo = UnitRepository()
        self.synchronizer = synchronizer or PipelineSynchronizer()

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        data: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> Lead:
        """
        Create a lead in the initial pipeline stage with a creation history entry.

        The initial stage is the `prospect` stage, or the first column when it was deleted.

        Raises:
            ValidationError: For missing or unknown fields, or an organization without columns
            NotFoundError: When the unit does not belong to the organization
        """
        try:
            ErrorHandler.validate_positive_integer(organization_id, "organization_id")
            ErrorHandler.validate_required_fields(data, ["name"])
            fields = self._clean_fields(data)
            await self._validate_unit(session, organization_id, fields.get("unit_id"))

            stage = await self._initial_stage(session, organization_id)
            lead = await self.repo.create(session, organization_id, stage.id, **fields)
            await self.history_repo.append(
                session,
                lead_id=lead.id,
                type=HistoryType.CREATION,
                description=f"Lead created in stage '{stage.name}'",
                timestamp=utcnow(),
                user_id=user_id,
            )

            logger.info(f"Created lead {lead.id} in stage {stage.id} for organization {organization_id}")
            return await self.get(session, organization_id, lead.id)

        except BusinessLogicError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error creating lead: {e}")
            raise StorageError(
                "An unexpected error occurred while creating the lead",
                {"error": str(e), "organization_id": organization_id}
            )

    async def get(self, session: AsyncSession, organization_id: int, lead_id: int) -> Lead:
        lead = await self.repo.get_by_id(session, organization_id, lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found", {"lead_id": lead_id})
        return await self.history_repo.load_onto(session, lead)

    async def list(
        self,
        session: AsyncSession,
        organization_id: int,
        column_id: Optional[int] = None,
        unit_id: Optional[int] = None,
        search: Optional[str] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> List[Lead]:
        return await self.repo.list_by_organization(
            session, organization_id, column_id=column_id, unit_id=unit_id,
            search=search, limit=limit, offset=offset,
        )

    async def history(self, session: AsyncSession, organization_id: int, lead_id: int) -> List[LeadHistory]:
        """History of a lead, newest first."""
        await self.get(session, organization_id, lead_id)
        return await self.history_repo.list_for_lead(session, lead_id)

    async def update(
        self,
        session: AsyncSession,
        organization_id: int,
        lead_id: int,
        data: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> Lead:
        """Edit lead details and record an `edit` history entry listing the changed fields."""
        if "column_id" in data:
            raise ValidationError(
                "Use the move endpoint to change a lead's stage",
                {"field": "column_id"}
            )
        lead = await self.get(session, organization_id, lead_id)
        fields = self._clean_fields(data)
        if "name" in fields:
            ErrorHandler.validate_required_fields(fields, ["name"])
        await self._validate_unit(session, organization_id, fields.get("unit_id"))

        changed = sorted(f for f, v in fields.items() if getattr(lead, f) != v)
        if not changed:
            return lead

        await self.repo.update(session, lead, **{f: fields[f] for f in changed})
        result = await self.synchronizer.add_lead_history_entry(
            session, lead.id, HistoryType.EDIT, f"Lead details updated: {', '.join(changed)}", user_id
        )
        if not result:
            logger.warning(f"Edit history not recorded for lead {lead.id}: {result.outcome.value}")

        logger.info(f"Updated lead {lead.id}: {', '.join(changed)}")
        return await self.get(session, organization_id, lead.id)

    async def delete(
        self,
        session: AsyncSession,
        organization_id: int,
        lead_id: int,
        confirm: Optional[ConfirmCallback] = None,
    ) -> bool:
        """Delete a lead with its history, appointments and service orders. False when declined."""
        lead = await self.repo.get_by_id(session, organization_id, lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found", {"lead_id": lead_id})

        prompt = f"Delete lead '{lead.name}' with its history, appointments and service orders?"
        if not is_confirmed(confirm, prompt):
            logger.info(f"Deletion of lead {lead_id} declined")
            return False

        await self.repo.delete(session, lead)
        logger.info(f"Deleted lead {lead_id} of organization {organization_id}")
        return True

    async def _initial_stage(self, session: AsyncSession, organization_id: int) -> PipelineStage:
        stage = await self.stage_repo.get_by_key(session, organization_id, StageKey.PROSPECT.value)
        if stage is not None:
            return stage
        columns = await self.stage_repo.list_ordered(session, organization_id)
        if not columns:
            raise ValidationError(
                "Organization has no pipeline columns",
                {"organization_id": organization_id}
            )
        return columns[0]

    async def _validate_unit(self, session: AsyncSession, organization_id: int, unit_id: Optional[int]) -> None:
        if unit_id is None:
            return
        if await self.unit_repo.get_by_id(session, organization_id, unit_id) is None:
            raise NotFoundError(f"Unit {unit_id} not found", {"unit_id": unit_id})

    @staticmethod
    def _clean_fields(data: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(set(data) - set(LEAD_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown lead fields: {', '.join(unknown)}", {"fields": unknown})
        return {f: (v.strip() if isinstance(v, str) else v) for f, v in data.items()}
