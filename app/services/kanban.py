from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ErrorHandler, NotFoundError, PipelineError, ValidationError
)
from app.core.pipeline import (
    DEFAULT_STAGES, ConfirmCallback, HistoryType, StageColor, SyncResult, is_confirmed
)
from app.db.models import PipelineStage
from app.repositories.lead import LeadRepository
from app.repositories.pipeline_stage import PipelineStageRepository
from app.services.pipeline_sync import PipelineSynchronizer

logger = logging.getLogger(__name__)

EDITABLE_COLUMN_FIELDS = ("name", "color")


def parse_color(value: Any) -> StageColor:
    try:
        return StageColor(value)
    except ValueError:
        raise ValidationError(
            f"Invalid column color: {value}",
            {"color": value, "allowed": [c.value for c in StageColor]}
        )


class KanbanService:
    """Pipeline columns: ordering, lifecycle and moving leads between them."""

    def __init__(self, synchronizer: Optional[PipelineSynchronizer] = None) -> None:
        self.stages = PipelineStageRepository()
        self.leads = LeadRepository()
        self.synchronizer = synchronizer or PipelineSynchronizer()

    async def list_columns(self, session: AsyncSession, organization_id: int) -> List[PipelineStage]:
        return await self.stages.list_ordered(session, organization_id)

    async def ensure_default_columns(self, session: AsyncSession, organization_id: int) -> List[PipelineStage]:
        """Seed the default pipeline when an organization has no columns yet."""
        if await self.stages.count(session, organization_id) > 0:
            return await self.stages.list_ordered(session, organization_id)

        for order, (key, name, color) in enumerate(DEFAULT_STAGES):
            await self.stages.create(session, organization_id, name=name, color=color, order=order, key=key.value)
        logger.info(f"Seeded {len(DEFAULT_STAGES)} default pipeline stages for organization {organization_id}")
        return await self.stages.list_ordered(session, organization_id)

    async def add_column(
        self, session: AsyncSession, organization_id: int, name: str, color: Any = StageColor.BLUE
    ) -> PipelineStage:
        """Append a column at the end of the pipeline. Names need not be unique."""
        ErrorHandler.validate_required_fields({"name": name}, ["name"])
        stage_color = parse_color(color)
        order = await self.stages.count(session, organization_id)
        stage = await self.stages.create(
            session, organization_id, name=name.strip(), color=stage_color, order=order
        )
        logger.info(f"Added column {stage.id} '{stage.name}' at position {order} for organization {organization_id}")
        return stage

    async def edit_column(
        self, session: AsyncSession, organization_id: int, column_id: int, updates: Dict[str, Any]
    ) -> PipelineStage:
        """Rename or recolor a column. Position changes go through `reorder_columns`."""
        rejected = sorted(set(updates) - set(EDITABLE_COLUMN_FIELDS))
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited on a column: {', '.join(rejected)}",
                {"fields": rejected}
            )

        stage = await self._get_column(session, organization_id, column_id)
        if "name" in updates:
            ErrorHandler.validate_required_fields(updates, ["name"])
            stage.name = updates["name"].strip()
        if "color" in updates:
            stage.color = parse_color(updates["color"])
        await session.flush()
        return stage

    async def delete_column(
        self,
        session: AsyncSession,
        organization_id: int,
        column_id: int,
        confirm: Optional[ConfirmCallback] = None,
    ) -> bool:
        """
        Delete a column after confirmation.

        Leads of the deleted column move to the first remaining column and the survivors
        are renumbered contiguously.

        Returns:
            False when the caller declined the confirmation; nothing changed then

        Raises:
            ValidationError: When the column is the last one of the pipeline
            NotFoundError: When the column does not exist in this organization
        """
        stage = await self._get_column(session, organization_id, column_id)

        columns = await self.stages.list_ordered(session, organization_id)
        if len(columns) <= 1:
            raise ValidationError(
                "The pipeline must keep at least one column",
                {"column_id": column_id}
            )

        if not is_confirmed(confirm, f"Delete column '{stage.name}'? Its leads will move to the first column."):
            logger.info(f"Deletion of column {column_id} declined")
            return False

        survivors = [c for c in columns if c.id != stage.id]
        fallback = survivors[0]
        moved = await self.leads.reassign_column(session, organization_id, stage.id, fallback.id)
        await self.stages.delete(session, stage)
        await self._renumber(session, survivors)

        logger.info(
            f"Deleted column {column_id} of organization {organization_id}; "
            f"{moved} lead(s) moved to column {fallback.id}"
        )
        return True

    async def reorder_columns(
        self, session: AsyncSession, organization_id: int, dragged_id: int, target_id: int
    ) -> List[PipelineStage]:
        """Move the dragged column to the target's position (index taken before removal)."""
        columns = await self.stages.list_ordered(session, organization_id)
        ids = [c.id for c in columns]
        if dragged_id not in ids:
            raise NotFoundError(f"Column {dragged_id} not found", {"column_id": dragged_id})
        if target_id not in ids:
            raise NotFoundError(f"Column {target_id} not found", {"column_id": target_id})
        if dragged_id == target_id:
            return columns

        target_index = ids.index(target_id)
        dragged = columns.pop(ids.index(dragged_id))
        columns.insert(target_index, dragged)
        await self._renumber(session, columns)

        logger.info(f"Moved column {dragged_id} to position {target_index} for organization {organization_id}")
        return columns

    async def move_lead(
        self,
        session: AsyncSession,
        organization_id: int,
        lead_id: int,
        target_column_id: int,
        user_id: Optional[int] = None,
    ) -> Optional[SyncResult]:
        """
        Move a lead to another column. Any column may follow any other.

        Returns:
            The synchronization result, or None when the lead already sits in the target column
        """
        lead = await self.leads.get_by_id(session, organization_id, lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found", {"lead_id": lead_id})
        target = await self._get_column(session, organization_id, target_column_id)

        if lead.column_id == target.id:
            return None

        result = await self.synchronizer.update_lead_status(
            session, lead.id, target.id, HistoryType.STAGE_CHANGE,
            f"Moved to stage '{target.name}'", user_id
        )
        if not result:
            logger.warning(f"Lead {lead_id} not moved to column {target.id}: {result.outcome.value}")
        return result

    async def _get_column(self, session: AsyncSession, organization_id: int, column_id: int) -> PipelineStage:
        stage = await self.stages.get_by_id(session, organization_id, column_id)
        if stage is None:
            raise NotFoundError(f"Column {column_id} not found", {"column_id": column_id})
        return stage

    async def _renumber(self, session: AsyncSession, columns: List[PipelineStage]) -> None:
        try:
            for index, column in enumerate(columns):
                if column.order != index:
                    column.order = index
            await session.flush()
        except SQLAlchemyError as e:
            logger.exception(f"Failed to renumber pipeline columns: {e}")
            raise PipelineError("Failed to renumber pipeline columns", {"error": str(e)})
