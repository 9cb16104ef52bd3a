from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import PipelineStage
from app.core.pipeline import StageColor


class PipelineStageRepository:
    """Repository for pipeline stages (kanban columns), always scoped to one organization."""

    async def list_ordered(self, session: AsyncSession, organization_id: int) -> List[PipelineStage]:
        stmt = (
            select(PipelineStage)
            .where(PipelineStage.organization_id == organization_id)
            .order_by(PipelineStage.order, PipelineStage.id)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def get_by_id(self, session: AsyncSession, organization_id: int, stage_id: int) -> Optional[PipelineStage]:
        stmt = select(PipelineStage).where(
            PipelineStage.id == stage_id, PipelineStage.organization_id == organization_id
        )
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def get_by_key(self, session: AsyncSession, organization_id: int, key: str) -> Optional[PipelineStage]:
        stmt = select(PipelineStage).where(
            PipelineStage.key == key, PipelineStage.organization_id == organization_id
        )
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def count(self, session: AsyncSession, organization_id: int) -> int:
        stmt = select(func.count(PipelineStage.id)).where(PipelineStage.organization_id == organization_id)
        return int((await session.execute(stmt)).scalar_one())

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        name: str,
        color: StageColor,
        order: int,
        key: Optional[str] = None,
    ) -> PipelineStage:
        entity = PipelineStage(organization_id=organization_id, name=name, color=color, order=order, key=key)
        session.add(entity)
        await session.flush()
        return entity

    async def delete(self, session: AsyncSession, stage: PipelineStage) -> None:
        await session.delete(stage)
        await session.flush()
