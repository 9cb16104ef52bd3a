from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.db.models import Lead, LeadHistory
from app.core.pipeline import HistoryType


class LeadHistoryRepository:
    """Append-only access to lead history. There is no update or per-entry delete."""

    async def append(
        self,
        session: AsyncSession,
        lead_id: int,
        type: HistoryType,
        description: str,
        timestamp: datetime,
        user_id: Optional[int] = None,
    ) -> LeadHistory:
        entity = LeadHistory(
            lead_id=lead_id,
            type=type,
            description=description,
            timestamp=timestamp,
            user_id=user_id,
        )
        session.add(entity)
        await session.flush()
        return entity

    async def latest_timestamp(self, session: AsyncSession, lead_id: int) -> Optional[datetime]:
        stmt = select(func.max(LeadHistory.timestamp)).where(LeadHistory.lead_id == lead_id)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def list_for_lead(self, session: AsyncSession, lead_id: int) -> List[LeadHistory]:
        """Newest first."""
        stmt = (
            select(LeadHistory)
            .where(LeadHistory.lead_id == lead_id)
            .order_by(LeadHistory.timestamp.desc(), LeadHistory.id.desc())
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def load_onto(self, session: AsyncSession, lead: Lead) -> Lead:
        """Populate `lead.history`, which is never loaded implicitly."""
        set_committed_value(lead, "history", await self.list_for_lead(session, lead.id))
        return lead

    async def count_for_lead(self, session: AsyncSession, lead_id: int, type: Optional[HistoryType] = None) -> int:
        stmt = select(func.count(LeadHistory.id)).where(LeadHistory.lead_id == lead_id)
        if type is not None:
            stmt = stmt.where(LeadHistory.type == type)
        return int((await session.execute(stmt)).scalar_one())
