from __future__ import annotations
import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ErrorHandler, NotFoundError
from app.db.models import Organization
from app.repositories.organization import OrganizationRepository
from app.services.kanban import KanbanService

logger = logging.getLogger(__name__)


class OrganizationService:
    def __init__(self) -> None:
        self.repo = OrganizationRepository()
        self.kanban = KanbanService()

    async def create(self, session: AsyncSession, name: str) -> Organization:
        """Create an organization with the default pipeline."""
        ErrorHandler.validate_required_fields({"name": name}, ["name"])
        organization = await self.repo.create(session, name=name.strip())
        await self.kanban.ensure_default_columns(session, organization.id)
        logger.info(f"Created organization {organization.id} '{organization.name}'")
        return organization

    async def get(self, session: AsyncSession, organization_id: int) -> Organization:
        organization = await self.repo.get_by_id(session, organization_id)
        if organization is None:
            raise NotFoundError(f"Organization {organization_id} not found", {"organization_id": organization_id})
        return organization

    async def list(self, session: AsyncSession) -> List[Organization]:
        return await self.repo.list_all(session)
