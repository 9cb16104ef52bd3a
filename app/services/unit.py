from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, ErrorHandler, NotFoundError, ValidationError
from app.core.pipeline import ConfirmCallback, is_confirmed
from app.db.models import Unit
from app.repositories.unit import UnitRepository

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "address", "phone")


class UnitService:
    """Shop locations of an organization."""

    def __init__(self) -> None:
        self.repo = UnitRepository()

    async def list(self, session: AsyncSession, organization_id: int) -> List[Unit]:
        return await self.repo.list_by_organization(session, organization_id)

    async def get(self, session: AsyncSession, organization_id: int, unit_id: int) -> Unit:
        unit = await self.repo.get_by_id(session, organization_id, unit_id)
        if unit is None:
            raise NotFoundError(f"Unit {unit_id} not found", {"unit_id": unit_id})
        return unit

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        name: str,
        address: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Unit:
        ErrorHandler.validate_required_fields({"name": name}, ["name"])
        unit = await self.repo.create(session, organization_id, name=name.strip(), address=address, phone=phone)
        logger.info(f"Created unit {unit.id} '{unit.name}' for organization {organization_id}")
        return unit

    async def update(
        self, session: AsyncSession, organization_id: int, unit_id: int, updates: Dict[str, Any]
    ) -> Unit:
        rejected = sorted(set(updates) - set(EDITABLE_FIELDS))
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited on a unit: {', '.join(rejected)}",
                {"fields": rejected}
            )
        unit = await self.get(session, organization_id, unit_id)
        if "name" in updates:
            ErrorHandler.validate_required_fields(updates, ["name"])
        for field, value in updates.items():
            setattr(unit, field, value.strip() if isinstance(value, str) else value)
        await session.flush()
        return unit

    async def delete(
        self,
        session: AsyncSession,
        organization_id: int,
        unit_id: int,
        confirm: Optional[ConfirmCallback] = None,
    ) -> bool:
        """
        Hard-delete a unit. Leads keep existing without a unit; a unit that still has
        appointments cannot be deleted.
        """
        unit = await self.get(session, organization_id, unit_id)
        appointments = await self.repo.count_appointments(session, unit.id)
        if appointments:
            raise ConflictError(
                f"Unit '{unit.name}' still has {appointments} appointment(s)",
                {"unit_id": unit_id, "appointments": appointments}
            )
        if not is_confirmed(confirm, f"Delete unit '{unit.name}'?"):
            logger.info(f"Deletion of unit {unit_id} declined")
            return False

        await self.repo.delete(session, unit)
        logger.info(f"Deleted unit {unit_id} of organization {organization_id}")
        return True
