from __future__ import annotations
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ErrorHandler, NotFoundError, ValidationError
from app.db.models import Service
from app.repositories.service import ServiceRepository

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "price", "estimated_time_minutes")


def parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f"Invalid price: {value}", {"field": "price", "value": value})
    if price < 0:
        raise ValidationError("Price cannot be negative", {"field": "price", "value": value})
    return price


class CatalogService:
    """Service catalog of an organization. Services are deactivated, never deleted."""

    def __init__(self) -> None:
        self.repo = ServiceRepository()

    async def list(self, session: AsyncSession, organization_id: int, active_only: bool = False) -> List[Service]:
        return await self.repo.list_by_organization(session, organization_id, active_only=active_only)

    async def get(self, session: AsyncSession, organization_id: int, service_id: int) -> Service:
        service = await self.repo.get_by_id(session, organization_id, service_id)
        if service is None:
            raise NotFoundError(f"Service {service_id} not found", {"service_id": service_id})
        return service

    async def create(
        self,
        session: AsyncSession,
        organization_id: int,
        name: str,
        price: Any = 0,
        description: Optional[str] = None,
        estimated_time_minutes: Optional[int] = None,
    ) -> Service:
        ErrorHandler.validate_required_fields({"name": name}, ["name"])
        if estimated_time_minutes is not None:
            ErrorHandler.validate_positive_integer(estimated_time_minutes, "estimated_time_minutes")
        service = await self.repo.create(
            session, organization_id, name=name.strip(), price=parse_price(price),
            description=description, estimated_time_minutes=estimated_time_minutes,
        )
        logger.info(f"Created service {service.id} '{service.name}' for organization {organization_id}")
        return service

    async def update(
        self, session: AsyncSession, organization_id: int, service_id: int, updates: Dict[str, Any]
    ) -> Service:
        rejected = sorted(set(updates) - set(EDITABLE_FIELDS))
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited on a service: {', '.join(rejected)}",
                {"fields": rejected}
            )
        service = await self.get(session, organization_id, service_id)
        fields = dict(updates)
        if "name" in fields:
            ErrorHandler.validate_required_fields(fields, ["name"])
            fields["name"] = fields["name"].strip()
        if "price" in fields:
            fields["price"] = parse_price(fields["price"])
        if fields.get("estimated_time_minutes") is not None:
            ErrorHandler.validate_positive_integer(fields["estimated_time_minutes"], "estimated_time_minutes")
        return await self.repo.update(session, service, **fields)

    async def set_active(
        self, session: AsyncSession, organization_id: int, service_id: int, is_active: bool
    ) -> Service:
        """Activate or deactivate a service; existing orders keep referencing it."""
        service = await self.get(session, organization_id, service_id)
        if service.is_active != is_active:
            await self.repo.update(session, service, is_active=is_active)
            logger.info(f"Service {service_id} {'activated' if is_active else 'deactivated'}")
        return service
