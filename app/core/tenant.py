from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.session import get_db
from app.db.models import Organization


@dataclass
class TenantContext:
    organization_id: int
    user_id: Optional[int] = None


async def get_tenant_context(
    session: AsyncSession = Depends(get_db),
    x_organization_id: Optional[int] = Header(default=None),
    x_user_id: Optional[int] = Header(default=None),
) -> TenantContext:
    """Resolve the acting organization and user from request headers.

    X-Organization-ID selects the organization, falling back to DEFAULT_ORGANIZATION_ID.
    X-User-ID is optional and is recorded on lead history entries.
    """
    organization_id = x_organization_id
    if organization_id is None:
        organization_id = get_settings().DEFAULT_ORGANIZATION_ID
    if organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "X-Organization-ID header is required", "type": "validation_error"}
        )

    organization: Optional[Organization] = await session.get(Organization, organization_id)
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": f"Organization {organization_id} not found", "type": "not_found"}
        )

    return TenantContext(organization_id=int(organization.id), user_id=x_user_id)
