from __future__ import annotations
import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.core.tenant import get_tenant_context, TenantContext
from app.core.exceptions import business_exception_to_http, BusinessLogicError
from app.services.reports import ReportsService
from app.schemas.common import ERROR_RESPONSES
from app.schemas.reports import DashboardResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    responses=ERROR_RESPONSES,
    summary="Dashboard",
    description="Lead funnel, appointment attendance and service order revenue for a period."
)
async def dashboard(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    unit_id: Optional[int] = Query(None, gt=0),
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> DashboardResponse:
    try:
        figures = await ReportsService().dashboard(
            session, tenant.organization_id, date_from=date_from, date_to=date_to, unit_id=unit_id
        )
        return DashboardResponse.model_validate(figures)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error building dashboard: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to build dashboard")
