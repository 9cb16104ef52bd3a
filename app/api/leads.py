from __future__ import annotations
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.core.tenant import get_tenant_context, TenantContext
from app.core.exceptions import business_exception_to_http, BusinessLogicError
from app.api.deps import QueryConfirmation, get_confirmation, raise_for_sync_result
from app.services.kanban import KanbanService
from app.services.lead import LeadService
from app.schemas.common import DeleteResponse, ErrorResponse, ERROR_RESPONSES
from app.schemas.lead import (
    CreateLeadRequest,
    LeadDetailResponse,
    LeadHistoryResponse,
    LeadResponse,
    UpdateLeadRequest,
)
from app.schemas.pipeline import MoveLeadRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/leads", tags=["leads"])


@router.get(
    "",
    response_model=List[LeadResponse],
    responses=ERROR_RESPONSES,
    summary="List leads",
    description="Leads of the organization, newest first, optionally filtered by column, unit or a search term."
)
async def list_leads(
    column_id: Optional[int] = Query(None, gt=0),
    unit_id: Optional[int] = Query(None, gt=0),
    search: Optional[str] = Query(None, max_length=100, description="Matches name, phone, e-mail or plate"),
    limit: int = Query(500, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[LeadResponse]:
    try:
        svc = LeadService()
        leads = await svc.list(
            session, tenant.organization_id, column_id=column_id, unit_id=unit_id,
            search=search, limit=limit, offset=offset,
        )
        return [LeadResponse.model_validate(lead) for lead in leads]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error listing leads: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list leads")


@router.post(
    "",
    response_model=LeadDetailResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create lead",
    description="Create a lead in the initial pipeline column with a creation history entry."
)
async def create_lead(
    payload: CreateLeadRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> LeadDetailResponse:
    try:
        svc = LeadService()
        lead = await svc.create(
            session, tenant.organization_id, payload.model_dump(exclude_none=True), user_id=tenant.user_id
        )
        await session.commit()
        logger.info(f"Lead {lead.id} created in organization {tenant.organization_id}")
        return LeadDetailResponse.model_validate(lead)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error creating lead: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error creating lead: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create lead")


@router.get(
    "/{lead_id}",
    response_model=LeadDetailResponse,
    responses=ERROR_RESPONSES,
    summary="Get lead",
    description="A lead with its full history, newest entry first."
)
async def get_lead(
    lead_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> LeadDetailResponse:
    try:
        svc = LeadService()
        lead = await svc.get(session, tenant.organization_id, lead_id)
        return LeadDetailResponse.model_validate(lead)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error getting lead {lead_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get lead")


@router.get(
    "/{lead_id}/history",
    response_model=List[LeadHistoryResponse],
    responses=ERROR_RESPONSES,
    summary="Lead history",
)
async def get_lead_history(
    lead_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[LeadHistoryResponse]:
    try:
        svc = LeadService()
        entries = await svc.history(session, tenant.organization_id, lead_id)
        return [LeadHistoryResponse.model_validate(entry) for entry in entries]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error getting history of lead {lead_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get lead history")


@router.patch(
    "/{lead_id}",
    response_model=LeadDetailResponse,
    responses=ERROR_RESPONSES,
    summary="Update lead",
    description="Edit lead details. Stage changes go through the move endpoint."
)
async def update_lead(
    lead_id: int,
    payload: UpdateLeadRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> LeadDetailResponse:
    try:
        svc = LeadService()
        lead = await svc.update(
            session, tenant.organization_id, lead_id, payload.model_dump(exclude_unset=True), user_id=tenant.user_id
        )
        await session.commit()
        return LeadDetailResponse.model_validate(lead)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error updating lead {lead_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error updating lead {lead_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update lead")


@router.post(
    "/{lead_id}/move",
    response_model=LeadDetailResponse,
    responses={
        **ERROR_RESPONSES,
        409: {"model": ErrorResponse, "description": "Lead was modified concurrently"},
    },
    summary="Move lead",
    description="Move a lead to another pipeline column. Moving to its current column changes nothing."
)
async def move_lead(
    lead_id: int,
    payload: MoveLeadRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> LeadDetailResponse:
    try:
        kanban = KanbanService()
        result = await kanban.move_lead(
            session, tenant.organization_id, lead_id, payload.column_id, user_id=tenant.user_id
        )
        raise_for_sync_result(result)
        await session.commit()
        lead = await LeadService().get(session, tenant.organization_id, lead_id)
        return LeadDetailResponse.model_validate(lead)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error moving lead {lead_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error moving lead {lead_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to move lead")


@router.delete(
    "/{lead_id}",
    response_model=DeleteResponse,
    responses={
        **ERROR_RESPONSES,
        428: {"model": ErrorResponse, "description": "Deletion not confirmed"},
    },
    summary="Delete lead",
    description="Delete a lead with its history, appointments and service orders. Requires confirm=true."
)
async def delete_lead(
    lead_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
    confirmation: QueryConfirmation = Depends(get_confirmation),
) -> DeleteResponse:
    try:
        svc = LeadService()
        deleted = await svc.delete(session, tenant.organization_id, lead_id, confirmation)
        if not deleted:
            raise confirmation.declined()
        await session.commit()
        return DeleteResponse(deleted=True, id=lead_id)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error deleting lead {lead_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error deleting lead {lead_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete lead")
