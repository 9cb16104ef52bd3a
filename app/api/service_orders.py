from __future__ import annotations
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.core.tenant import get_tenant_context, TenantContext
from app.core.exceptions import business_exception_to_http, BusinessLogicError
from app.core.service_order_workflow import ServiceOrderStatus, list_status_summaries
from app.api.deps import QueryConfirmation, get_confirmation
from app.services.service_order import ServiceOrderService
from app.schemas.common import DeleteResponse, ErrorResponse, ERROR_RESPONSES
from app.schemas.service_order import (
    CreateServiceOrderRequest,
    ServiceOrderResponse,
    ServiceOrderStatusSummary,
    UpdateServiceOrderRequest,
    UpdateServiceOrderStatusRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/service-orders", tags=["service-orders"])


@router.get(
    "",
    response_model=List[ServiceOrderResponse],
    responses=ERROR_RESPONSES,
    summary="List service orders",
    description="Service orders of the organization, newest first."
)
async def list_service_orders(
    status_filter: Optional[ServiceOrderStatus] = Query(None, alias="status"),
    lead_id: Optional[int] = Query(None, gt=0),
    limit: int = Query(500, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[ServiceOrderResponse]:
    try:
        svc = ServiceOrderService()
        orders = await svc.list(
            session, tenant.organization_id, status=status_filter, lead_id=lead_id, limit=limit, offset=offset
        )
        return [ServiceOrderResponse.model_validate(o) for o in orders]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error listing service orders: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list service orders")


@router.post(
    "",
    response_model=ServiceOrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create service order",
    description="Create a numbered service order; the lead moves to the in-service column."
)
async def create_service_order(
    payload: CreateServiceOrderRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceOrderResponse:
    try:
        svc = ServiceOrderService()
        order = await svc.create(
            session,
            tenant.organization_id,
            lead_id=payload.lead_id,
            items=[item.model_dump() for item in payload.items],
            vehicle_info=payload.vehicle_info,
            reported_issues=payload.reported_issues,
            initial_status=payload.status,
            primary_service_id=payload.primary_service_id,
            user_id=tenant.user_id,
        )
        await session.commit()
        logger.info(f"Service order {order.os_number} created in organization {tenant.organization_id}")
        return ServiceOrderResponse.model_validate(order)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error creating service order: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error creating service order: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create service order")


@router.get(
    "/statuses",
    response_model=List[ServiceOrderStatusSummary],
    summary="Service order statuses",
    description="Every status in workflow order with its display title, color and the pipeline column it moves the lead to."
)
async def list_service_order_statuses() -> List[ServiceOrderStatusSummary]:
    return [ServiceOrderStatusSummary(**summary) for summary in list_status_summaries()]


@router.get(
    "/by-number/{os_number}",
    response_model=ServiceOrderResponse,
    responses=ERROR_RESPONSES,
    summary="Get service order by number",
)
async def get_service_order_by_number(
    os_number: str,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceOrderResponse:
    try:
        svc = ServiceOrderService()
        order = await svc.get_by_number(session, tenant.organization_id, os_number)
        return ServiceOrderResponse.model_validate(order)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error getting service order {os_number}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get service order")


@router.get(
    "/{service_order_id}",
    response_model=ServiceOrderResponse,
    responses=ERROR_RESPONSES,
    summary="Get service order",
)
async def get_service_order(
    service_order_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceOrderResponse:
    try:
        svc = ServiceOrderService()
        order = await svc.get(session, tenant.organization_id, service_order_id)
        return ServiceOrderResponse.model_validate(order)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error getting service order {service_order_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get service order")


@router.patch(
    "/{service_order_id}",
    response_model=ServiceOrderResponse,
    responses=ERROR_RESPONSES,
    summary="Update service order",
    description="Edit vehicle, reported issues, items or primary service. Status has its own endpoint."
)
async def update_service_order(
    service_order_id: int,
    payload: UpdateServiceOrderRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceOrderResponse:
    try:
        svc = ServiceOrderService()
        updates = payload.model_dump(exclude_unset=True)
        order = await svc.update(session, tenant.organization_id, service_order_id, updates)
        await session.commit()
        return ServiceOrderResponse.model_validate(order)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error updating service order {service_order_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error updating service order {service_order_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update service order")


@router.put(
    "/{service_order_id}/status",
    response_model=ServiceOrderResponse,
    responses=ERROR_RESPONSES,
    summary="Change service order status",
    description="Change the status; the lead moves to the column mapped to the new status. An unchanged status is a no-op."
)
async def update_service_order_status(
    service_order_id: int,
    payload: UpdateServiceOrderStatusRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceOrderResponse:
    try:
        svc = ServiceOrderService()
        order = await svc.update_status(
            session, tenant.organization_id, service_order_id, payload.status, user_id=tenant.user_id
        )
        await session.commit()
        return ServiceOrderResponse.model_validate(order)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error changing status of service order {service_order_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error changing status of service order {service_order_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to change service order status")


@router.delete(
    "/{service_order_id}",
    response_model=DeleteResponse,
    responses={
        **ERROR_RESPONSES,
        428: {"model": ErrorResponse, "description": "Deletion not confirmed"},
    },
    summary="Delete service order",
    description="Delete a service order. The lead keeps its column. Requires confirm=true."
)
async def delete_service_order(
    service_order_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
    confirmation: QueryConfirmation = Depends(get_confirmation),
) -> DeleteResponse:
    try:
        svc = ServiceOrderService()
        deleted = await svc.delete(
            session, tenant.organization_id, service_order_id, confirmation, user_id=tenant.user_id
        )
        if not deleted:
            raise confirmation.declined()
        await session.commit()
        return DeleteResponse(deleted=True, id=service_order_id)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error deleting service order {service_order_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error deleting service order {service_order_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete service order")
