from __future__ import annotations
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.core.tenant import get_tenant_context, TenantContext
from app.core.exceptions import business_exception_to_http, BusinessLogicError
from app.api.deps import QueryConfirmation, get_confirmation
from app.services.kanban import KanbanService
from app.schemas.common import DeleteResponse, ErrorResponse, ERROR_RESPONSES
from app.schemas.pipeline import (
    ColumnResponse,
    CreateColumnRequest,
    ReorderColumnsRequest,
    UpdateColumnRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])


@router.get(
    "/columns",
    response_model=List[ColumnResponse],
    responses=ERROR_RESPONSES,
    summary="List pipeline columns",
    description="Columns of the organization's kanban in pipeline order."
)
async def list_columns(
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[ColumnResponse]:
    try:
        svc = KanbanService()
        columns = await svc.list_columns(session, tenant.organization_id)
        return [ColumnResponse.model_validate(c) for c in columns]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error listing columns: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list columns")


@router.post(
    "/columns/defaults",
    response_model=List[ColumnResponse],
    responses=ERROR_RESPONSES,
    summary="Seed default columns",
    description="Create the default pipeline when the organization has no columns. Existing columns are left as they are."
)
async def ensure_default_columns(
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[ColumnResponse]:
    try:
        svc = KanbanService()
        columns = await svc.ensure_default_columns(session, tenant.organization_id)
        await session.commit()
        return [ColumnResponse.model_validate(c) for c in columns]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error seeding default columns: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to seed default columns")


@router.post(
    "/columns",
    response_model=ColumnResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Add a column",
    description="Append a column at the end of the pipeline."
)
async def add_column(
    payload: CreateColumnRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ColumnResponse:
    try:
        svc = KanbanService()
        column = await svc.add_column(session, tenant.organization_id, payload.name, payload.color)
        await session.commit()
        return ColumnResponse.model_validate(column)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error adding column: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error adding column: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to add column")


@router.patch(
    "/columns/{column_id}",
    response_model=ColumnResponse,
    responses=ERROR_RESPONSES,
    summary="Edit a column",
    description="Rename or recolor a column. Use the reorder endpoint to change its position."
)
async def edit_column(
    column_id: int,
    payload: UpdateColumnRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ColumnResponse:
    try:
        svc = KanbanService()
        column = await svc.edit_column(
            session, tenant.organization_id, column_id, payload.model_dump(exclude_unset=True, exclude_none=True)
        )
        await session.commit()
        return ColumnResponse.model_validate(column)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error editing column {column_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error editing column {column_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to edit column")


@router.delete(
    "/columns/{column_id}",
    response_model=DeleteResponse,
    responses={
        **ERROR_RESPONSES,
        428: {"model": ErrorResponse, "description": "Deletion not confirmed"},
    },
    summary="Delete a column",
    description="Delete a column; its leads move to the first remaining column. Requires confirm=true. The last column cannot be deleted."
)
async def delete_column(
    column_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
    confirmation: QueryConfirmation = Depends(get_confirmation),
) -> DeleteResponse:
    try:
        svc = KanbanService()
        deleted = await svc.delete_column(session, tenant.organization_id, column_id, confirmation)
        if not deleted:
            raise confirmation.declined()
        await session.commit()
        return DeleteResponse(deleted=True, id=column_id)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error deleting column {column_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error deleting column {column_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete column")


@router.post(
    "/columns/reorder",
    response_model=List[ColumnResponse],
    responses=ERROR_RESPONSES,
    summary="Reorder columns",
    description="Move the dragged column to the target column's position."
)
async def reorder_columns(
    payload: ReorderColumnsRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[ColumnResponse]:
    try:
        svc = KanbanService()
        columns = await svc.reorder_columns(session, tenant.organization_id, payload.dragged_id, payload.target_id)
        await session.commit()
        return [ColumnResponse.model_validate(c) for c in columns]
    except BusinessLogicError as e:
        logger.warning(f"Business logic error reordering columns: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error reordering columns: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to reorder columns")
