from __future__ import annotations
import logging
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.core.tenant import get_tenant_context, TenantContext
from app.core.exceptions import business_exception_to_http, BusinessLogicError
from app.api.deps import QueryConfirmation, get_confirmation
from app.services.appointment import AppointmentService
from app.schemas.common import DeleteResponse, ErrorResponse, ERROR_RESPONSES
from app.schemas.appointment import (
    AppointmentResponse,
    CreateAppointmentRequest,
    UpdateAppointmentRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/appointments", tags=["appointments"])


@router.get(
    "",
    response_model=List[AppointmentResponse],
    responses=ERROR_RESPONSES,
    summary="List appointments",
    description="Appointments ordered by date and time, optionally filtered by period, unit or lead."
)
async def list_appointments(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    unit_id: Optional[int] = Query(None, gt=0),
    lead_id: Optional[int] = Query(None, gt=0),
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[AppointmentResponse]:
    try:
        svc = AppointmentService()
        appointments = await svc.list(
            session, tenant.organization_id, date_from=date_from, date_to=date_to, unit_id=unit_id, lead_id=lead_id
        )
        return [AppointmentResponse.model_validate(a) for a in appointments]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error listing appointments: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list appointments")


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Schedule appointment",
    description="Schedule an appointment; the lead moves to the scheduled column."
)
async def create_appointment(
    payload: CreateAppointmentRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> AppointmentResponse:
    try:
        svc = AppointmentService()
        appointment = await svc.create(
            session,
            tenant.organization_id,
            lead_id=payload.lead_id,
            unit_id=payload.unit_id,
            appointment_date=payload.date,
            time=payload.time,
            service_id=payload.service_id,
            service_type=payload.service_type,
            notes=payload.notes,
            user_id=tenant.user_id,
        )
        await session.commit()
        return AppointmentResponse.model_validate(appointment)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error creating appointment: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error creating appointment: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create appointment")


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    responses=ERROR_RESPONSES,
    summary="Get appointment",
)
async def get_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> AppointmentResponse:
    try:
        svc = AppointmentService()
        appointment = await svc.get(session, tenant.organization_id, appointment_id)
        return AppointmentResponse.model_validate(appointment)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error getting appointment {appointment_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get appointment")


@router.patch(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    responses=ERROR_RESPONSES,
    summary="Update appointment",
    description="Edit slot, unit, service or notes. Recorded on the lead history."
)
async def update_appointment(
    appointment_id: int,
    payload: UpdateAppointmentRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> AppointmentResponse:
    try:
        svc = AppointmentService()
        appointment = await svc.update(
            session, tenant.organization_id, appointment_id,
            payload.model_dump(exclude_unset=True), user_id=tenant.user_id,
        )
        await session.commit()
        return AppointmentResponse.model_validate(appointment)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error updating appointment {appointment_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error updating appointment {appointment_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update appointment")


@router.post(
    "/{appointment_id}/attendance",
    response_model=AppointmentResponse,
    responses=ERROR_RESPONSES,
    summary="Register attendance",
    description="Mark the customer as attended; the lead moves to the in-service column. Repeating it changes nothing."
)
async def mark_attended(
    appointment_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> AppointmentResponse:
    try:
        svc = AppointmentService()
        appointment = await svc.mark_attended(session, tenant.organization_id, appointment_id, user_id=tenant.user_id)
        await session.commit()
        return AppointmentResponse.model_validate(appointment)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error registering attendance {appointment_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error registering attendance {appointment_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to register attendance")


@router.delete(
    "/{appointment_id}",
    response_model=DeleteResponse,
    responses={
        **ERROR_RESPONSES,
        428: {"model": ErrorResponse, "description": "Deletion not confirmed"},
    },
    summary="Delete appointment",
    description="Delete an appointment. Requires confirm=true."
)
async def delete_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
    confirmation: QueryConfirmation = Depends(get_confirmation),
) -> DeleteResponse:
    try:
        svc = AppointmentService()
        deleted = await svc.delete(
            session, tenant.organization_id, appointment_id, confirmation, user_id=tenant.user_id
        )
        if not deleted:
            raise confirmation.declined()
        await session.commit()
        return DeleteResponse(deleted=True, id=appointment_id)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error deleting appointment {appointment_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        logger.exception(f"Unexpected error deleting appointment {appointment_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete appointment")
