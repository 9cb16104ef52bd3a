from __future__ import annotations
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.core.tenant import get_tenant_context, TenantContext
from app.core.exceptions import business_exception_to_http, BusinessLogicError
from app.api.deps import QueryConfirmation, get_confirmation
from app.services.catalog import CatalogService
from app.services.organization import OrganizationService
from app.services.unit import UnitService
from app.schemas.common import DeleteResponse, ErrorResponse, ERROR_RESPONSES
from app.schemas.settings import (
    CreateOrganizationRequest,
    CreateServiceRequest,
    CreateUnitRequest,
    OrganizationResponse,
    ServiceResponse,
    UnitResponse,
    UpdateServiceRequest,
    UpdateUnitRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["settings"])


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.exception(f"Unexpected error while trying to {action}: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}")


# Organizations

@router.get("/organizations", response_model=List[OrganizationResponse], summary="List organizations")
async def list_organizations(session: AsyncSession = Depends(get_db)) -> List[OrganizationResponse]:
    try:
        organizations = await OrganizationService().list(session)
        return [OrganizationResponse.model_validate(o) for o in organizations]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("list organizations", e)


@router.post(
    "/organizations",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create organization",
    description="Create an organization with the default pipeline columns."
)
async def create_organization(
    payload: CreateOrganizationRequest,
    session: AsyncSession = Depends(get_db),
) -> OrganizationResponse:
    try:
        organization = await OrganizationService().create(session, payload.name)
        await session.commit()
        return OrganizationResponse.model_validate(organization)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error creating organization: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("create organization", e)


@router.get(
    "/organizations/{organization_id}",
    response_model=OrganizationResponse,
    responses=ERROR_RESPONSES,
    summary="Get organization",
)
async def get_organization(organization_id: int, session: AsyncSession = Depends(get_db)) -> OrganizationResponse:
    try:
        organization = await OrganizationService().get(session, organization_id)
        return OrganizationResponse.model_validate(organization)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("get organization", e)


# Units

@router.get("/settings/units", response_model=List[UnitResponse], responses=ERROR_RESPONSES, summary="List units")
async def list_units(
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[UnitResponse]:
    try:
        units = await UnitService().list(session, tenant.organization_id)
        return [UnitResponse.model_validate(u) for u in units]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("list units", e)


@router.post(
    "/settings/units",
    response_model=UnitResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create unit",
)
async def create_unit(
    payload: CreateUnitRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> UnitResponse:
    try:
        unit = await UnitService().create(
            session, tenant.organization_id, payload.name, address=payload.address, phone=payload.phone
        )
        await session.commit()
        return UnitResponse.model_validate(unit)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error creating unit: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("create unit", e)


@router.patch(
    "/settings/units/{unit_id}",
    response_model=UnitResponse,
    responses=ERROR_RESPONSES,
    summary="Update unit",
)
async def update_unit(
    unit_id: int,
    payload: UpdateUnitRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> UnitResponse:
    try:
        unit = await UnitService().update(
            session, tenant.organization_id, unit_id, payload.model_dump(exclude_unset=True)
        )
        await session.commit()
        return UnitResponse.model_validate(unit)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error updating unit {unit_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("update unit", e)


@router.delete(
    "/settings/units/{unit_id}",
    response_model=DeleteResponse,
    responses={
        **ERROR_RESPONSES,
        409: {"model": ErrorResponse, "description": "Unit still has appointments"},
        428: {"model": ErrorResponse, "description": "Deletion not confirmed"},
    },
    summary="Delete unit",
    description="Hard-delete a unit without appointments. Requires confirm=true."
)
async def delete_unit(
    unit_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
    confirmation: QueryConfirmation = Depends(get_confirmation),
) -> DeleteResponse:
    try:
        deleted = await UnitService().delete(session, tenant.organization_id, unit_id, confirmation)
        if not deleted:
            raise confirmation.declined()
        await session.commit()
        return DeleteResponse(deleted=True, id=unit_id)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error deleting unit {unit_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("delete unit", e)


# Service catalog

@router.get(
    "/settings/services",
    response_model=List[ServiceResponse],
    responses=ERROR_RESPONSES,
    summary="List catalog services",
)
async def list_services(
    active_only: bool = Query(False, description="Only active services"),
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> List[ServiceResponse]:
    try:
        services = await CatalogService().list(session, tenant.organization_id, active_only=active_only)
        return [ServiceResponse.model_validate(s) for s in services]
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("list services", e)


@router.post(
    "/settings/services",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create catalog service",
)
async def create_service(
    payload: CreateServiceRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceResponse:
    try:
        service = await CatalogService().create(
            session, tenant.organization_id, payload.name, price=payload.price,
            description=payload.description, estimated_time_minutes=payload.estimated_time_minutes,
        )
        await session.commit()
        return ServiceResponse.model_validate(service)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error creating service: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("create service", e)


@router.patch(
    "/settings/services/{service_id}",
    response_model=ServiceResponse,
    responses=ERROR_RESPONSES,
    summary="Update catalog service",
)
async def update_service(
    service_id: int,
    payload: UpdateServiceRequest,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceResponse:
    try:
        service = await CatalogService().update(
            session, tenant.organization_id, service_id, payload.model_dump(exclude_unset=True)
        )
        await session.commit()
        return ServiceResponse.model_validate(service)
    except BusinessLogicError as e:
        logger.warning(f"Business logic error updating service {service_id}: {e}")
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("update service", e)


@router.post(
    "/settings/services/{service_id}/activate",
    response_model=ServiceResponse,
    responses=ERROR_RESPONSES,
    summary="Activate catalog service",
)
async def activate_service(
    service_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceResponse:
    try:
        service = await CatalogService().set_active(session, tenant.organization_id, service_id, True)
        await session.commit()
        return ServiceResponse.model_validate(service)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("activate service", e)


@router.post(
    "/settings/services/{service_id}/deactivate",
    response_model=ServiceResponse,
    responses=ERROR_RESPONSES,
    summary="Deactivate catalog service",
    description="Services are never deleted; deactivated ones stay referenced by existing orders."
)
async def deactivate_service(
    service_id: int,
    session: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
) -> ServiceResponse:
    try:
        service = await CatalogService().set_active(session, tenant.organization_id, service_id, False)
        await session.commit()
        return ServiceResponse.model_validate(service)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    except Exception as e:
        raise _internal_error("deactivate service", e)
