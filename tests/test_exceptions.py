"""
Tests for business error to HTTP mapping.
"""

import pytest
from fastapi import status

from app.core import exceptions
from app.core.exceptions import (
    AppointmentError,
    BusinessLogicError,
    ConfirmationRequiredError,
    ConflictError,
    ErrorHandler,
    NotFoundError,
    PipelineError,
    ServiceOrderError,
    StorageError,
    ValidationError,
    business_exception_to_http,
)
from app.services.lead import LeadService


@pytest.mark.unit
class TestBusinessExceptionToHttp:

    @pytest.mark.parametrize("exc_class,status_code,error_type", [
        (ValidationError, status.HTTP_400_BAD_REQUEST, "validation_error"),
        (NotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
        (ConflictError, status.HTTP_409_CONFLICT, "conflict"),
        (ConfirmationRequiredError, status.HTTP_428_PRECONDITION_REQUIRED, "confirmation_required"),
        (PipelineError, status.HTTP_422_UNPROCESSABLE_ENTITY, "business_rule_error"),
        (ServiceOrderError, status.HTTP_422_UNPROCESSABLE_ENTITY, "business_rule_error"),
        (AppointmentError, status.HTTP_422_UNPROCESSABLE_ENTITY, "business_rule_error"),
        (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR, "business_logic_error"),
        (BusinessLogicError, status.HTTP_500_INTERNAL_SERVER_ERROR, "business_logic_error"),
    ])
    def test_status_and_type(self, exc_class, status_code, error_type):
        http_exc = business_exception_to_http(exc_class("Boom", {"lead_id": 3}))

        assert http_exc.status_code == status_code
        assert http_exc.detail == {"message": "Boom", "type": error_type, "lead_id": 3}

    def test_scoping_has_no_dedicated_error(self):
        # Resources of another organization are simply not found
        assert not hasattr(exceptions, "TenantScopeError")
        assert not hasattr(ErrorHandler, "validate_tenant_scope")

    def test_required_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            ErrorHandler.validate_required_fields({"name": "  ", "phone": "1"}, ["name", "phone", "email"])

        assert exc_info.value.details["missing_fields"] == ["name", "email"]

    @pytest.mark.parametrize("value", [0, -1, True, "3", None])
    def test_positive_integer(self, value):
        with pytest.raises(ValidationError):
            ErrorHandler.validate_positive_integer(value, "organization_id")


@pytest.mark.integration
class TestOrganizationScoping:

    async def test_foreign_lead_is_not_found(self, db_session, organization, test_factory):
        other = await test_factory.create_organization(db_session, "Other Shop")
        foreign = await test_factory.create_lead(db_session, other.id)

        with pytest.raises(NotFoundError) as exc_info:
            await LeadService().get(db_session, organization.id, foreign.id)

        assert business_exception_to_http(exc_info.value).status_code == status.HTTP_404_NOT_FOUND
