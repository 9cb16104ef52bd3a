"""
Custom exceptions for the PitStop application.
Provides structured error handling with proper HTTP status codes and messages.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class BusinessLogicError(Exception):
    """Base exception for business logic errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BusinessLogicError):
    """Raised when input validation fails."""
    pass


class NotFoundError(BusinessLogicError):
    """Raised when a requested resource is not found."""
    pass


class ConflictError(BusinessLogicError):
    """Raised when there's a conflict with existing data."""
    pass


class ConfirmationRequiredError(BusinessLogicError):
    """Raised when a destructive operation was not confirmed by the caller."""
    pass


class StorageError(BusinessLogicError):
    """Raised when the underlying persistence layer fails."""
    pass


class PipelineError(BusinessLogicError):
    """Raised for pipeline stage (kanban column) business logic errors."""
    pass


class ServiceOrderError(BusinessLogicError):
    """Raised for service order-specific business logic errors."""
    pass


class AppointmentError(BusinessLogicError):
    """Raised for appointment-specific business logic errors."""
    pass


def business_exception_to_http(exc: BusinessLogicError) -> HTTPException:
    """Convert business logic exceptions to appropriate HTTP exceptions."""

    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": exc.message, "type": "validation_error", **exc.details}
        )

    if isinstance(exc, NotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": exc.message, "type": "not_found", **exc.details}
        )

    if isinstance(exc, ConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": exc.message, "type": "conflict", **exc.details}
        )

    if isinstance(exc, ConfirmationRequiredError):
        return HTTPException(
            status_code=status.HTTP_428_PRECONDITION_REQUIRED,
            detail={"message": exc.message, "type": "confirmation_required", **exc.details}
        )

    if isinstance(exc, (PipelineError, ServiceOrderError, AppointmentError)):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": exc.message, "type": "business_rule_error", **exc.details}
        )

    # Default to 500 for storage and other business logic errors
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"message": exc.message, "type": "business_logic_error", **exc.details}
    )


class ErrorHandler:
    """Centralized error handling utilities."""

    @staticmethod
    def validate_required_fields(data: Dict[str, Any], required_fields: list[str]) -> None:
        """Validate that all required fields are present and not blank."""
        missing_fields = []
        for field in required_fields:
            value = data.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing_fields.append(field)

        if missing_fields:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing_fields)}",
                {"missing_fields": missing_fields}
            )

    @staticmethod
    def validate_positive_integer(value: Any, field_name: str) -> int:
        """Validate that a value is a positive integer."""
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationError(
                f"{field_name} must be a positive integer",
                {"field": field_name, "value": value}
            )
        return value

