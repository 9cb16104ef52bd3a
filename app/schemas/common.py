"""
Shared response models.
"""

from __future__ import annotations
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from app.core.pipeline import SyncResult


class ErrorResponse(BaseModel):
    """Standard error response model."""

    message: str = Field(..., description="Error message", examples=["Validation failed"])
    type: str = Field(..., description="Error type", examples=["validation_error"])
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")

    model_config = {
        "json_schema_extra": {
            "example": {
                "message": "Lead 999 not found",
                "type": "not_found",
                "details": {"lead_id": 999}
            }
        }
    }


class DeleteResponse(BaseModel):
    """Outcome of a confirmed destructive operation."""

    deleted: bool = Field(..., description="Whether the resource was deleted")
    id: int = Field(..., description="ID of the targeted resource")


class SyncResultResponse(BaseModel):
    """Outcome of a pipeline synchronization."""

    outcome: str = Field(..., description="ok, not_found, storage_error or conflict", examples=["ok"])
    lead_id: Optional[int] = Field(None, description="Lead the synchronization applied to")
    message: str = Field("", description="Reason when the synchronization did not apply")

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(outcome=result.outcome.value, lead_id=result.lead_id, message=result.message)


# Standard error documentation shared by the routers
ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid input data"},
    404: {"model": ErrorResponse, "description": "Resource not found in this organization"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}
