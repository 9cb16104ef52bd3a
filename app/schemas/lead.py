"""
Pydantic schemas for lead endpoints.
"""

from __future__ import annotations
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.pipeline import HistoryType


class LeadBase(BaseModel):
    phone: Optional[str] = Field(None, max_length=30, description="Phone number", examples=["+55 11 99999-0000"])
    email: Optional[str] = Field(None, max_length=200, description="E-mail address", examples=["ana@example.com"])
    address: Optional[str] = Field(None, description="Street address")
    birth_date: Optional[date] = Field(None, description="Birth date")
    national_id: Optional[str] = Field(None, max_length=20, description="National document number")
    car_model: Optional[str] = Field(None, description="Vehicle model", examples=["Honda Civic 2018"])
    car_plate: Optional[str] = Field(None, max_length=16, description="Vehicle plate", examples=["ABC1D23"])
    unit_id: Optional[int] = Field(None, gt=0, description="Preferred unit")
    assigned_user_id: Optional[int] = Field(None, gt=0, description="Responsible user")


class CreateLeadRequest(LeadBase):
    """Request model for creating a lead. It starts in the initial pipeline column."""

    name: str = Field(..., min_length=1, max_length=200, description="Customer name", examples=["Ana Souza"])

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name cannot be empty or only whitespace")
        return v.strip()


class UpdateLeadRequest(LeadBase):
    """Request model for editing lead details. Stage moves use the move endpoint."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200, description="Customer name")


class LeadHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    type: HistoryType
    description: str
    user_id: Optional[int] = None


class LeadResponse(LeadBase):
    """A lead with its pipeline column."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Lead ID")
    name: str = Field(..., description="Customer name")
    column_id: int = Field(..., description="Current pipeline column")
    created_at: datetime = Field(..., description="Creation timestamp")


class LeadDetailResponse(LeadResponse):
    """A lead with its history, newest first."""

    history: List[LeadHistoryResponse] = Field(default_factory=list)
