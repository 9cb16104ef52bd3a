"""
Pydantic schemas for settings endpoints: organizations, units and the service catalog.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CreateOrganizationRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["PitStop Downtown"])


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime


class CreateUnitRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["Main Street"])
    address: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=30)


class UpdateUnitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=30)


class UnitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime


class CreateServiceRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["Oil Change"])
    description: Optional[str] = Field(None, max_length=2000)
    price: Decimal = Field(Decimal("0"), ge=0, examples=["120.00"])
    estimated_time_minutes: Optional[int] = Field(None, gt=0, examples=[45])


class UpdateServiceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[Decimal] = Field(None, ge=0)
    estimated_time_minutes: Optional[int] = Field(None, gt=0)


class ServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    estimated_time_minutes: Optional[int] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
