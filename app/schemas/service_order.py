"""
Pydantic schemas for service order endpoints.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.core.service_order_workflow import ServiceOrderStatus


class ServiceOrderItemRequest(BaseModel):
    """A line item: labor or a catalog service, with the parts used and its cost."""

    service_id: Optional[int] = Field(None, gt=0, description="Catalog service")
    description: str = Field("", max_length=500, description="What was done", examples=["Brake pad replacement"])
    parts: Optional[str] = Field(None, max_length=1000, description="Parts used", examples=["Front pads"])
    cost: Decimal = Field(Decimal("0"), ge=0, description="Item cost", examples=["250.00"])


class CreateServiceOrderRequest(BaseModel):
    """Request model for creating a service order."""

    lead_id: int = Field(..., gt=0, description="Customer lead", examples=[1])
    vehicle_info: Optional[str] = Field(None, max_length=500, examples=["Honda Civic 2018 ABC1D23"])
    reported_issues: Optional[str] = Field(None, max_length=2000, examples=["Squeaking brakes"])
    items: List[ServiceOrderItemRequest] = Field(default_factory=list)
    status: ServiceOrderStatus = Field(ServiceOrderStatus.DIAGNOSIS, description="Initial status")
    primary_service_id: Optional[int] = Field(None, gt=0, description="Main catalog service")


class UpdateServiceOrderRequest(BaseModel):
    """Request model for editing order details. Status has its own endpoint."""

    model_config = ConfigDict(extra="forbid")

    vehicle_info: Optional[str] = Field(None, max_length=500)
    reported_issues: Optional[str] = Field(None, max_length=2000)
    items: Optional[List[ServiceOrderItemRequest]] = None
    primary_service_id: Optional[int] = Field(None, gt=0)


class UpdateServiceOrderStatusRequest(BaseModel):
    status: ServiceOrderStatus = Field(..., description="New status", examples=["in_progress"])


class ServiceOrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    position: int
    service_id: Optional[int] = None
    description: str
    parts: Optional[str] = None
    cost: Decimal


class ServiceOrderResponse(BaseModel):
    """A service order with its items and computed total."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Service order ID")
    os_number: str = Field(..., description="Display number", examples=["OS2024050001"])
    lead_id: int
    vehicle_info: Optional[str] = None
    reported_issues: Optional[str] = None
    status: ServiceOrderStatus
    items: List[ServiceOrderItemResponse] = Field(default_factory=list)
    total_cost: Decimal = Field(..., description="Sum of item costs")
    primary_service_id: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class ServiceOrderStatusSummary(BaseModel):
    """How a status is displayed and which pipeline column it moves the lead to."""

    status: ServiceOrderStatus
    title: str = Field(..., examples=["Waiting Parts"])
    description: str
    color: str = Field(..., examples=["orange"])
    stage_key: str = Field(..., description="Pipeline column key the lead moves to", examples=["waiting-parts"])
