"""
Pydantic schemas for the reports dashboard.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, List
from pydantic import BaseModel, Field


class StageCount(BaseModel):
    column_id: int
    name: str
    color: str
    count: int


class LeadFigures(BaseModel):
    total: int
    by_stage: List[StageCount]
    converted: int
    conversion_rate: float = Field(..., description="Percentage of leads in completed or invoiced columns")


class ServiceCount(BaseModel):
    name: str
    count: int


class AppointmentFigures(BaseModel):
    total: int
    attended: int
    attendance_rate: float = Field(..., description="Percentage of appointments marked as attended")
    top_services: List[ServiceCount]


class ServiceOrderFigures(BaseModel):
    total: int
    by_status: Dict[str, int]
    revenue: Decimal = Field(..., description="Total of completed and paid orders")
    monthly_revenue: Dict[str, Decimal] = Field(..., description="Revenue per YYYY-MM")


class AverageTicket(BaseModel):
    value: Decimal = Field(..., description="Revenue divided by the number of completed and paid orders")
    orders: int


class DashboardResponse(BaseModel):
    leads: LeadFigures
    appointments: AppointmentFigures
    service_orders: ServiceOrderFigures
    average_ticket: AverageTicket
