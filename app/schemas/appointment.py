"""
Pydantic schemas for appointment endpoints.
"""

from __future__ import annotations
import datetime as dt
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CreateAppointmentRequest(BaseModel):
    """Request model for scheduling an appointment."""

    lead_id: int = Field(..., gt=0, description="Customer lead", examples=[1])
    unit_id: int = Field(..., gt=0, description="Unit where the appointment happens", examples=[1])
    date: dt.date = Field(..., description="Appointment date", examples=["2024-05-10"])
    time: str = Field(..., description="Appointment time, 24h HH:MM", examples=["09:30"])
    service_id: Optional[int] = Field(None, gt=0, description="Catalog service")
    service_type: Optional[str] = Field(None, max_length=200, description="Free-text service when not in the catalog")
    notes: Optional[str] = Field(None, max_length=2000, description="Notes")


class UpdateAppointmentRequest(BaseModel):
    """Request model for editing an appointment. Attendance is registered separately."""

    model_config = ConfigDict(extra="forbid")

    unit_id: Optional[int] = Field(None, gt=0)
    date: Optional[dt.date] = None
    time: Optional[str] = Field(None, description="24h HH:MM")
    service_id: Optional[int] = Field(None, gt=0)
    service_type: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=2000)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    lead_id: int
    unit_id: int
    date: dt.date
    time: str
    service_id: Optional[int] = None
    service_type: Optional[str] = None
    notes: Optional[str] = None
    attended: bool
    created_at: dt.datetime
