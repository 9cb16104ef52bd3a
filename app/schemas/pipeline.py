"""
Pydantic schemas for pipeline (kanban) endpoints.
"""

from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.core.pipeline import StageColor


class ColumnResponse(BaseModel):
    """A pipeline column."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Column ID", examples=[1])
    key: Optional[str] = Field(None, description="Automation key of default columns", examples=["scheduled"])
    name: str = Field(..., description="Column name", examples=["Scheduled"])
    color: StageColor = Field(..., description="Column color", examples=["blue"])
    order: int = Field(..., description="Zero-based position in the pipeline", examples=[5])


class CreateColumnRequest(BaseModel):
    """Request model for appending a column."""

    name: str = Field(..., min_length=1, max_length=100, description="Column name", examples=["Follow Up"])
    color: StageColor = Field(StageColor.BLUE, description="Column color")


class UpdateColumnRequest(BaseModel):
    """Request model for renaming or recoloring a column. Position is not editable here."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100, description="New column name")
    color: Optional[StageColor] = Field(None, description="New column color")


class ReorderColumnsRequest(BaseModel):
    """Move the dragged column to the position of the target column."""

    dragged_id: int = Field(..., gt=0, description="Column being moved", examples=[3])
    target_id: int = Field(..., gt=0, description="Column whose position the dragged one takes", examples=[1])


class MoveLeadRequest(BaseModel):
    """Request model for moving a lead to another column."""

    column_id: int = Field(..., gt=0, description="Destination column", examples=[2])
