"""Pydantic schemas for Sectors."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class SectorCreate(BaseModel):
    label: str = Field(..., min_length=1, max_length=100)
    color: str = "#4f46e5"


class SectorUpdate(BaseModel):
    label: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = None


class SectorOut(BaseModel):
    sector_id: str
    event_id: str
    label: str
    color: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
