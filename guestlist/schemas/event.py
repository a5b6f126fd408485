"""Pydantic schemas for Events."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class EventModules(BaseModel):
    """Feature switches for the organizer dashboard."""

    scanner: bool = True
    logs: bool = True
    register: bool = True
    companies: bool = True
    spreadsheet: bool = True
    reports: bool = True


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    modules: EventModules = EventModules()
    allow_photo_change: bool = True
    allow_guest_uploads: bool = False


class EventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    modules: Optional[EventModules] = None
    allow_photo_change: Optional[bool] = None
    allow_guest_uploads: Optional[bool] = None


class EventOut(BaseModel):
    event_id: str
    name: str
    modules: EventModules
    allow_photo_change: bool
    allow_guest_uploads: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MarkMissedResult(BaseModel):
    event_id: str
    marked: int
