"""Pydantic schemas for Attendees and their lifecycle operations."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from guestlist.models.attendee import AttendeeStatus


class AttendeeCreate(BaseModel):
    name: str
    cpf: str
    photo: Optional[str] = None  # data URL, base64 or an existing URL
    sector_ids: list[str] = []
    sub_company: Optional[str] = None
    supplier_id: Optional[str] = None


class GuestRegistration(BaseModel):
    """Self-registration through a supplier link; the supplier comes from the link."""

    name: str
    cpf: str
    photo: Optional[str] = None
    sector_ids: list[str] = []
    sub_company: Optional[str] = None


class AttendeeOut(BaseModel):
    attendee_id: str
    event_id: str
    name: str
    cpf: str
    photo: Optional[str] = None
    sector_ids: list[str]
    sub_company: Optional[str] = None
    supplier_id: Optional[str] = None
    status: AttendeeStatus
    wristbands: dict[str, str] = {}
    checkin_time: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    checkout_time: Optional[datetime] = None
    checked_out_by: Optional[str] = None
    block_reason: Optional[str] = None
    substitution_data: Optional[dict] = None
    sector_change_data: Optional[dict] = None
    removal_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AttendeeSearchOut(AttendeeOut):
    event_name: Optional[str] = None


class WristbandsRequest(BaseModel):
    """sector_id -> wristband code; a blank code means "leave/clear this sector"."""

    wristbands: dict[str, Optional[str]] = {}


class SubstitutionData(BaseModel):
    """A proposed replacement person, validated in full before it is applied."""

    name: str = Field(..., min_length=1)
    cpf: str = Field(..., min_length=1)
    photo: str = Field(..., min_length=1)
    sector_ids: Optional[list[str]] = None


class SubstitutionRequest(BaseModel):
    name: str
    cpf: str
    photo: Optional[str] = None
    sector_ids: Optional[list[str]] = None


class SectorChangeData(BaseModel):
    sector_id: str = Field(..., min_length=1)
    justification: str = ""


class SectorChangeRequest(BaseModel):
    sector_id: str
    justification: str = ""


class RemovalRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BlockRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class StatusSetRequest(BaseModel):
    status: AttendeeStatus


class BulkSectorRequest(BaseModel):
    attendee_ids: list[str] = Field(..., min_length=1)
    sector_ids: list[str] = Field(..., min_length=1)


class AttendeeDetailsUpdate(BaseModel):
    name: Optional[str] = None
    cpf: Optional[str] = None
    sub_company: Optional[str] = None
    photo: Optional[str] = None


class ImportRow(BaseModel):
    """One parsed spreadsheet row; ``sector`` is a sector id or label."""

    name: str = ""
    cpf: str = ""
    sector: str = ""


class ImportRequest(BaseModel):
    rows: list[ImportRow]
    supplier_id: Optional[str] = None


class ImportRowError(BaseModel):
    row: int
    message: str


class ImportResult(BaseModel):
    success_count: int
    errors: list[ImportRowError] = []
