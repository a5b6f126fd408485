"""Pydantic schemas for reports, scans and realtime snapshots."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from guestlist.models.attendee import AttendeeStatus
from guestlist.schemas.attendee import AttendeeOut
from guestlist.schemas.sector import SectorOut
from guestlist.schemas.supplier import SupplierPublicOut


class StatusCount(BaseModel):
    status: AttendeeStatus
    label: str
    count: int


class EventStats(BaseModel):
    event_id: str
    total: int
    by_status: list[StatusCount]


class WristbandHolder(BaseModel):
    attendee_id: str
    name: str
    code: str


class SectorWristbandReport(BaseModel):
    sector_id: str
    label: str
    total: int
    delivered: int
    holders: list[WristbandHolder] = []


class CheckinLogEntry(BaseModel):
    attendee_id: str
    name: Optional[str] = None
    action: str
    actor: str
    from_status: Optional[AttendeeStatus] = None
    to_status: Optional[AttendeeStatus] = None
    timestamp: Optional[datetime] = None
    local_time: Optional[str] = None


class AccessCheckRequest(BaseModel):
    sector_id: str
    wristband_code: str


class AccessCheckResult(BaseModel):
    granted: bool
    reason: str
    attendee_id: Optional[str] = None
    name: Optional[str] = None


class FastCheckinRequest(BaseModel):
    live_photo: str  # data URL or base64 of the capture
    check_in: bool = False
    wristbands: dict[str, Optional[str]] = {}
    scan_id: Optional[str] = None


class FastCheckinResult(BaseModel):
    scan_id: str
    matched: bool
    cancelled: bool = False
    attendee: Optional[AttendeeOut] = None


class VerifyRequest(BaseModel):
    live_photo: str


class VerifyResult(BaseModel):
    attendee_id: str
    verified: bool


class EventSnapshot(BaseModel):
    event_id: str
    attendees: list[AttendeeOut]
    sectors: list[SectorOut]
    suppliers: list[SupplierPublicOut]


class AccessRecordOut(BaseModel):
    record_id: str
    attendee_id: str
    sector_id: str
    wristband_code: str
    scanned_by: str
    scanned_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
