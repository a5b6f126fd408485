"""Pydantic schemas for the public capability-link views."""
from pydantic import BaseModel

from guestlist.schemas.attendee import AttendeeOut
from guestlist.schemas.sector import SectorOut
from guestlist.schemas.supplier import SupplierPublicOut


class LinkEventOut(BaseModel):
    event_id: str
    name: str
    allow_photo_change: bool
    allow_guest_uploads: bool

    model_config = {"from_attributes": True}


class RegistrationLinkOut(BaseModel):
    event: LinkEventOut
    supplier: SupplierPublicOut
    sectors: list[SectorOut]
    remaining: int


class AdminLinkOut(BaseModel):
    event: LinkEventOut
    supplier: SupplierPublicOut
    sectors: list[SectorOut]
    registration_limit: int
    registration_count: int
    attendees: list[AttendeeOut]
