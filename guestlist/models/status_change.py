"""StatusChange ORM model — ledger of attendee lifecycle operations."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from guestlist.database import Base
from guestlist.models.attendee import AttendeeStatus


class LifecycleAction(str, enum.Enum):
    register = "register"
    check_in = "check_in"
    revert_check_in = "revert_check_in"
    check_out = "check_out"
    update_wristbands = "update_wristbands"
    update_details = "update_details"
    request_substitution = "request_substitution"
    approve_substitution = "approve_substitution"
    reject_substitution = "reject_substitution"
    request_sector_change = "request_sector_change"
    approve_sector_change = "approve_sector_change"
    reject_sector_change = "reject_sector_change"
    request_removal = "request_removal"
    approve_pending = "approve_pending"
    reject_pending = "reject_pending"
    block = "block"
    set_status = "set_status"
    mark_missed = "mark_missed"
    reassign_sectors = "reassign_sectors"
    delete = "delete"


class StatusChange(Base):
    __tablename__ = "status_changes"

    change_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    # Not a foreign key: the ledger outlives hard-deleted attendees
    attendee_id = Column(String(36), nullable=False, index=True)
    action = Column(SAEnum(LifecycleAction), nullable=False)
    actor = Column(String(100), nullable=False)
    from_status = Column(SAEnum(AttendeeStatus), nullable=True)
    to_status = Column(SAEnum(AttendeeStatus), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
