"""Attendee and WristbandAssignment ORM models."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from guestlist.database import Base


class AttendeeStatus(str, enum.Enum):
    pending = "PENDING"
    checked_in = "CHECKED_IN"
    checked_out = "CHECKED_OUT"
    cancelled = "CANCELLED"
    missed = "MISSED"
    substitution = "SUBSTITUTION"
    substitution_request = "SUBSTITUTION_REQUEST"
    sector_change_request = "SECTOR_CHANGE_REQUEST"
    pending_approval = "PENDING_APPROVAL"
    blocked = "BLOCKED"
    rejected = "REJECTED"


class Attendee(Base):
    __tablename__ = "attendees"
    __table_args__ = (
        UniqueConstraint("event_id", "cpf", name="uq_attendee_event_cpf"),
    )

    attendee_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    cpf = Column(String(11), nullable=False)
    photo = Column(String(500), nullable=True)
    sector_ids = Column(JSON, nullable=False, default=list)
    sub_company = Column(String(150), nullable=True)
    supplier_id = Column(String(36), ForeignKey("suppliers.supplier_id"), nullable=True, index=True)
    status = Column(SAEnum(AttendeeStatus), nullable=False, default=AttendeeStatus.pending)
    checkin_time = Column(DateTime(timezone=True), nullable=True)
    checked_in_by = Column(String(100), nullable=True)
    checkout_time = Column(DateTime(timezone=True), nullable=True)
    checked_out_by = Column(String(100), nullable=True)
    block_reason = Column(String(500), nullable=True)
    substitution_data = Column(JSON, nullable=True)   # {"name", "cpf", "photo", "sector_ids"}
    sector_change_data = Column(JSON, nullable=True)  # {"sector_id", "justification"}
    removal_reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="attendees")
    supplier = relationship("Supplier")
    wristband_assignments = relationship(
        "WristbandAssignment", back_populates="attendee", cascade="all, delete-orphan"
    )

    @property
    def wristbands(self) -> dict[str, str]:
        return {w.sector_id: w.code for w in self.wristband_assignments}

    def has_pending_request(self) -> bool:
        return bool(self.substitution_data or self.sector_change_data or self.removal_reason)


class WristbandAssignment(Base):
    """One wristband code bound to one attendee within one sector.

    The unique keys make the store itself reject a second holder of the same
    code in the same sector.
    """

    __tablename__ = "wristband_assignments"
    __table_args__ = (
        UniqueConstraint("event_id", "sector_id", "code", name="uq_wristband_event_sector_code"),
        UniqueConstraint("attendee_id", "sector_id", name="uq_wristband_attendee_sector"),
    )

    assignment_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    sector_id = Column(String(36), nullable=False)
    attendee_id = Column(String(36), ForeignKey("attendees.attendee_id", ondelete="CASCADE"), nullable=False)
    code = Column(String(100), nullable=False)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())

    attendee = relationship("Attendee", back_populates="wristband_assignments")
