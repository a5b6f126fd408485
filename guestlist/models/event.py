"""Event ORM model."""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from guestlist.database import Base


DEFAULT_MODULES = {
    "scanner": True,
    "logs": True,
    "register": True,
    "companies": True,
    "spreadsheet": True,
    "reports": True,
}


class Event(Base):
    __tablename__ = "events"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    modules = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_MODULES))
    allow_photo_change = Column(Boolean, nullable=False, default=True)
    allow_guest_uploads = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Deleting an event takes everything scoped to it in the same transaction
    sectors = relationship("Sector", back_populates="event", cascade="all, delete-orphan")
    suppliers = relationship("Supplier", back_populates="event", cascade="all, delete-orphan")
    attendees = relationship("Attendee", back_populates="event", cascade="all, delete-orphan")
    tokens = relationship("AccessToken", cascade="all, delete-orphan")
    status_changes = relationship("StatusChange", cascade="all, delete-orphan")
    access_records = relationship("AccessRecord", cascade="all, delete-orphan")
