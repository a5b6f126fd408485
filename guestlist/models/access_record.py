"""AccessRecord ORM model — a successful scan at a sector validation point."""
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from guestlist.database import Base


class AccessRecord(Base):
    __tablename__ = "access_records"

    record_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    attendee_id = Column(String(36), nullable=False, index=True)
    sector_id = Column(String(36), nullable=False)
    wristband_code = Column(String(100), nullable=False)
    scanned_by = Column(String(100), nullable=False)
    scanned_at = Column(DateTime(timezone=True), server_default=func.now())
