"""Sector ORM model — a named access category inside an event."""
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from guestlist.database import Base


class Sector(Base):
    __tablename__ = "sectors"

    sector_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#4f46e5")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="sectors")
