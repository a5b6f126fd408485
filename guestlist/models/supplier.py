"""Supplier ORM model — a delegated third party registering guests."""
import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from guestlist.database import Base


class Supplier(Base):
    __tablename__ = "suppliers"

    supplier_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    sector_ids = Column(JSON, nullable=False, default=list)
    registration_limit = Column(Integer, nullable=False, default=0)
    sub_companies = Column(JSON, nullable=False, default=list)  # [{"name": ..., "sector_id": ...}]
    active = Column(Boolean, nullable=False, default=True)
    admin_token = Column(String(64), nullable=True)
    registration_token = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="suppliers")
    tokens = relationship("AccessToken", back_populates="supplier", cascade="all, delete-orphan")

    def sub_company(self, name: str):
        """Return the sub-company entry called *name*, or None."""
        for entry in self.sub_companies or []:
            if entry.get("name") == name:
                return entry
        return None
