"""AccessToken ORM model — reverse lookup for capability links."""
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from guestlist.database import Base


class TokenPurpose(str, enum.Enum):
    registration = "registration"
    admin = "admin"


class AccessToken(Base):
    __tablename__ = "access_tokens"

    token = Column(String(64), primary_key=True)
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = Column(String(36), ForeignKey("suppliers.supplier_id", ondelete="CASCADE"), nullable=False, index=True)
    purpose = Column(SAEnum(TokenPurpose), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    supplier = relationship("Supplier", back_populates="tokens")
