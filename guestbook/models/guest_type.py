"""
Guest type (category) model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from guestbook.core.db import Base

class GuestType(Base):
    __tablename__ = "guest_types"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    type_name = Column(String(50), nullable=False)
    display_name = Column(String(100), nullable=False)
    priority_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    event = relationship("Event", back_populates="guest_types")
    entitlements = relationship("Entitlement", back_populates="guest_type", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("event_id", "type_name", name="uq_guest_type_event_name"),
    )
