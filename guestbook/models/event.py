"""
Event model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from guestbook.core.db import Base

class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    date = Column(DateTime, nullable=False)
    organizer_email = Column(String(255), nullable=False)
    public_code = Column(String(50), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    # Written at the start of every auto-assign pass; the row lock doubles as
    # the per-event exclusion for that pass.
    last_auto_assign_at = Column(DateTime, nullable=True)

    # Relationships
    guest_types = relationship("GuestType", back_populates="event", cascade="all, delete-orphan")
    guests = relationship("Guest", back_populates="event", cascade="all, delete-orphan")
    seating_resources = relationship("SeatingResource", back_populates="event", cascade="all, delete-orphan")
