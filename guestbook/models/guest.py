"""
Guest model and check-in state
"""

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import relationship

from guestbook.core.db import Base


class CheckInStatus(str, enum.Enum):
    NOT_ARRIVED = "NOT_ARRIVED"
    CHECKED_IN = "CHECKED_IN"

    def can_transition_to(self, target: "CheckInStatus") -> bool:
        return target in _TRANSITIONS[self]


# Forward transitions only. Undoing a check-in is an administrative action
# handled outside this table.
_TRANSITIONS = {
    CheckInStatus.NOT_ARRIVED: frozenset({CheckInStatus.CHECKED_IN}),
    CheckInStatus.CHECKED_IN: frozenset(),
}


class GuestSource(str, enum.Enum):
    REGISTERED = "registered"
    WALKIN = "walkin"


class Guest(Base):
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    guest_type_id = Column(Integer, ForeignKey("guest_types.id"), nullable=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    source = Column(SAEnum(GuestSource, name="guest_source"), default=GuestSource.REGISTERED, nullable=False)
    notes = Column(Text, nullable=True)

    max_companions = Column(Integer, default=0, nullable=False)
    actual_companions = Column(Integer, default=0, nullable=False)
    checkin_status = Column(
        SAEnum(CheckInStatus, name="checkin_status"),
        default=CheckInStatus.NOT_ARRIVED,
        nullable=False,
        index=True,
    )
    checked_in_at = Column(DateTime, nullable=True)
    checked_in_by = Column(String(64), nullable=True)

    seating_resource_id = Column(Integer, ForeignKey("seating_resources.id"), nullable=True, index=True)
    scan_code = Column(String(64), unique=True, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    event = relationship("Event", back_populates="guests")
    guest_type = relationship("GuestType")
    seating_resource = relationship("SeatingResource", back_populates="guests")

    @property
    def is_checked_in(self) -> bool:
        return self.checkin_status == CheckInStatus.CHECKED_IN

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
