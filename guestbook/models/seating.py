"""
Seating resource model (table, section or zone)
"""

import enum
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, CheckConstraint, Enum as SAEnum
from sqlalchemy.orm import relationship

from guestbook.core.db import Base


class SeatingType(str, enum.Enum):
    TABLE = "table"
    SECTION = "section"
    ZONE = "zone"


class SeatingResource(Base):
    __tablename__ = "seating_resources"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    seating_type = Column(SAEnum(SeatingType, name="seating_type"), default=SeatingType.TABLE, nullable=False)
    capacity = Column(Integer, nullable=False)
    # Number of guests currently seated here; only changed by conditional updates
    occupied = Column(Integer, default=0, nullable=False)
    allowed_guest_type_ids = Column(JSON, default=list, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    event = relationship("Event", back_populates="seating_resources")
    guests = relationship("Guest", back_populates="seating_resource")

    __table_args__ = (
        CheckConstraint("occupied >= 0 AND occupied <= capacity", name="ck_seating_occupancy"),
    )

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.occupied, 0)

    def accepts(self, guest_type_id: Optional[int]) -> bool:
        """An empty allow-list hosts every guest type"""
        allowed = self.allowed_guest_type_ids or []
        return not allowed or guest_type_id in allowed
