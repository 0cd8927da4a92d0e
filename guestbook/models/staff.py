"""
On-site staff accounts and their action log
"""

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum as SAEnum

from guestbook.core.db import Base


class StaffAction(str, enum.Enum):
    CHECKIN = "checkin"
    UNDO_CHECKIN = "undo_checkin"
    REDEEM = "redeem"
    REVERSE_REDEMPTION = "reverse_redemption"
    SEAT_ASSIGN = "seat_assign"
    AUTO_ASSIGN = "auto_assign"


class StaffMember(Base):
    __tablename__ = "staff_members"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    access_token = Column(String(128), unique=True, nullable=False, index=True)
    can_checkin = Column(Boolean, default=True, nullable=False)
    can_redeem_souvenir = Column(Boolean, default=False, nullable=False)
    can_redeem_snack = Column(Boolean, default=False, nullable=False)
    can_access_vip_lounge = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class StaffLog(Base):
    __tablename__ = "staff_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    actor_id = Column(String(64), nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=True)
    action = Column(SAEnum(StaffAction, name="staff_action"), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
