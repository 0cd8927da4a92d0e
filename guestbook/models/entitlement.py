"""
Entitlement, quota balance and redemption models
"""

import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Enum as SAEnum
)
from sqlalchemy.orm import relationship

from guestbook.core.db import Base


class BenefitType(str, enum.Enum):
    SOUVENIR = "SOUVENIR"
    SNACK = "SNACK"
    VIP_LOUNGE = "VIP_LOUNGE"


class Entitlement(Base):
    """How many units of a benefit each guest of a guest type may take"""

    __tablename__ = "entitlements"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    guest_type_id = Column(Integer, ForeignKey("guest_types.id"), nullable=False)
    benefit_type = Column(SAEnum(BenefitType, name="benefit_type"), nullable=False)
    max_quantity = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    guest_type = relationship("GuestType", back_populates="entitlements")

    __table_args__ = (
        UniqueConstraint("guest_type_id", "benefit_type", name="uq_entitlement_type_benefit"),
    )


class QuotaBalance(Base):
    """Running total of units redeemed per (guest, benefit type).

    The row is the serialization point for redemptions: it is only ever
    incremented by a conditional update that re-checks the entitlement
    maximum inside the same statement.
    """

    __tablename__ = "quota_balances"

    id = Column(Integer, primary_key=True, index=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    benefit_type = Column(SAEnum(BenefitType, name="benefit_type"), nullable=False)
    redeemed = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("guest_id", "benefit_type", name="uq_quota_balance_guest_benefit"),
    )


class Redemption(Base):
    """Append-only record of a guest consuming part of an entitlement"""

    __tablename__ = "redemptions"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False, index=True)
    benefit_type = Column(SAEnum(BenefitType, name="benefit_type"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    actor_id = Column(String(64), nullable=False)
    notes = Column(Text, nullable=True)
    # Set on an offsetting record; unique so a redemption is reversed at most once
    reverses_id = Column(Integer, ForeignKey("redemptions.id"), nullable=True, unique=True)
    redeemed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    guest = relationship("Guest")
