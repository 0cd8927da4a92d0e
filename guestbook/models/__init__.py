"""
Database models package
"""

from .event import Event
from .guest_type import GuestType
from .guest import Guest, CheckInStatus, GuestSource
from .seating import SeatingResource, SeatingType
from .entitlement import BenefitType, Entitlement, QuotaBalance, Redemption
from .staff import StaffMember, StaffLog, StaffAction

__all__ = [
    "Event",
    "GuestType",
    "Guest",
    "CheckInStatus",
    "GuestSource",
    "SeatingResource",
    "SeatingType",
    "BenefitType",
    "Entitlement",
    "QuotaBalance",
    "Redemption",
    "StaffMember",
    "StaffLog",
    "StaffAction",
]
