"""
Pydantic schemas package
"""

from .common import *
from .event import *
from .guest import *
from .seating import *
from .redemption import *
from .staff import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "EventCreate",
    "EventResponse",
    "GuestTypeCreate",
    "GuestTypeResponse",
    "GuestCreate",
    "GuestUpdate",
    "GuestResponse",
    "GuestCandidate",
    "CheckInRequest",
    "WalkInRequest",
    "UndoCheckInRequest",
    "SeatingResourceCreate",
    "SeatingResourceUpdate",
    "SeatingResourceResponse",
    "SeatAssignRequest",
    "AvailabilityRequest",
    "AutoAssignRequest",
    "BulkAssignRequest",
    "EntitlementUpsert",
    "EntitlementResponse",
    "RedeemRequest",
    "RedemptionResponse",
    "ReverseRedemptionRequest",
    "StaffCreate",
    "StaffUpdate",
    "StaffResponse",
]
