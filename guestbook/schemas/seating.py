"""
Seating Pydantic schemas
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from guestbook.models import SeatingType

class SeatingResourceCreate(BaseModel):
    event_id: int
    name: str = Field(..., min_length=1, max_length=100)
    capacity: Optional[int] = Field(None, ge=1)
    seating_type: SeatingType = SeatingType.TABLE
    sort_order: Optional[int] = None
    allowed_guest_type_ids: List[int] = []

class SeatingResourceUpdate(BaseModel):
    name: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    sort_order: Optional[int] = None
    allowed_guest_type_ids: Optional[List[int]] = None
    is_active: Optional[bool] = None

class SeatingResourceResponse(BaseModel):
    id: int
    event_id: int
    name: str
    seating_type: SeatingType
    capacity: int
    occupied: int
    remaining: int
    allowed_guest_type_ids: List[int]
    sort_order: int
    is_active: bool

    class Config:
        from_attributes = True

class SeatAssignRequest(BaseModel):
    guest_id: int
    resource_id: int

class AvailabilityRequest(BaseModel):
    resource_id: int
    guest_id: Optional[int] = None

class AutoAssignRequest(BaseModel):
    event_id: int

class BulkAssignRequest(BaseModel):
    event_id: int
    assignments: List[SeatAssignRequest] = Field(..., min_length=1, max_length=100)
