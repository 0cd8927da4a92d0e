"""
Guest and check-in Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from guestbook.models import CheckInStatus, GuestSource

class GuestTypeCreate(BaseModel):
    """Schema for creating a guest type"""
    type_name: str = Field(..., min_length=1, max_length=50)
    display_name: Optional[str] = None
    priority_order: int = 0

class GuestTypeResponse(BaseModel):
    id: int
    event_id: int
    type_name: str
    display_name: str
    priority_order: int

    class Config:
        from_attributes = True

class GuestCreate(BaseModel):
    """Schema for registering a guest"""
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    guest_type_id: Optional[int] = None
    max_companions: int = Field(0, ge=0)
    notes: Optional[str] = None

class GuestUpdate(BaseModel):
    """Partial edit of a registered guest; only fields sent are changed"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    guest_type_id: Optional[int] = None
    max_companions: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None

class GuestResponse(BaseModel):
    """Guest response schema"""
    id: int
    event_id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    guest_type_id: Optional[int] = None
    source: GuestSource
    max_companions: int
    actual_companions: int
    checkin_status: CheckInStatus
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    seating_resource_id: Optional[int] = None
    scan_code: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class GuestCandidate(BaseModel):
    """Slim row shown in a disambiguation list"""
    id: int
    name: str
    phone: Optional[str] = None
    guest_type_id: Optional[int] = None
    checkin_status: CheckInStatus

    class Config:
        from_attributes = True

class CheckInRequest(BaseModel):
    """Guest check-in request: one of guest_id, scan_code or name"""
    event_id: int
    guest_id: Optional[int] = None
    scan_code: Optional[str] = None
    name: Optional[str] = None
    group: Optional[str] = None
    companion_count: int = Field(0, ge=0)
    notes: Optional[str] = None

class WalkInRequest(GuestCreate):
    """Walk-in registration at the door"""
    event_id: int
    check_in: bool = True
    companion_count: int = Field(0, ge=0)

class UndoCheckInRequest(BaseModel):
    reason: str = Field(..., min_length=1)
