"""
Staff Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

class StaffCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = None
    can_checkin: bool = True
    can_redeem_souvenir: bool = False
    can_redeem_snack: bool = False
    can_access_vip_lounge: bool = False

class StaffResponse(BaseModel):
    id: int
    event_id: int
    full_name: str
    phone: Optional[str] = None
    can_checkin: bool
    can_redeem_souvenir: bool
    can_redeem_snack: bool
    can_access_vip_lounge: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True

class StaffUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = None
    can_checkin: Optional[bool] = None
    can_redeem_souvenir: Optional[bool] = None
    can_redeem_snack: Optional[bool] = None
    can_access_vip_lounge: Optional[bool] = None
    is_active: Optional[bool] = None
