"""
Event-related Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr

class EventCreate(BaseModel):
    """Schema for creating an event"""
    name: str
    date: datetime
    organizer_email: EmailStr

class EventResponse(BaseModel):
    """Basic event response"""
    id: int
    name: str
    date: datetime
    organizer_email: str
    public_code: str
    created_at: datetime
    last_auto_assign_at: Optional[datetime] = None

    class Config:
        from_attributes = True
