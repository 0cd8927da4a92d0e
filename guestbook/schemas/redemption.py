"""
Entitlement and redemption Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from guestbook.models import BenefitType

class EntitlementUpsert(BaseModel):
    guest_type_id: int
    benefit_type: BenefitType
    max_quantity: int = Field(..., ge=0)
    is_active: bool = True

class EntitlementResponse(BaseModel):
    id: int
    event_id: int
    guest_type_id: int
    benefit_type: BenefitType
    max_quantity: int
    is_active: bool

    class Config:
        from_attributes = True

class RedeemRequest(BaseModel):
    guest_id: int
    benefit_type: BenefitType
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = None

class RedemptionResponse(BaseModel):
    id: int
    event_id: int
    guest_id: int
    benefit_type: BenefitType
    quantity: int
    actor_id: str
    notes: Optional[str] = None
    reverses_id: Optional[int] = None
    redeemed_at: datetime

    class Config:
        from_attributes = True

class ReverseRedemptionRequest(BaseModel):
    reason: str = Field(..., min_length=1)
