"""
Benefit redemption routes
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from guestbook.api.ws import websocket_manager
from guestbook.core.db import get_db
from guestbook.models import BenefitType
from guestbook.schemas.redemption import RedeemRequest, RedemptionResponse, ReverseRedemptionRequest
from guestbook.services.quota_service import QuotaService
from guestbook.services.repositories import EventRepo, GuestRepo
from guestbook.utils.responses import success_response
from guestbook.utils.security import Actor, get_actor

router = APIRouter()

def redemption_payload(redemption) -> dict:
    return RedemptionResponse.model_validate(redemption).model_dump(mode="json")

@router.post("")
async def redeem(
    body: RedeemRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    result = QuotaService.redeem(
        body.guest_id, body.benefit_type, body.quantity, actor, db=db, notes=body.notes
    )
    redemption = result.redemption
    event = EventRepo.get_by_id(db, redemption.event_id)
    await websocket_manager.publish(
        event.public_code, "redemption",
        guest_id=redemption.guest_id,
        benefit_type=redemption.benefit_type.value,
        quantity=redemption.quantity,
        remaining=result.remaining,
    )
    return success_response(
        message=f"Redeemed {redemption.quantity} {redemption.benefit_type.value}",
        data={"redemption": redemption_payload(redemption), "remaining": result.remaining},
        status_code=201
    )

@router.get("")
async def redemption_history(
    event_id: int,
    guest_id: Optional[int] = None,
    benefit_type: Optional[BenefitType] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Audit trail, newest first"""
    redemptions = QuotaService.history(
        event_id, actor, db=db, guest_id=guest_id, benefit_type=benefit_type, limit=limit, offset=offset
    )
    return success_response(
        message=f"{len(redemptions)} redemptions",
        data=[redemption_payload(r) for r in redemptions]
    )

@router.get("/remaining")
async def remaining(
    guest_id: int,
    benefit_type: Optional[BenefitType] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Remaining units for one benefit, or every entitlement of the guest"""
    guest = GuestRepo.require(db, guest_id)
    actor.ensure_scope(guest.event_id)
    if benefit_type is None:
        return success_response(message="Entitlements retrieved", data=QuotaService.summary(guest_id, db=db))

    left = QuotaService.remaining(guest_id, benefit_type, db=db)
    return success_response(
        message=f"{left} {benefit_type.value} remaining",
        data={"guest_id": guest_id, "benefit_type": benefit_type.value, "remaining": left}
    )

@router.post("/{redemption_id}/reverse")
async def reverse_redemption(
    redemption_id: int,
    body: ReverseRedemptionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Owner-only correction; appends an offsetting record"""
    offset = QuotaService.reverse_redemption(redemption_id, actor, body.reason, db=db)
    return success_response(
        message=f"Redemption {redemption_id} reversed",
        data=redemption_payload(offset),
        status_code=201
    )
