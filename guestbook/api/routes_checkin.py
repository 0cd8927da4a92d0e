"""
Check-in desk routes for staff devices
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from guestbook.api.ws import websocket_manager
from guestbook.core.db import get_db
from guestbook.schemas.guest import (
    CheckInRequest,
    GuestCandidate,
    GuestResponse,
    UndoCheckInRequest,
    WalkInRequest,
)
from guestbook.services.checkin_service import CheckInService
from guestbook.services.guest_service import GuestService
from guestbook.services.identity_service import IdentityResolver
from guestbook.services.repositories import EventRepo
from guestbook.utils.responses import success_response, rate_limit_error
from guestbook.utils.security import Actor, get_actor, get_client_ip, rate_limit_check

router = APIRouter()

checkin_service = CheckInService(websocket_manager)

def guest_payload(guest) -> dict:
    return GuestResponse.model_validate(guest).model_dump(mode="json")

async def announce_checkin(db: Session, guest):
    event = EventRepo.get_by_id(db, guest.event_id)
    await checkin_service.broadcast_checkin(event.public_code, guest)
    stats = CheckInService.checkin_stats(guest.event_id, db=db)
    await checkin_service.broadcast_stats(event.public_code, stats)

@router.post("")
async def check_in(
    body: CheckInRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Check in a guest identified by id, scan code or name"""
    guest = CheckInService.check_in_identified(
        body.event_id,
        actor,
        db=db,
        guest_id=body.guest_id,
        scan_code=body.scan_code,
        name=body.name,
        group=body.group,
        companion_count=body.companion_count,
        notes=body.notes,
    )
    await announce_checkin(db, guest)

    return success_response(
        message=f"{guest.name} checked in",
        data={
            "guest": guest_payload(guest),
            "checkin": {
                "companions": guest.actual_companions,
                "checked_in_at": guest.checked_in_at.isoformat(),
                "checked_in_by": guest.checked_in_by,
            },
        }
    )

@router.post("/walk-in")
async def walk_in(
    body: WalkInRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Register a guest who is not on the list, optionally checking them in"""
    guest = GuestService.register_walkin(
        body.event_id,
        actor,
        db=db,
        name=body.name,
        phone=body.phone,
        email=body.email,
        guest_type_id=body.guest_type_id,
        max_companions=body.max_companions,
        notes=body.notes,
        check_in=body.check_in,
        companion_count=body.companion_count,
    )
    if guest.is_checked_in:
        await announce_checkin(db, guest)

    return success_response(
        message=f"Walk-in guest {guest.name} registered",
        data=guest_payload(guest),
        status_code=201
    )

@router.get("/search")
async def search_guests(
    request: Request,
    event_id: int,
    q: str = Query(..., min_length=1),
    group: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Ordered candidate list; guests not yet arrived come first"""
    if not rate_limit_check(get_client_ip(request)):
        rate_limit_error()
    actor.ensure_scope(event_id)

    guests = IdentityResolver.search(event_id, q, db=db, group=group, limit=limit)
    return success_response(
        message=f"{len(guests)} guests found",
        data=[GuestCandidate.model_validate(g).model_dump(mode="json") for g in guests]
    )

@router.get("/stats")
async def checkin_stats(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    actor.ensure_scope(event_id)
    return success_response(
        message="Check-in statistics retrieved",
        data=CheckInService.checkin_stats(event_id, db=db)
    )

@router.get("/logs")
async def checkin_logs(
    event_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    actor.ensure_scope(event_id)
    return success_response(
        message="Check-in log retrieved",
        data=CheckInService.checkin_logs(event_id, db=db, limit=limit)
    )

@router.post("/{guest_id}/undo")
async def undo_check_in(
    guest_id: int,
    body: UndoCheckInRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Owner-only correction of a mistaken check-in"""
    guest = CheckInService.undo_check_in(guest_id, actor, body.reason, db=db)
    event = EventRepo.get_by_id(db, guest.event_id)
    await websocket_manager.publish(event.public_code, "checkin_undone", guest_id=guest.id)

    return success_response(
        message=f"Check-in of {guest.name} undone",
        data=guest_payload(guest)
    )
