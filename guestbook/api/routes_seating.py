"""
Seating routes: resource setup, manual assignment and auto-assign
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from guestbook.api.ws import websocket_manager
from guestbook.core.db import get_db
from guestbook.schemas.guest import GuestResponse
from guestbook.schemas.seating import (
    AutoAssignRequest,
    AvailabilityRequest,
    BulkAssignRequest,
    SeatAssignRequest,
    SeatingResourceCreate,
    SeatingResourceResponse,
    SeatingResourceUpdate,
)
from guestbook.services.repositories import EventRepo
from guestbook.services.seating_service import SeatingService
from guestbook.utils.responses import success_response
from guestbook.utils.security import Actor, get_actor, verify_admin_token

router = APIRouter()

def resource_payload(resource) -> dict:
    return SeatingResourceResponse.model_validate(resource).model_dump(mode="json")

async def announce_seating(db: Session, event_id: int, update_type: str = "seating_update", **payload):
    event = EventRepo.get_by_id(db, event_id)
    if event:
        await websocket_manager.publish(event.public_code, update_type, **payload)

@router.get("")
async def list_resources(
    event_id: int,
    include_inactive: bool = True,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    actor.ensure_scope(event_id)
    resources = SeatingService.list_resources(event_id, db=db, include_inactive=include_inactive)
    return success_response(
        message=f"{len(resources)} seating resources",
        data=[resource_payload(r) for r in resources]
    )

@router.post("")
async def create_resource(
    body: SeatingResourceCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    resource = SeatingService.create_resource(
        body.event_id,
        actor,
        db=db,
        name=body.name,
        capacity=body.capacity,
        seating_type=body.seating_type,
        sort_order=body.sort_order,
        allowed_guest_type_ids=body.allowed_guest_type_ids,
    )
    return success_response(
        message=f"Seating resource '{resource.name}' created",
        data=resource_payload(resource),
        status_code=201
    )

@router.patch("/{resource_id}")
async def update_resource(
    resource_id: int,
    body: SeatingResourceUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    resource = SeatingService.update_resource(
        resource_id, actor, db=db, **body.model_dump(exclude_unset=True)
    )
    await announce_seating(db, resource.event_id, resource_id=resource.id)
    return success_response(message="Seating resource updated", data=resource_payload(resource))

@router.delete("/{resource_id}")
async def deactivate_resource(
    resource_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Seated guests keep their seats; the resource leaves future passes"""
    resource = SeatingService.deactivate_resource(resource_id, actor, db=db)
    await announce_seating(db, resource.event_id, resource_id=resource.id)
    return success_response(message="Seating resource deactivated", data=resource_payload(resource))

@router.post("/assign")
async def assign_seat(
    body: SeatAssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    guest = SeatingService.assign_seat(body.guest_id, body.resource_id, actor, db=db)
    await announce_seating(db, guest.event_id, guest_id=guest.id, resource_id=guest.seating_resource_id)
    return success_response(
        message=f"{guest.name} assigned",
        data=GuestResponse.model_validate(guest).model_dump(mode="json")
    )

@router.post("/bulk-assign")
async def bulk_assign(
    body: BulkAssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Each pair succeeds or fails on its own"""
    results = SeatingService.bulk_assign(
        body.event_id,
        [(item.guest_id, item.resource_id) for item in body.assignments],
        actor,
        db=db,
    )
    assigned = sum(1 for r in results if r["assigned"])
    await announce_seating(db, body.event_id, assigned_count=assigned)
    return success_response(
        message=f"Assigned {assigned} of {len(results)} guests",
        data=results
    )

@router.delete("/assign/{guest_id}")
async def unassign_seat(
    guest_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    guest = SeatingService.unassign_seat(guest_id, actor, db=db)
    await announce_seating(db, guest.event_id, guest_id=guest.id, resource_id=None)
    return success_response(
        message=f"{guest.name} unassigned",
        data=GuestResponse.model_validate(guest).model_dump(mode="json")
    )

@router.put("/availability")
async def availability(
    body: AvailabilityRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Remaining capacity check; changes nothing"""
    result = SeatingService.availability(body.resource_id, db=db, guest_id=body.guest_id)
    actor.ensure_scope(result["event_id"])
    return success_response(message="Availability retrieved", data=result)

@router.post("/auto-assign")
async def auto_assign(
    body: AutoAssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    report = SeatingService.auto_assign(body.event_id, actor, db=db)
    await announce_seating(
        db, body.event_id, "auto_assign",
        assigned_count=report.assigned_count,
        unassigned_count=report.unassigned_count,
    )
    return success_response(
        message=f"Assigned {report.assigned_count} of {report.total_candidates} guests",
        data=report.to_dict()
    )

@router.get("/stats")
async def seating_stats(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    actor.ensure_scope(event_id)
    return success_response(
        message="Seating statistics retrieved",
        data=SeatingService.seating_stats(event_id, db=db)
    )
