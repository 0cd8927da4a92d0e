"""
Seating arrangement service: resource setup, manual assignment and auto-assign
"""

import enum
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from guestbook.core.config import settings
from guestbook.core.db import guard_storage
from guestbook.core.exceptions import (
    CapacityExceeded,
    GuestbookError,
    InvalidRequest,
    NotFound,
    StorageUnavailable,
    TypeNotAllowed,
)
from guestbook.models import Event, Guest, GuestType, SeatingResource, SeatingType, StaffAction
from guestbook.services.repositories import EventRepo, GuestRepo, SeatingResourceRepo, StaffLogRepo
from guestbook.utils.security import Actor, Permission

logger = logging.getLogger(__name__)

# A guest row can be moved by another device between our read and our write;
# the move is retried from a fresh read this many times.
MOVE_ATTEMPTS = 3

BULK_ASSIGN_LIMIT = 100


class UnassignedReason(str, enum.Enum):
    NO_RESOURCES = "NO_RESOURCES"
    NO_ELIGIBLE_RESOURCE = "NO_ELIGIBLE_RESOURCE"
    NO_CAPACITY = "NO_CAPACITY"
    ALREADY_ASSIGNED = "ALREADY_ASSIGNED"


@dataclass
class AssignmentOutcome:
    guest_id: int
    guest_name: str
    resource_id: Optional[int] = None
    resource_name: Optional[str] = None
    reason: Optional[UnassignedReason] = None

    @property
    def assigned(self) -> bool:
        return self.resource_id is not None and self.reason is None

    def to_dict(self) -> Dict:
        return {
            "guest_id": self.guest_id,
            "guest_name": self.guest_name,
            "assigned": self.assigned,
            "resource_id": self.resource_id if self.assigned else None,
            "resource_name": self.resource_name if self.assigned else None,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass
class AutoAssignReport:
    event_id: int
    outcomes: List[AssignmentOutcome] = field(default_factory=list)

    @property
    def total_candidates(self) -> int:
        return len(self.outcomes)

    @property
    def assigned_count(self) -> int:
        return sum(1 for o in self.outcomes if o.assigned)

    @property
    def unassigned_count(self) -> int:
        return self.total_candidates - self.assigned_count

    @property
    def unassigned_reasons(self) -> Dict[str, int]:
        return dict(Counter(o.reason.value for o in self.outcomes if not o.assigned))

    def to_dict(self) -> Dict:
        return {
            "event_id": self.event_id,
            "assigned_count": self.assigned_count,
            "unassigned_count": self.unassigned_count,
            "total_candidates": self.total_candidates,
            "unassigned_reasons": self.unassigned_reasons,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def resource_dict(resource: SeatingResource) -> Dict:
    return {
        "id": resource.id,
        "event_id": resource.event_id,
        "name": resource.name,
        "seating_type": resource.seating_type.value,
        "capacity": resource.capacity,
        "occupied": resource.occupied,
        "remaining": resource.remaining,
        "allowed_guest_type_ids": list(resource.allowed_guest_type_ids or []),
        "sort_order": resource.sort_order,
        "is_active": resource.is_active,
    }


class SeatingService:
    """Service for seating arrangement operations"""

    # -------- Resource setup --------

    @staticmethod
    def _validate_allow_list(db: Session, event_id: int, guest_type_ids: List[int]) -> List[int]:
        ids = sorted(set(guest_type_ids or []))
        if not ids:
            return []
        found = {row.id for row in db.query(GuestType.id).filter(
            GuestType.event_id == event_id,
            GuestType.id.in_(ids)
        ).all()}
        missing = [i for i in ids if i not in found]
        if missing:
            raise InvalidRequest(f"Unknown guest types for this event: {missing}", field="allowed_guest_type_ids")
        return ids

    @staticmethod
    @guard_storage
    def create_resource(
        event_id: int,
        actor: Actor,
        *,
        db: Session,
        name: str,
        capacity: Optional[int] = None,
        seating_type: SeatingType = SeatingType.TABLE,
        sort_order: Optional[int] = None,
        allowed_guest_type_ids: Optional[List[int]] = None,
    ) -> SeatingResource:
        actor.require_owner()
        EventRepo.require(db, event_id)

        if capacity is None:
            capacity = settings.DEFAULT_SEATING_CAPACITY
        if capacity < 1:
            raise InvalidRequest("Capacity must be at least 1", field="capacity")
        if sort_order is None:
            highest = db.query(func.max(SeatingResource.sort_order)).filter(
                SeatingResource.event_id == event_id
            ).scalar()
            sort_order = (highest or 0) + 1

        resource = SeatingResource(
            event_id=event_id,
            name=name.strip(),
            capacity=capacity,
            occupied=0,
            seating_type=seating_type,
            sort_order=sort_order,
            allowed_guest_type_ids=SeatingService._validate_allow_list(db, event_id, allowed_guest_type_ids),
            is_active=True,
        )
        db.add(resource)
        db.commit()
        db.refresh(resource)
        logger.info(f"Seating resource {resource.id} '{resource.name}' created for event {event_id}")
        return resource

    @staticmethod
    @guard_storage
    def update_resource(
        resource_id: int,
        actor: Actor,
        *,
        db: Session,
        name: Optional[str] = None,
        capacity: Optional[int] = None,
        sort_order: Optional[int] = None,
        allowed_guest_type_ids: Optional[List[int]] = None,
        is_active: Optional[bool] = None,
    ) -> SeatingResource:
        actor.require_owner()
        resource = SeatingResourceRepo.require(db, resource_id)

        changes = {}
        if name is not None:
            changes[SeatingResource.name] = name.strip()
        if sort_order is not None:
            changes[SeatingResource.sort_order] = sort_order
        if allowed_guest_type_ids is not None:
            changes[SeatingResource.allowed_guest_type_ids] = SeatingService._validate_allow_list(
                db, resource.event_id, allowed_guest_type_ids
            )
        if is_active is not None:
            changes[SeatingResource.is_active] = is_active

        query = db.query(SeatingResource).filter(SeatingResource.id == resource_id)
        if capacity is not None:
            if capacity < 1:
                raise InvalidRequest("Capacity must be at least 1", field="capacity")
            changes[SeatingResource.capacity] = capacity
            # Shrinking below the guests already seated would break the occupancy bound
            query = query.filter(SeatingResource.occupied <= capacity)

        if changes:
            updated = query.update(changes, synchronize_session=False)
            if updated != 1:
                db.rollback()
                db.refresh(resource)
                raise InvalidRequest(
                    f"Capacity {capacity} is below the {resource.occupied} guests already seated",
                    field="capacity",
                )
            db.commit()
            db.refresh(resource)
        return resource

    @staticmethod
    def deactivate_resource(resource_id: int, actor: Actor, *, db: Session) -> SeatingResource:
        """Hide a resource from future passes; seated guests stay where they are"""
        return SeatingService.update_resource(resource_id, actor, db=db, is_active=False)

    @staticmethod
    @guard_storage
    def list_resources(event_id: int, *, db: Session, include_inactive: bool = True) -> List[SeatingResource]:
        query = db.query(SeatingResource).filter(SeatingResource.event_id == event_id)
        if not include_inactive:
            query = query.filter(SeatingResource.is_active == True)
        return query.order_by(SeatingResource.sort_order, SeatingResource.id).all()

    # -------- Manual assignment --------

    @staticmethod
    def _release(db: Session, resource_id: int) -> None:
        db.query(SeatingResource).filter(
            SeatingResource.id == resource_id,
            SeatingResource.occupied > 0,
        ).update({SeatingResource.occupied: SeatingResource.occupied - 1}, synchronize_session=False)

    @staticmethod
    def _claim(db: Session, resource_id: int) -> bool:
        claimed = db.query(SeatingResource).filter(
            SeatingResource.id == resource_id,
            SeatingResource.is_active == True,
            SeatingResource.occupied < SeatingResource.capacity,
        ).update({SeatingResource.occupied: SeatingResource.occupied + 1}, synchronize_session=False)
        return claimed == 1

    @staticmethod
    def _move_guest(db: Session, guest_id: int, previous_id: Optional[int], target_id: Optional[int]) -> bool:
        """Compare-and-swap on the guest's current seat reference"""
        query = db.query(Guest).filter(Guest.id == guest_id, Guest.deleted_at.is_(None))
        if previous_id is None:
            query = query.filter(Guest.seating_resource_id.is_(None))
        else:
            query = query.filter(Guest.seating_resource_id == previous_id)
        moved = query.update(
            {Guest.seating_resource_id: target_id, Guest.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
        return moved == 1

    @staticmethod
    def _hold_event_for_assignment(db: Session, event_id: int) -> None:
        """Shared lock on the event row; waits out a running auto-assign pass"""
        db.query(Event.id).filter(Event.id == event_id).with_for_update(read=True).first()

    @staticmethod
    @guard_storage
    def assign_seat(guest_id: int, resource_id: int, actor: Actor, *, db: Session) -> Guest:
        """Seat one guest, releasing any previous seat in the same transaction.

        Capacity is claimed with a conditional increment, so racing devices
        can never push a resource past its capacity.
        """
        actor.require(Permission.CHECKIN)
        guest = GuestRepo.require(db, guest_id)
        actor.ensure_scope(guest.event_id)
        resource = SeatingResourceRepo.get(db, resource_id)
        if not resource or resource.event_id != guest.event_id or not resource.is_active:
            raise NotFound("Seating resource", resource_id)
        if not resource.accepts(guest.guest_type_id):
            raise TypeNotAllowed(resource.name, guest.guest_type_id, resource.allowed_guest_type_ids or [])
        if guest.seating_resource_id == resource.id:
            return guest

        for _ in range(MOVE_ATTEMPTS):
            SeatingService._hold_event_for_assignment(db, guest.event_id)
            db.refresh(guest)
            if guest.is_deleted:
                db.rollback()
                raise NotFound("Guest", guest_id)
            previous_id = guest.seating_resource_id
            if previous_id == resource.id:
                db.rollback()
                return guest

            # Touch resource rows in id order so two opposite moves cannot deadlock
            if previous_id is not None and previous_id < resource.id:
                SeatingService._release(db, previous_id)
            claimed = SeatingService._claim(db, resource.id)
            if not claimed:
                db.rollback()
                db.refresh(resource)
                if not resource.is_active:
                    raise NotFound("Seating resource", resource_id)
                raise CapacityExceeded(resource.id, resource.name, resource.capacity, resource.occupied)
            if previous_id is not None and previous_id > resource.id:
                SeatingService._release(db, previous_id)

            if SeatingService._move_guest(db, guest.id, previous_id, resource.id):
                StaffLogRepo.record(
                    db, guest.event_id, actor.actor_id, StaffAction.SEAT_ASSIGN,
                    guest_id=guest.id, notes=f"{previous_id or '-'} -> {resource.id}",
                )
                db.commit()
                db.refresh(guest)
                logger.info(f"Guest {guest.id} seated at resource {resource.id} by {actor.actor_id}")
                return guest

            # Someone else moved the guest meanwhile; undo the claim and start over
            db.rollback()

        raise StorageUnavailable("Seat assignment kept conflicting with other devices, try again")

    @staticmethod
    @guard_storage
    def unassign_seat(guest_id: int, actor: Actor, *, db: Session) -> Guest:
        actor.require(Permission.CHECKIN)
        guest = GuestRepo.require(db, guest_id)
        actor.ensure_scope(guest.event_id)

        for _ in range(MOVE_ATTEMPTS):
            db.refresh(guest)
            previous_id = guest.seating_resource_id
            if previous_id is None:
                return guest
            SeatingService._hold_event_for_assignment(db, guest.event_id)
            if SeatingService._move_guest(db, guest.id, previous_id, None):
                SeatingService._release(db, previous_id)
                StaffLogRepo.record(
                    db, guest.event_id, actor.actor_id, StaffAction.SEAT_ASSIGN,
                    guest_id=guest.id, notes=f"{previous_id} -> -",
                )
                db.commit()
                db.refresh(guest)
                logger.info(f"Guest {guest.id} released from resource {previous_id}")
                return guest
            db.rollback()

        raise StorageUnavailable("Seat release kept conflicting with other devices, try again")

    @staticmethod
    @guard_storage
    def bulk_assign(
        event_id: int,
        assignments: List[Tuple[int, int]],
        actor: Actor,
        *,
        db: Session,
    ) -> List[Dict]:
        """Seat several guests, one transaction per guest.

        A failed item does not stop the batch; every pair gets its own outcome
        in request order.
        """
        actor.require_owner()
        actor.ensure_scope(event_id)
        EventRepo.require(db, event_id)
        if not assignments:
            raise InvalidRequest("No assignments given", field="assignments")
        if len(assignments) > BULK_ASSIGN_LIMIT:
            raise InvalidRequest(
                f"At most {BULK_ASSIGN_LIMIT} assignments per request", field="assignments"
            )

        results = []
        for guest_id, resource_id in assignments:
            result = {
                "guest_id": guest_id,
                "resource_id": resource_id,
                "assigned": False,
                "error_code": None,
                "message": None,
            }
            try:
                guest = GuestRepo.get_live(db, guest_id)
                if not guest or guest.event_id != event_id:
                    raise NotFound("Guest", guest_id)
                SeatingService.assign_seat(guest_id, resource_id, actor, db=db)
                result["assigned"] = True
            except GuestbookError as exc:
                db.rollback()
                result["error_code"] = exc.code
                result["message"] = exc.message
            results.append(result)

        assigned = sum(1 for r in results if r["assigned"])
        logger.info(f"Bulk assign for event {event_id}: {assigned} of {len(results)} seated by {actor.actor_id}")
        return results

    @staticmethod
    def check_seat_allows(db: Session, guest: Guest, guest_type_id: Optional[int]) -> None:
        """Raise if the guest's current seat would not accept the given type"""
        if guest.seating_resource_id is None:
            return
        resource = SeatingResourceRepo.require(db, guest.seating_resource_id)
        if not resource.accepts(guest_type_id):
            raise TypeNotAllowed(resource.name, guest_type_id, resource.allowed_guest_type_ids or [])

    @staticmethod
    @guard_storage
    def availability(resource_id: int, *, db: Session, guest_id: Optional[int] = None) -> Dict:
        """Pure read of remaining capacity, optionally for a specific guest"""
        resource = SeatingResourceRepo.require(db, resource_id)
        result = resource_dict(resource)
        result["available"] = resource.is_active and resource.remaining > 0
        if guest_id is not None:
            guest = GuestRepo.require(db, guest_id)
            result["guest_id"] = guest.id
            result["type_allowed"] = resource.accepts(guest.guest_type_id)
            result["available"] = result["available"] and result["type_allowed"] and guest.event_id == resource.event_id
        return result

    @staticmethod
    @guard_storage
    def seating_stats(event_id: int, *, db: Session) -> Dict:
        EventRepo.require(db, event_id)
        resources = SeatingService.list_resources(event_id, db=db, include_inactive=False)
        total_capacity = sum(r.capacity for r in resources)
        occupied = sum(r.occupied for r in resources)
        live = GuestRepo.live(db, event_id)
        total_guests = live.count()
        assigned = live.filter(Guest.seating_resource_id.isnot(None)).count()

        return {
            "active_resources": len(resources),
            "total_capacity": total_capacity,
            "occupied": occupied,
            "available": total_capacity - occupied,
            "assigned_guests": assigned,
            "unassigned_guests": total_guests - assigned,
        }

    # -------- Auto-assign --------

    @staticmethod
    @guard_storage
    def auto_assign(event_id: int, actor: Actor, *, db: Session) -> AutoAssignReport:
        """First-fit greedy pass over every unassigned guest of the event.

        Guests are taken in creation order; resources in sort order. Remaining
        capacity is read once at the start and only decremented in memory
        during the pass. The event row is write-locked for the whole pass so
        manual assignments wait until it commits.
        """
        actor.require_owner()
        actor.ensure_scope(event_id)

        event = db.query(Event).filter(Event.id == event_id).with_for_update().first()
        if not event:
            raise NotFound("Event", event_id)
        event.last_auto_assign_at = datetime.utcnow()
        db.flush()

        resources = db.query(SeatingResource).filter(
            SeatingResource.event_id == event_id,
            SeatingResource.is_active == True,
        ).order_by(SeatingResource.sort_order, SeatingResource.id).all()
        remaining = {r.id: r.capacity - r.occupied for r in resources}

        candidates = GuestRepo.live(db, event_id).filter(
            Guest.seating_resource_id.is_(None)
        ).order_by(Guest.created_at, Guest.id).all()

        report = AutoAssignReport(event_id=event_id)
        moved = Counter()
        for guest in candidates:
            outcome = AssignmentOutcome(guest_id=guest.id, guest_name=guest.name)
            report.outcomes.append(outcome)
            if not resources:
                outcome.reason = UnassignedReason.NO_RESOURCES
                continue
            eligible = [r for r in resources if r.accepts(guest.guest_type_id)]
            if not eligible:
                outcome.reason = UnassignedReason.NO_ELIGIBLE_RESOURCE
                continue
            target = next((r for r in eligible if remaining[r.id] > 0), None)
            if target is None:
                outcome.reason = UnassignedReason.NO_CAPACITY
                continue
            # Only a guest actually moved consumes a seat of the snapshot
            if not SeatingService._move_guest(db, guest.id, None, target.id):
                outcome.reason = UnassignedReason.ALREADY_ASSIGNED
                continue
            remaining[target.id] -= 1
            moved[target.id] += 1
            outcome.resource_id = target.id
            outcome.resource_name = target.name

        for resource_id in sorted(moved):
            count = moved[resource_id]
            updated = db.query(SeatingResource).filter(
                SeatingResource.id == resource_id,
                SeatingResource.occupied + count <= SeatingResource.capacity,
            ).update({SeatingResource.occupied: SeatingResource.occupied + count}, synchronize_session=False)
            if updated != 1:
                db.rollback()
                resource = SeatingResourceRepo.require(db, resource_id)
                raise CapacityExceeded(resource.id, resource.name, resource.capacity, resource.occupied)

        StaffLogRepo.record(
            db, event_id, actor.actor_id, StaffAction.AUTO_ASSIGN,
            notes=f"assigned={report.assigned_count} unassigned={report.unassigned_count}",
        )
        db.commit()
        logger.info(
            f"Auto-assign for event {event_id}: {report.assigned_count} assigned, "
            f"{report.unassigned_count} unassigned {report.unassigned_reasons}"
        )
        return report
