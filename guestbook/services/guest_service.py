"""
Guest registration, walk-ins, edits and soft deletion
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from guestbook.core.db import guard_storage
from guestbook.core.exceptions import CompanionLimitExceeded, InvalidRequest, StorageUnavailable
from guestbook.models import CheckInStatus, Guest, GuestSource, SeatingResource, StaffAction
from guestbook.services.repositories import EventRepo, GuestRepo, GuestTypeRepo, StaffLogRepo
from guestbook.services.seating_service import SeatingService
from guestbook.utils.security import Actor, Permission

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "phone", "email", "guest_type_id", "max_companions", "notes")


class GuestService:

    @staticmethod
    def build_guest(
        db: Session,
        event_id: int,
        name: str,
        *,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        guest_type_id: Optional[int] = None,
        max_companions: int = 0,
        notes: Optional[str] = None,
        source: GuestSource = GuestSource.REGISTERED,
    ) -> Guest:
        """Validate and stage a new guest without committing"""
        if not name or not name.strip():
            raise InvalidRequest("Guest name is required", field="name")
        if max_companions is None or max_companions < 0:
            raise InvalidRequest("max_companions must be zero or more", field="max_companions")
        if guest_type_id is not None:
            GuestTypeRepo.require(db, guest_type_id, event_id=event_id)

        guest = Guest(
            event_id=event_id,
            name=name.strip(),
            phone=(phone or "").strip() or None,
            email=(email or "").strip() or None,
            guest_type_id=guest_type_id,
            max_companions=max_companions,
            notes=notes,
            source=source,
            scan_code=GuestRepo.new_scan_code(db),
        )
        db.add(guest)
        return guest

    @staticmethod
    @guard_storage
    def register_guest(event_id: int, actor: Actor, *, db: Session, **fields) -> Guest:
        actor.require_owner()
        EventRepo.require(db, event_id)
        guest = GuestService.build_guest(db, event_id, source=GuestSource.REGISTERED, **fields)
        db.commit()
        db.refresh(guest)
        logger.info(f"Guest {guest.id} registered for event {event_id}")
        return guest

    @staticmethod
    @guard_storage
    def register_walkin(
        event_id: int,
        actor: Actor,
        *,
        db: Session,
        check_in: bool = False,
        companion_count: int = 0,
        **fields,
    ) -> Guest:
        """Staff at the door may add a guest who is not on the list.

        With ``check_in`` the guest is registered and checked in by one
        commit; a rejected check-in leaves no guest row behind.
        """
        actor.ensure_scope(event_id)
        actor.require(Permission.CHECKIN)
        EventRepo.require(db, event_id)
        if check_in:
            max_companions = fields.get("max_companions") or 0
            if companion_count is None or companion_count < 0:
                raise InvalidRequest("companion_count must be zero or more", field="companion_count")
            if companion_count > max_companions:
                raise CompanionLimitExceeded(max_companions, companion_count)

        guest = GuestService.build_guest(db, event_id, source=GuestSource.WALKIN, **fields)
        if check_in:
            now = datetime.utcnow()
            guest.checkin_status = CheckInStatus.CHECKED_IN
            guest.actual_companions = companion_count
            guest.checked_in_at = now
            guest.checked_in_by = actor.actor_id
            db.flush()
            StaffLogRepo.record(
                db, event_id, actor.actor_id, StaffAction.CHECKIN,
                guest_id=guest.id, notes=f"walk-in, companions={companion_count}",
            )
        db.commit()
        db.refresh(guest)
        logger.info(
            f"Walk-in guest {guest.id} added to event {event_id} by {actor.actor_id}"
            f"{' and checked in' if check_in else ''}"
        )
        return guest

    @staticmethod
    @guard_storage
    def update_guest(guest_id: int, actor: Actor, *, db: Session, **changes) -> Guest:
        """Owner edit of a registered guest.

        A type change is checked against the allow-list of the seat the guest
        already holds, and only lands if the seat did not change meanwhile.
        """
        actor.require_owner()
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise InvalidRequest(f"Fields cannot be edited: {unknown}", field=unknown[0])
        guest = GuestRepo.require(db, guest_id)

        values = {}
        if "name" in changes:
            name = changes["name"]
            if not name or not name.strip():
                raise InvalidRequest("Guest name is required", field="name")
            values[Guest.name] = name.strip()
        for key in ("phone", "email"):
            if key in changes:
                values[getattr(Guest, key)] = (changes[key] or "").strip() or None
        if "notes" in changes:
            values[Guest.notes] = changes["notes"]
        if "max_companions" in changes:
            max_companions = changes["max_companions"]
            if max_companions is None or max_companions < 0:
                raise InvalidRequest("max_companions must be zero or more", field="max_companions")
            if max_companions < (guest.actual_companions or 0):
                raise InvalidRequest(
                    f"{guest.actual_companions} companions already arrived with this guest",
                    field="max_companions",
                )
            values[Guest.max_companions] = max_companions

        query = db.query(Guest).filter(Guest.id == guest.id, Guest.deleted_at.is_(None))
        if "guest_type_id" in changes and changes["guest_type_id"] != guest.guest_type_id:
            guest_type_id = changes["guest_type_id"]
            if guest_type_id is not None:
                GuestTypeRepo.require(db, guest_type_id, event_id=guest.event_id)
            SeatingService.check_seat_allows(db, guest, guest_type_id)
            if guest.seating_resource_id is None:
                query = query.filter(Guest.seating_resource_id.is_(None))
            else:
                query = query.filter(Guest.seating_resource_id == guest.seating_resource_id)
            values[Guest.guest_type_id] = guest_type_id

        if not values:
            return guest
        values[Guest.updated_at] = datetime.utcnow()
        if query.update(values, synchronize_session=False) != 1:
            db.rollback()
            raise StorageUnavailable("Guest changed while editing, try again")
        db.commit()
        db.refresh(guest)
        logger.info(f"Guest {guest_id} updated by {actor.actor_id}: {sorted(changes)}")
        return guest

    @staticmethod
    @guard_storage
    def soft_delete_guest(guest_id: int, actor: Actor, *, db: Session) -> Guest:
        """Tombstone the guest; history rows keep pointing at it"""
        actor.require_owner()
        guest = GuestRepo.require(db, guest_id)

        now = datetime.utcnow()
        previous_id = guest.seating_resource_id
        query = db.query(Guest).filter(Guest.id == guest.id, Guest.deleted_at.is_(None))
        if previous_id is None:
            query = query.filter(Guest.seating_resource_id.is_(None))
        else:
            query = query.filter(Guest.seating_resource_id == previous_id)
        updated = query.update(
            {Guest.deleted_at: now, Guest.seating_resource_id: None, Guest.updated_at: now},
            synchronize_session=False,
        )
        if updated != 1:
            db.rollback()
            raise StorageUnavailable("Guest changed while deleting, try again")
        if previous_id is not None:
            db.query(SeatingResource).filter(
                SeatingResource.id == previous_id,
                SeatingResource.occupied > 0,
            ).update({SeatingResource.occupied: SeatingResource.occupied - 1}, synchronize_session=False)
        db.commit()
        db.refresh(guest)
        logger.info(f"Guest {guest_id} deleted by {actor.actor_id}")
        return guest
