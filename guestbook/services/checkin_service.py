"""
Guest check-in state machine with real-time broadcasting
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from guestbook.core.db import guard_storage
from guestbook.core.exceptions import (
    AlreadyCheckedIn,
    CompanionLimitExceeded,
    InvalidRequest,
    NotCheckedIn,
    NotFound,
)
from guestbook.models import CheckInStatus, Guest, StaffAction, StaffLog
from guestbook.services.identity_service import IdentityResolver
from guestbook.services.repositories import EventRepo, GuestRepo, StaffLogRepo
from guestbook.utils.security import Actor, Permission

logger = logging.getLogger(__name__)


def rate_percent(part: int, total: int) -> int:
    """Integer percentage, halves rounded up"""
    if total <= 0:
        return 0
    return (200 * part + total) // (2 * total)


class CheckInService:
    """Service for handling guest check-ins"""

    def __init__(self, websocket_manager):
        self.websocket_manager = websocket_manager

    @staticmethod
    @guard_storage
    def check_in(
        guest_id: int,
        companion_count: int,
        actor: Actor,
        *,
        db: Session,
        notes: Optional[str] = None,
    ) -> Guest:
        """Move a guest from NOT_ARRIVED to CHECKED_IN exactly once.

        The final write is conditional on the guest still being NOT_ARRIVED,
        so of several devices scanning the same guest at once only one
        update matches a row; the others see AlreadyCheckedIn.
        """
        actor.require(Permission.CHECKIN)
        guest = GuestRepo.require(db, guest_id)
        actor.ensure_scope(guest.event_id)

        if not guest.checkin_status.can_transition_to(CheckInStatus.CHECKED_IN):
            raise AlreadyCheckedIn(guest.id, guest.name, guest.checked_in_at)
        if companion_count is None or companion_count < 0:
            raise InvalidRequest("companion_count must be zero or more", field="companion_count")
        if companion_count > guest.max_companions:
            raise CompanionLimitExceeded(guest.max_companions, companion_count)

        now = datetime.utcnow()
        updated = db.query(Guest).filter(
            Guest.id == guest.id,
            Guest.checkin_status == CheckInStatus.NOT_ARRIVED,
            Guest.deleted_at.is_(None),
        ).update(
            {
                Guest.checkin_status: CheckInStatus.CHECKED_IN,
                Guest.actual_companions: companion_count,
                Guest.checked_in_at: now,
                Guest.checked_in_by: actor.actor_id,
                Guest.updated_at: now,
            },
            synchronize_session=False,
        )
        if updated != 1:
            db.rollback()
            current = GuestRepo.get_live(db, guest_id)
            if not current:
                raise NotFound("Guest", guest_id)
            raise AlreadyCheckedIn(current.id, current.name, current.checked_in_at)

        StaffLogRepo.record(
            db, guest.event_id, actor.actor_id, StaffAction.CHECKIN,
            guest_id=guest.id, notes=notes or f"companions={companion_count}",
        )
        db.commit()
        db.refresh(guest)
        logger.info(f"Guest {guest.id} checked in by {actor.actor_id} with {companion_count} companions")
        return guest

    @staticmethod
    def check_in_identified(
        event_id: int,
        actor: Actor,
        *,
        db: Session,
        guest_id: Optional[int] = None,
        scan_code: Optional[str] = None,
        name: Optional[str] = None,
        group: Optional[str] = None,
        companion_count: int = 0,
        notes: Optional[str] = None,
    ) -> Guest:
        """Resolve the identifier first; a name with several matches is not guessed"""
        actor.ensure_scope(event_id)
        resolution = IdentityResolver.resolve(
            event_id, db=db, guest_id=guest_id, scan_code=scan_code, name=name, group=group
        )
        guest = resolution.unwrap(guest_id or scan_code or name)
        return CheckInService.check_in(guest.id, companion_count, actor, db=db, notes=notes)

    @staticmethod
    @guard_storage
    def undo_check_in(guest_id: int, actor: Actor, reason: str, *, db: Session) -> Guest:
        """Administrative reversal back to NOT_ARRIVED; owner only, always audited"""
        actor.require_owner()
        guest = GuestRepo.require(db, guest_id)

        updated = db.query(Guest).filter(
            Guest.id == guest.id,
            Guest.checkin_status == CheckInStatus.CHECKED_IN,
        ).update(
            {
                Guest.checkin_status: CheckInStatus.NOT_ARRIVED,
                Guest.actual_companions: 0,
                Guest.checked_in_at: None,
                Guest.checked_in_by: None,
                Guest.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        if updated != 1:
            db.rollback()
            raise NotCheckedIn(guest.id, guest.name)

        StaffLogRepo.record(db, guest.event_id, actor.actor_id, StaffAction.UNDO_CHECKIN,
                            guest_id=guest.id, notes=reason)
        db.commit()
        db.refresh(guest)
        logger.info(f"Check-in of guest {guest.id} undone by {actor.actor_id}: {reason}")
        return guest

    @staticmethod
    @guard_storage
    def checkin_stats(event_id: int, *, db: Session) -> Dict:
        EventRepo.require(db, event_id)
        live = GuestRepo.live(db, event_id)
        total = live.count()
        checked_in = live.filter(Guest.checkin_status == CheckInStatus.CHECKED_IN).count()
        companions = db.query(func.coalesce(func.sum(Guest.actual_companions), 0)).filter(
            Guest.event_id == event_id,
            Guest.deleted_at.is_(None),
            Guest.checkin_status == CheckInStatus.CHECKED_IN,
        ).scalar()

        return {
            "total_guests": total,
            "checked_in": checked_in,
            "not_checked_in": total - checked_in,
            "checkin_rate": rate_percent(checked_in, total),
            "total_companions": int(companions or 0),
            "total_attendees": checked_in + int(companions or 0),
        }

    @staticmethod
    @guard_storage
    def checkin_logs(event_id: int, *, db: Session, limit: int = 50) -> List[Dict]:
        rows = db.query(StaffLog, Guest.name).outerjoin(Guest, StaffLog.guest_id == Guest.id).filter(
            StaffLog.event_id == event_id,
            StaffLog.action.in_([StaffAction.CHECKIN, StaffAction.UNDO_CHECKIN]),
        ).order_by(StaffLog.created_at.desc(), StaffLog.id.desc()).limit(limit).all()

        return [
            {
                "id": entry.id,
                "guest_id": entry.guest_id,
                "guest_name": guest_name,
                "action": entry.action.value,
                "actor_id": entry.actor_id,
                "notes": entry.notes,
                "created_at": entry.created_at.isoformat(),
            }
            for entry, guest_name in rows
        ]

    async def broadcast_checkin(self, public_code: str, guest: Guest):
        """Push a check-in to every dashboard watching the event"""
        message = {
            "type": "checkin",
            "guest": {
                "id": guest.id,
                "name": guest.name,
                "companions": guest.actual_companions,
                "seating_resource_id": guest.seating_resource_id,
            },
            "timestamp": datetime.utcnow().isoformat(),
        }
        await self.websocket_manager.broadcast_to_event(public_code, message)

    async def broadcast_stats(self, public_code: str, stats: Dict):
        await self.websocket_manager.broadcast_to_event(public_code, {
            "type": "stats",
            "stats": stats,
            "timestamp": datetime.utcnow().isoformat(),
        })
