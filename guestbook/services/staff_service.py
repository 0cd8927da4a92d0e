"""
Staff accounts: issuing access tokens with permission flags
"""

import logging
from typing import List, Tuple

from sqlalchemy.orm import Session

from guestbook.core.db import guard_storage
from guestbook.core.exceptions import InvalidRequest, NotFound
from guestbook.models import StaffMember
from guestbook.services.repositories import EventRepo
from guestbook.utils.security import Actor, issue_access_token

logger = logging.getLogger(__name__)

STAFF_EDITABLE_FIELDS = (
    "full_name",
    "phone",
    "can_checkin",
    "can_redeem_souvenir",
    "can_redeem_snack",
    "can_access_vip_lounge",
    "is_active",
)


class StaffService:

    @staticmethod
    @guard_storage
    def create_staff(event_id: int, actor: Actor, *, db: Session, **fields) -> Tuple[StaffMember, str]:
        """The access token is only ever returned here"""
        actor.require_owner()
        EventRepo.require(db, event_id)
        token = issue_access_token()
        staff = StaffMember(event_id=event_id, access_token=token, **fields)
        db.add(staff)
        db.commit()
        db.refresh(staff)
        logger.info(f"Staff {staff.id} created for event {event_id}")
        return staff, token

    @staticmethod
    @guard_storage
    def list_staff(event_id: int, *, db: Session) -> List[StaffMember]:
        return db.query(StaffMember).filter(StaffMember.event_id == event_id).order_by(StaffMember.id).all()

    @staticmethod
    @guard_storage
    def update_staff(staff_id: int, actor: Actor, *, db: Session, **changes) -> StaffMember:
        """Change name, phone, permission flags or the active switch of a staff account"""
        actor.require_owner()
        unknown = sorted(set(changes) - set(STAFF_EDITABLE_FIELDS))
        if unknown:
            raise InvalidRequest(f"Fields cannot be edited: {unknown}", field=unknown[0])
        staff = db.query(StaffMember).filter(StaffMember.id == staff_id).first()
        if not staff:
            raise NotFound("Staff member", staff_id)
        if "full_name" in changes and not (changes["full_name"] or "").strip():
            raise InvalidRequest("Staff name is required", field="full_name")

        for key, value in changes.items():
            if key in ("full_name", "phone") and value is not None:
                value = value.strip() or None
            if key != "phone" and value is None:
                continue
            setattr(staff, key, value)
        db.commit()
        db.refresh(staff)
        logger.info(f"Staff {staff_id} updated: {sorted(changes)}")
        return staff

    @staticmethod
    @guard_storage
    def deactivate_staff(staff_id: int, actor: Actor, *, db: Session) -> StaffMember:
        actor.require_owner()
        staff = db.query(StaffMember).filter(StaffMember.id == staff_id).first()
        if not staff:
            raise NotFound("Staff member", staff_id)
        staff.is_active = False
        db.commit()
        db.refresh(staff)
        logger.info(f"Staff {staff_id} deactivated")
        return staff
