"""
Repository layer: shared lookups scoped to one event
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from guestbook.core.exceptions import NotFound
from guestbook.models import Event, Guest, GuestType, SeatingResource, StaffAction, StaffLog

SCAN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_public_code(length: int = 8) -> str:
    return "".join(secrets.choice(SCAN_CODE_ALPHABET) for _ in range(length))


# -------- Event repository --------

class EventRepo:
    @staticmethod
    def get_by_public_code(db: Session, public_code: str) -> Optional[Event]:
        return db.query(Event).filter(Event.public_code == public_code).first()

    @staticmethod
    def get_by_id(db: Session, event_id: int) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id).first()

    @staticmethod
    def require(db: Session, event_id: int) -> Event:
        event = EventRepo.get_by_id(db, event_id)
        if not event:
            raise NotFound("Event", event_id)
        return event

    @staticmethod
    def create(db: Session, name: str, date: datetime, organizer_email: str) -> Event:
        public_code = generate_public_code()
        while EventRepo.get_by_public_code(db, public_code):
            public_code = generate_public_code()
        event = Event(name=name, date=date, organizer_email=organizer_email, public_code=public_code)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event


# -------- Guest repository --------

class GuestRepo:
    @staticmethod
    def live(db: Session, event_id: int):
        """Query over the event's guests that have not been tombstoned"""
        return db.query(Guest).filter(Guest.event_id == event_id, Guest.deleted_at.is_(None))

    @staticmethod
    def get_live(db: Session, guest_id: int) -> Optional[Guest]:
        return db.query(Guest).filter(Guest.id == guest_id, Guest.deleted_at.is_(None)).first()

    @staticmethod
    def require(db: Session, guest_id: int) -> Guest:
        guest = GuestRepo.get_live(db, guest_id)
        if not guest:
            raise NotFound("Guest", guest_id)
        return guest

    @staticmethod
    def new_scan_code(db: Session) -> str:
        code = secrets.token_urlsafe(12)
        while db.query(Guest.id).filter(Guest.scan_code == code).first():
            code = secrets.token_urlsafe(12)
        return code


# -------- Guest type repository --------

class GuestTypeRepo:
    @staticmethod
    def list_for_event(db: Session, event_id: int) -> List[GuestType]:
        return db.query(GuestType).filter(GuestType.event_id == event_id).order_by(
            GuestType.priority_order, GuestType.id
        ).all()

    @staticmethod
    def get_by_name(db: Session, event_id: int, type_name: str) -> Optional[GuestType]:
        return db.query(GuestType).filter(
            GuestType.event_id == event_id,
            GuestType.type_name == type_name
        ).first()

    @staticmethod
    def require(db: Session, guest_type_id: int, event_id: Optional[int] = None) -> GuestType:
        query = db.query(GuestType).filter(GuestType.id == guest_type_id)
        if event_id is not None:
            query = query.filter(GuestType.event_id == event_id)
        guest_type = query.first()
        if not guest_type:
            raise NotFound("Guest type", guest_type_id)
        return guest_type

    @staticmethod
    def create(db: Session, event_id: int, type_name: str, display_name: Optional[str] = None,
               priority_order: int = 0) -> GuestType:
        guest_type = GuestType(
            event_id=event_id,
            type_name=type_name,
            display_name=display_name or type_name,
            priority_order=priority_order,
        )
        db.add(guest_type)
        db.commit()
        db.refresh(guest_type)
        return guest_type


# -------- Seating resource repository --------

class SeatingResourceRepo:
    @staticmethod
    def get(db: Session, resource_id: int) -> Optional[SeatingResource]:
        return db.query(SeatingResource).filter(SeatingResource.id == resource_id).first()

    @staticmethod
    def require(db: Session, resource_id: int) -> SeatingResource:
        resource = SeatingResourceRepo.get(db, resource_id)
        if not resource:
            raise NotFound("Seating resource", resource_id)
        return resource


# -------- Staff log repository --------

class StaffLogRepo:
    @staticmethod
    def record(db: Session, event_id: int, actor_id: str, action: StaffAction,
               guest_id: Optional[int] = None, notes: Optional[str] = None) -> StaffLog:
        """Stage an audit row; the caller's commit persists it with the change it describes"""
        entry = StaffLog(event_id=event_id, actor_id=actor_id, guest_id=guest_id, action=action, notes=notes)
        db.add(entry)
        return entry
