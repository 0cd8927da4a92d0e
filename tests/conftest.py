"""
Shared builders for guestbook tests.

Each test module owns its SQLite file and ``db_session`` fixture; the
builders below only add rows through whatever session that module provides.
"""

import itertools
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from guestbook.core.db import Base
from guestbook.models import (
    BenefitType,
    CheckInStatus,
    Entitlement,
    Event,
    Guest,
    GuestType,
    SeatingResource,
    StaffMember,
)
from guestbook.utils.security import Actor

_counter = itertools.count(1)


def make_test_db(path: str):
    """Engine and session factory for a per-module SQLite file"""
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


def session_fixture(engine, session_factory):
    """Create tables, yield a session, then drop everything"""
    Base.metadata.create_all(bind=engine)
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def owner():
    return Actor.owner()


@pytest.fixture
def make_event(db_session):
    def _make(name="Wedding Reception"):
        event = Event(
            name=name,
            date=datetime(2024, 8, 20, 18, 0),
            organizer_email="organizer@gardenwedding.com",
            public_code=f"EVT{next(_counter):05d}",
        )
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event
    return _make


@pytest.fixture
def make_guest_type(db_session):
    def _make(event, type_name="REGULAR"):
        guest_type = GuestType(event_id=event.id, type_name=type_name, display_name=type_name.title())
        db_session.add(guest_type)
        db_session.commit()
        db_session.refresh(guest_type)
        return guest_type
    return _make


@pytest.fixture
def make_guest(db_session):
    def _make(event, name=None, guest_type=None, max_companions=0, checked_in=False, **fields):
        guest = Guest(
            event_id=event.id,
            name=name or f"Guest {next(_counter)}",
            guest_type_id=guest_type.id if guest_type else None,
            max_companions=max_companions,
            scan_code=f"SC-{next(_counter):06d}",
            **fields,
        )
        if checked_in:
            guest.checkin_status = CheckInStatus.CHECKED_IN
            guest.checked_in_at = datetime.utcnow()
        db_session.add(guest)
        db_session.commit()
        db_session.refresh(guest)
        return guest
    return _make


@pytest.fixture
def make_resource(db_session):
    def _make(event, name=None, capacity=10, sort_order=0, allowed=None, is_active=True):
        resource = SeatingResource(
            event_id=event.id,
            name=name or f"Table {next(_counter)}",
            capacity=capacity,
            occupied=0,
            sort_order=sort_order,
            allowed_guest_type_ids=[t.id for t in allowed] if allowed else [],
            is_active=is_active,
        )
        db_session.add(resource)
        db_session.commit()
        db_session.refresh(resource)
        return resource
    return _make


@pytest.fixture
def make_entitlement(db_session):
    def _make(guest_type, benefit_type=BenefitType.SOUVENIR, max_quantity=1, is_active=True):
        entitlement = Entitlement(
            event_id=guest_type.event_id,
            guest_type_id=guest_type.id,
            benefit_type=benefit_type,
            max_quantity=max_quantity,
            is_active=is_active,
        )
        db_session.add(entitlement)
        db_session.commit()
        db_session.refresh(entitlement)
        return entitlement
    return _make


@pytest.fixture
def make_staff(db_session):
    def _make(event, **flags):
        staff = StaffMember(
            event_id=event.id,
            full_name=f"Staff {next(_counter)}",
            access_token=f"staff-token-{next(_counter)}",
            **flags,
        )
        db_session.add(staff)
        db_session.commit()
        db_session.refresh(staff)
        return staff
    return _make
