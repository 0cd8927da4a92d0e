"""
Tests for the check-in state machine
"""

import pytest
from concurrent.futures import ThreadPoolExecutor

from guestbook.core.exceptions import (
    AlreadyCheckedIn,
    AmbiguousMatch,
    CompanionLimitExceeded,
    NotCheckedIn,
    NotFound,
    PermissionDenied,
)
from guestbook.models import CheckInStatus, Guest, StaffAction, StaffLog
from guestbook.services.checkin_service import CheckInService, rate_percent
from guestbook.utils.security import Actor
from tests.conftest import make_test_db, session_fixture

engine, TestingSessionLocal = make_test_db("./test_checkin.db")

@pytest.fixture
def db_session():
    yield from session_fixture(engine, TestingSessionLocal)

@pytest.fixture
def event(make_event):
    return make_event()

@pytest.fixture
def desk(event, make_staff):
    return Actor.from_staff(make_staff(event, can_checkin=True))

class TestCheckIn:
    def test_checks_in_once(self, db_session, event, make_guest, desk):
        guest = make_guest(event, max_companions=2)
        result = CheckInService.check_in(guest.id, 2, desk, db=db_session)

        assert result.checkin_status == CheckInStatus.CHECKED_IN
        assert result.actual_companions == 2
        assert result.checked_in_at is not None
        assert result.checked_in_by == desk.actor_id

        log = db_session.query(StaffLog).filter(StaffLog.guest_id == guest.id).one()
        assert log.action == StaffAction.CHECKIN

    def test_second_scan_reports_already_checked_in(self, db_session, event, make_guest, desk):
        guest = make_guest(event)
        CheckInService.check_in(guest.id, 0, desk, db=db_session)

        with pytest.raises(AlreadyCheckedIn) as excinfo:
            CheckInService.check_in(guest.id, 0, desk, db=db_session)
        assert excinfo.value.details["guest_id"] == guest.id
        assert excinfo.value.details["checked_in_at"] is not None

    def test_companion_limit(self, db_session, event, make_guest, desk):
        guest = make_guest(event, max_companions=3)

        with pytest.raises(CompanionLimitExceeded) as excinfo:
            CheckInService.check_in(guest.id, 4, desk, db=db_session)
        assert excinfo.value.details == {"max_companions": 3, "requested": 4}

        db_session.refresh(guest)
        assert guest.checkin_status == CheckInStatus.NOT_ARRIVED

        result = CheckInService.check_in(guest.id, 3, desk, db=db_session)
        assert result.actual_companions == 3

    def test_unknown_guest(self, db_session, event, desk):
        with pytest.raises(NotFound):
            CheckInService.check_in(424242, 0, desk, db=db_session)

    def test_staff_without_checkin_flag(self, db_session, event, make_guest, make_staff):
        guest = make_guest(event)
        redeemer = Actor.from_staff(make_staff(event, can_checkin=False, can_redeem_snack=True))
        with pytest.raises(PermissionDenied):
            CheckInService.check_in(guest.id, 0, redeemer, db=db_session)

    def test_staff_of_another_event(self, db_session, make_event, make_guest, make_staff):
        guest = make_guest(make_event("Ours"))
        outsider = Actor.from_staff(make_staff(make_event("Theirs"), can_checkin=True))
        with pytest.raises(PermissionDenied):
            CheckInService.check_in(guest.id, 0, outsider, db=db_session)

    def test_check_in_by_name_needs_unique_match(self, db_session, event, make_guest, desk):
        make_guest(event, name="Sari Dewi")
        make_guest(event, name="Sari Putri")

        with pytest.raises(AmbiguousMatch):
            CheckInService.check_in_identified(event.id, desk, db=db_session, name="sari")

        guest = CheckInService.check_in_identified(event.id, desk, db=db_session, name="sari putri")
        assert guest.name == "Sari Putri"
        assert guest.is_checked_in

    def test_check_in_by_scan_code(self, db_session, event, make_guest, desk):
        guest = make_guest(event)
        result = CheckInService.check_in_identified(event.id, desk, db=db_session, scan_code=guest.scan_code)
        assert result.id == guest.id

    def test_concurrent_duplicate_scans(self, db_session, event, make_guest, desk):
        guest = make_guest(event)
        guest_id = guest.id
        attempts = 8

        def scan(_):
            db = TestingSessionLocal()
            try:
                CheckInService.check_in(guest_id, 0, desk, db=db)
                return "ok"
            except AlreadyCheckedIn:
                return "duplicate"
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=attempts) as pool:
            outcomes = list(pool.map(scan, range(attempts)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == attempts - 1

        db_session.expire_all()
        assert db_session.get(Guest, guest_id).checkin_status == CheckInStatus.CHECKED_IN
        logs = db_session.query(StaffLog).filter(
            StaffLog.guest_id == guest_id,
            StaffLog.action == StaffAction.CHECKIN
        ).count()
        assert logs == 1

class TestUndoCheckIn:
    def test_owner_can_undo(self, db_session, event, make_guest, desk, owner):
        guest = make_guest(event, max_companions=1)
        CheckInService.check_in(guest.id, 1, desk, db=db_session)

        result = CheckInService.undo_check_in(guest.id, owner, "scanned the wrong guest", db=db_session)
        assert result.checkin_status == CheckInStatus.NOT_ARRIVED
        assert result.actual_companions == 0
        assert result.checked_in_at is None

        audit = db_session.query(StaffLog).filter(StaffLog.action == StaffAction.UNDO_CHECKIN).one()
        assert audit.notes == "scanned the wrong guest"

        # The guest can be checked in again afterwards
        assert CheckInService.check_in(guest.id, 0, desk, db=db_session).is_checked_in

    def test_staff_cannot_undo(self, db_session, event, make_guest, desk):
        guest = make_guest(event, checked_in=True)
        with pytest.raises(PermissionDenied):
            CheckInService.undo_check_in(guest.id, desk, "oops", db=db_session)

    def test_undo_requires_checked_in_guest(self, db_session, event, make_guest, owner):
        guest = make_guest(event)
        with pytest.raises(NotCheckedIn):
            CheckInService.undo_check_in(guest.id, owner, "oops", db=db_session)

class TestStats:
    def test_rate_rounds_halves_up(self):
        assert rate_percent(1, 8) == 13   # 12.5
        assert rate_percent(1, 3) == 33
        assert rate_percent(2, 3) == 67
        assert rate_percent(0, 0) == 0

    def test_stats(self, db_session, event, make_guest, desk):
        guests = [make_guest(event, max_companions=2) for _ in range(3)]
        CheckInService.check_in(guests[0].id, 2, desk, db=db_session)

        stats = CheckInService.checkin_stats(event.id, db=db_session)
        assert stats == {
            "total_guests": 3,
            "checked_in": 1,
            "not_checked_in": 2,
            "checkin_rate": 33,
            "total_companions": 2,
            "total_attendees": 3,
        }

    def test_logs_newest_first(self, db_session, event, make_guest, desk):
        first = make_guest(event, name="First")
        second = make_guest(event, name="Second")
        CheckInService.check_in(first.id, 0, desk, db=db_session)
        CheckInService.check_in(second.id, 0, desk, db=db_session)

        logs = CheckInService.checkin_logs(event.id, db=db_session)
        assert [entry["guest_name"] for entry in logs] == ["Second", "First"]
        assert logs[0]["actor_id"] == desk.actor_id
