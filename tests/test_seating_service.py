"""
Tests for seating resources, manual assignment and auto-assign
"""

import pytest
from concurrent.futures import ThreadPoolExecutor

from guestbook.core.exceptions import CapacityExceeded, InvalidRequest, NotFound, PermissionDenied, TypeNotAllowed
from guestbook.models import Event, Guest, SeatingResource
from guestbook.services.seating_service import SeatingService, UnassignedReason
from guestbook.utils.security import Actor
from tests.conftest import make_test_db, session_fixture

engine, TestingSessionLocal = make_test_db("./test_seating.db")

@pytest.fixture
def db_session():
    yield from session_fixture(engine, TestingSessionLocal)

@pytest.fixture
def event(make_event):
    return make_event()

@pytest.fixture
def usher(event, make_staff):
    return Actor.from_staff(make_staff(event, can_checkin=True))

def seated_count(db, resource_id):
    return db.query(Guest).filter(Guest.seating_resource_id == resource_id).count()

class TestResources:
    def test_create_uses_default_capacity_and_next_sort_order(self, db_session, event, owner):
        first = SeatingService.create_resource(event.id, owner, db=db_session, name="A1")
        second = SeatingService.create_resource(event.id, owner, db=db_session, name="A2", capacity=8)
        assert first.capacity == 10
        assert second.capacity == 8
        assert second.sort_order == first.sort_order + 1

    def test_allow_list_must_reference_event_types(self, db_session, make_event, make_guest_type, owner):
        ours, theirs = make_event("Ours"), make_event("Theirs")
        foreign = make_guest_type(theirs, "VIP")
        with pytest.raises(InvalidRequest):
            SeatingService.create_resource(ours.id, owner, db=db_session, name="VIP", allowed_guest_type_ids=[foreign.id])

    def test_staff_cannot_create(self, db_session, event, usher):
        with pytest.raises(PermissionDenied):
            SeatingService.create_resource(event.id, usher, db=db_session, name="A1")

    def test_capacity_cannot_drop_below_occupancy(self, db_session, event, make_guest, make_resource, owner, usher):
        table = make_resource(event, capacity=4)
        for _ in range(3):
            SeatingService.assign_seat(make_guest(event).id, table.id, usher, db=db_session)

        with pytest.raises(InvalidRequest):
            SeatingService.update_resource(table.id, owner, db=db_session, capacity=2)
        updated = SeatingService.update_resource(table.id, owner, db=db_session, capacity=3, name="Head table")
        assert updated.capacity == 3
        assert updated.name == "Head table"

    def test_deactivate_keeps_seated_guests(self, db_session, event, make_guest, make_resource, owner, usher):
        table = make_resource(event)
        guest = make_guest(event)
        SeatingService.assign_seat(guest.id, table.id, usher, db=db_session)

        resource = SeatingService.deactivate_resource(table.id, owner, db=db_session)
        assert resource.is_active is False
        db_session.refresh(guest)
        assert guest.seating_resource_id == table.id
        assert SeatingService.list_resources(event.id, db=db_session, include_inactive=False) == []

class TestManualAssignment:
    def test_assign(self, db_session, event, make_guest, make_resource, usher):
        table = make_resource(event, capacity=2)
        guest = make_guest(event)
        result = SeatingService.assign_seat(guest.id, table.id, usher, db=db_session)

        assert result.seating_resource_id == table.id
        db_session.refresh(table)
        assert table.occupied == 1

    def test_full_resource_rejects_next_guest(self, db_session, event, make_guest, make_resource, usher):
        hall = make_resource(event, capacity=50)
        for _ in range(50):
            SeatingService.assign_seat(make_guest(event).id, hall.id, usher, db=db_session)

        with pytest.raises(CapacityExceeded) as excinfo:
            SeatingService.assign_seat(make_guest(event).id, hall.id, usher, db=db_session)
        assert excinfo.value.details["capacity"] == 50
        assert excinfo.value.details["occupied"] == 50
        assert seated_count(db_session, hall.id) == 50

    def test_type_not_allowed(self, db_session, event, make_guest, make_guest_type, make_resource, usher):
        vip = make_guest_type(event, "VIP")
        regular = make_guest_type(event, "REGULAR")
        vip_table = make_resource(event, allowed=[vip])

        with pytest.raises(TypeNotAllowed) as excinfo:
            SeatingService.assign_seat(make_guest(event, guest_type=regular).id, vip_table.id, usher, db=db_session)
        assert excinfo.value.details["allowed_guest_type_ids"] == [vip.id]

        seated = SeatingService.assign_seat(make_guest(event, guest_type=vip).id, vip_table.id, usher, db=db_session)
        assert seated.seating_resource_id == vip_table.id

    def test_reassign_releases_previous_seat(self, db_session, event, make_guest, make_resource, usher):
        first = make_resource(event, capacity=1)
        second = make_resource(event, capacity=1)
        guest = make_guest(event)

        SeatingService.assign_seat(guest.id, first.id, usher, db=db_session)
        SeatingService.assign_seat(guest.id, second.id, usher, db=db_session)

        db_session.refresh(first)
        db_session.refresh(second)
        assert (first.occupied, second.occupied) == (0, 1)
        assert seated_count(db_session, first.id) == 0

        # The freed seat is usable again
        other = make_guest(event)
        assert SeatingService.assign_seat(other.id, first.id, usher, db=db_session).seating_resource_id == first.id

    def test_reassign_to_full_resource_keeps_current_seat(self, db_session, event, make_guest, make_resource, usher):
        current = make_resource(event, capacity=2)
        full = make_resource(event, capacity=1)
        SeatingService.assign_seat(make_guest(event).id, full.id, usher, db=db_session)
        guest = make_guest(event)
        SeatingService.assign_seat(guest.id, current.id, usher, db=db_session)

        with pytest.raises(CapacityExceeded):
            SeatingService.assign_seat(guest.id, full.id, usher, db=db_session)

        db_session.refresh(guest)
        db_session.refresh(current)
        assert guest.seating_resource_id == current.id
        assert current.occupied == 1

    def test_inactive_or_foreign_resource(self, db_session, event, make_event, make_guest, make_resource, usher):
        other = make_event("Other")
        guest = make_guest(event)
        with pytest.raises(NotFound):
            SeatingService.assign_seat(guest.id, make_resource(event, is_active=False).id, usher, db=db_session)
        with pytest.raises(NotFound):
            SeatingService.assign_seat(guest.id, make_resource(other).id, usher, db=db_session)

    def test_unassign(self, db_session, event, make_guest, make_resource, usher):
        table = make_resource(event)
        guest = make_guest(event)
        SeatingService.assign_seat(guest.id, table.id, usher, db=db_session)

        result = SeatingService.unassign_seat(guest.id, usher, db=db_session)
        assert result.seating_resource_id is None
        db_session.refresh(table)
        assert table.occupied == 0

    def test_concurrent_assignments_never_overfill(self, db_session, event, make_guest, make_resource, usher):
        capacity = 5
        table = make_resource(event, capacity=capacity)
        guest_ids = [make_guest(event).id for _ in range(capacity * 2)]
        table_id = table.id

        def assign(guest_id):
            db = TestingSessionLocal()
            try:
                SeatingService.assign_seat(guest_id, table_id, usher, db=db)
                return "seated"
            except CapacityExceeded:
                return "full"
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=len(guest_ids)) as pool:
            outcomes = list(pool.map(assign, guest_ids))

        assert outcomes.count("seated") == capacity
        assert outcomes.count("full") == capacity
        db_session.expire_all()
        assert db_session.get(SeatingResource, table_id).occupied == capacity
        assert seated_count(db_session, table_id) == capacity

class TestBulkAssign:
    def test_each_pair_gets_its_own_outcome(self, db_session, event, make_event, make_guest, make_guest_type,
                                            make_resource, owner):
        vip, family = make_guest_type(event, "VIP"), make_guest_type(event, "FAMILY")
        vip_table = make_resource(event, capacity=1, allowed=[vip])
        open_table = make_resource(event, capacity=1)
        first, second = make_guest(event, guest_type=vip), make_guest(event, guest_type=vip)
        cousin = make_guest(event, guest_type=family)
        stranger = make_guest(make_event("Other Party"))

        results = SeatingService.bulk_assign(event.id, [
            (first.id, vip_table.id),
            (second.id, vip_table.id),
            (cousin.id, vip_table.id),
            (stranger.id, open_table.id),
            (cousin.id, open_table.id),
        ], owner, db=db_session)

        assert [r["assigned"] for r in results] == [True, False, False, False, True]
        assert [r["error_code"] for r in results] == [
            None, "CAPACITY_EXCEEDED", "TYPE_NOT_ALLOWED", "NOT_FOUND", None
        ]
        db_session.expire_all()
        assert db_session.get(SeatingResource, vip_table.id).occupied == 1
        assert db_session.get(SeatingResource, open_table.id).occupied == 1
        assert db_session.get(Guest, second.id).seating_resource_id is None
        assert db_session.get(Guest, cousin.id).seating_resource_id == open_table.id
        assert db_session.get(Guest, stranger.id).seating_resource_id is None

    def test_batch_size_is_bounded(self, db_session, event, make_guest, make_resource, owner):
        table = make_resource(event)
        guest = make_guest(event)
        with pytest.raises(InvalidRequest):
            SeatingService.bulk_assign(event.id, [], owner, db=db_session)
        with pytest.raises(InvalidRequest):
            SeatingService.bulk_assign(event.id, [(guest.id, table.id)] * 101, owner, db=db_session)
        db_session.refresh(table)
        assert table.occupied == 0

    def test_owner_only(self, db_session, event, make_guest, make_resource, usher):
        with pytest.raises(PermissionDenied):
            SeatingService.bulk_assign(event.id, [(make_guest(event).id, make_resource(event).id)], usher,
                                       db=db_session)

class TestAvailabilityAndStats:
    def test_availability_is_a_pure_read(self, db_session, event, make_guest, make_guest_type, make_resource):
        vip = make_guest_type(event, "VIP")
        table = make_resource(event, capacity=3, allowed=[vip])
        guest = make_guest(event)

        result = SeatingService.availability(table.id, db=db_session, guest_id=guest.id)
        assert result["remaining"] == 3
        assert result["type_allowed"] is False
        assert result["available"] is False
        db_session.refresh(table)
        assert table.occupied == 0

    def test_seating_stats(self, db_session, event, make_guest, make_resource, usher):
        table = make_resource(event, capacity=4)
        make_resource(event, capacity=6)
        SeatingService.assign_seat(make_guest(event).id, table.id, usher, db=db_session)
        make_guest(event)

        stats = SeatingService.seating_stats(event.id, db=db_session)
        assert stats == {
            "active_resources": 2,
            "total_capacity": 10,
            "occupied": 1,
            "available": 9,
            "assigned_guests": 1,
            "unassigned_guests": 1,
        }

class TestAutoAssign:
    def test_first_fit_in_creation_order(self, db_session, event, make_guest, make_resource, owner):
        table = make_resource(event, capacity=4)
        guests = [make_guest(event, name=f"Guest {i:02d}") for i in range(10)]

        report = SeatingService.auto_assign(event.id, owner, db=db_session)

        assert report.assigned_count == 4
        assert report.unassigned_count == 6
        assert report.total_candidates == 10
        assert report.unassigned_reasons == {"NO_CAPACITY": 6}
        seated = [o.guest_id for o in report.outcomes if o.assigned]
        assert seated == [g.id for g in guests[:4]]
        db_session.refresh(table)
        assert table.occupied == 4

    def test_second_run_assigns_nothing(self, db_session, event, make_guest, make_resource, owner):
        make_resource(event, capacity=4)
        for _ in range(6):
            make_guest(event)

        SeatingService.auto_assign(event.id, owner, db=db_session)
        again = SeatingService.auto_assign(event.id, owner, db=db_session)

        assert again.assigned_count == 0
        assert again.total_candidates == 2

    def test_resources_taken_in_sort_order(self, db_session, event, make_guest, make_resource, owner):
        back = make_resource(event, name="Back", capacity=2, sort_order=2)
        front = make_resource(event, name="Front", capacity=2, sort_order=1)
        for _ in range(3):
            make_guest(event)

        report = SeatingService.auto_assign(event.id, owner, db=db_session)
        assert [o.resource_name for o in report.outcomes] == ["Front", "Front", "Back"]
        db_session.refresh(front)
        db_session.refresh(back)
        assert (front.occupied, back.occupied) == (2, 1)

    def test_allow_lists_are_respected(self, db_session, event, make_guest, make_guest_type, make_resource, owner):
        vip = make_guest_type(event, "VIP")
        family = make_guest_type(event, "FAMILY")
        make_resource(event, name="VIP table", capacity=5, allowed=[vip], sort_order=1)
        vip_guest = make_guest(event, guest_type=vip)
        family_guest = make_guest(event, guest_type=family)

        report = SeatingService.auto_assign(event.id, owner, db=db_session)

        outcomes = {o.guest_id: o for o in report.outcomes}
        assert outcomes[vip_guest.id].assigned
        assert not outcomes[family_guest.id].assigned
        assert outcomes[family_guest.id].reason == UnassignedReason.NO_ELIGIBLE_RESOURCE
        db_session.refresh(family_guest)
        assert family_guest.seating_resource_id is None

    def test_skips_inactive_resources_and_existing_seats(self, db_session, event, make_guest, make_resource, owner, usher):
        make_resource(event, capacity=10, is_active=False, sort_order=1)
        open_table = make_resource(event, capacity=3, sort_order=2)
        seated = make_guest(event)
        SeatingService.assign_seat(seated.id, open_table.id, usher, db=db_session)
        waiting = [make_guest(event) for _ in range(3)]

        report = SeatingService.auto_assign(event.id, owner, db=db_session)

        assert report.total_candidates == 3
        assert report.assigned_count == 2
        assert {o.guest_id for o in report.outcomes} == {g.id for g in waiting}
        db_session.refresh(open_table)
        assert open_table.occupied == 3

    def test_no_resources(self, db_session, event, make_guest, owner):
        make_guest(event)
        report = SeatingService.auto_assign(event.id, owner, db=db_session)
        assert report.unassigned_reasons == {"NO_RESOURCES": 1}
        assert db_session.get(Event, event.id).last_auto_assign_at is not None

    def test_owner_only(self, db_session, event, usher):
        with pytest.raises(PermissionDenied):
            SeatingService.auto_assign(event.id, usher, db=db_session)

    def test_guest_moved_away_does_not_use_up_a_seat(self, db_session, event, make_guest, make_resource, owner,
                                                     monkeypatch):
        table = make_resource(event, capacity=1)
        taken, waiting = make_guest(event), make_guest(event)
        original = SeatingService._move_guest

        def move_guest(db, guest_id, previous_id, target_id):
            # Another device got to this guest first
            if guest_id == taken.id:
                return False
            return original(db, guest_id, previous_id, target_id)

        monkeypatch.setattr(SeatingService, "_move_guest", staticmethod(move_guest))
        report = SeatingService.auto_assign(event.id, owner, db=db_session)

        outcomes = {o.guest_id: o for o in report.outcomes}
        assert outcomes[taken.id].reason == UnassignedReason.ALREADY_ASSIGNED
        assert outcomes[waiting.id].resource_id == table.id
        db_session.refresh(table)
        assert table.occupied == 1
        assert seated_count(db_session, table.id) == 1

    def test_concurrent_with_manual_assignment_never_overfills(self, db_session, event, make_guest, make_resource,
                                                               owner, usher):
        capacity = 6
        table = make_resource(event, capacity=capacity)
        guest_ids = [make_guest(event).id for _ in range(10)]
        event_id, table_id = event.id, table.id

        def run_auto():
            db = TestingSessionLocal()
            try:
                return SeatingService.auto_assign(event_id, owner, db=db)
            finally:
                db.close()

        def assign(guest_id):
            db = TestingSessionLocal()
            try:
                SeatingService.assign_seat(guest_id, table_id, usher, db=db)
                return "seated"
            except CapacityExceeded:
                return "full"
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=6) as pool:
            manual = [pool.submit(assign, guest_id) for guest_id in guest_ids[5:]]
            auto = pool.submit(run_auto)
            report = auto.result()
            outcomes = [future.result() for future in manual]

        assert report.assigned_count <= capacity
        assert set(outcomes) <= {"seated", "full"}
        db_session.expire_all()
        assert db_session.get(SeatingResource, table_id).occupied == capacity
        assert seated_count(db_session, table_id) == capacity
