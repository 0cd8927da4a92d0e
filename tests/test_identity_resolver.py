"""
Tests for guest identity resolution
"""

import pytest
from datetime import datetime

from guestbook.core.exceptions import AmbiguousMatch, InvalidRequest, NotFound
from guestbook.models import CheckInStatus
from guestbook.services.identity_service import IdentityResolver, MatchKind
from tests.conftest import make_test_db, session_fixture

engine, TestingSessionLocal = make_test_db("./test_identity.db")

@pytest.fixture
def db_session():
    yield from session_fixture(engine, TestingSessionLocal)

@pytest.fixture
def event(make_event):
    return make_event()

class TestScanCode:
    def test_exact_match(self, db_session, event, make_guest):
        guest = make_guest(event, name="Alice Tan")
        result = IdentityResolver.by_scan_code(event.id, guest.scan_code, db=db_session)
        assert result.kind == MatchKind.MATCHED
        assert result.guest.id == guest.id

    def test_partial_code_is_not_a_match(self, db_session, event, make_guest):
        guest = make_guest(event)
        result = IdentityResolver.by_scan_code(event.id, guest.scan_code[:-1], db=db_session)
        assert result.kind == MatchKind.NOT_FOUND

    def test_code_from_another_event(self, db_session, make_event, make_guest):
        first, second = make_event("First"), make_event("Second")
        guest = make_guest(first)
        result = IdentityResolver.by_scan_code(second.id, guest.scan_code, db=db_session)
        assert result.kind == MatchKind.NOT_FOUND

    def test_deleted_guest_is_not_found(self, db_session, event, make_guest):
        guest = make_guest(event, deleted_at=datetime.utcnow())
        result = IdentityResolver.by_scan_code(event.id, guest.scan_code, db=db_session)
        assert not result.found

class TestNameSearch:
    def test_single_match_returns_guest(self, db_session, event, make_guest):
        make_guest(event, name="Budi Santoso")
        make_guest(event, name="Citra Lestari")
        result = IdentityResolver.resolve_by_name(event.id, "budi", db=db_session)
        assert result.kind == MatchKind.MATCHED
        assert result.guest.name == "Budi Santoso"

    def test_multiple_matches_are_never_guessed(self, db_session, event, make_guest):
        make_guest(event, name="Andi Wijaya")
        make_guest(event, name="Andika Pratama")
        result = IdentityResolver.resolve_by_name(event.id, "andi", db=db_session)
        assert result.kind == MatchKind.AMBIGUOUS
        assert result.guest is None
        assert [g.name for g in result.candidates] == ["Andi Wijaya", "Andika Pratama"]

    def test_not_arrived_guests_come_first(self, db_session, event, make_guest):
        make_guest(event, name="Aaron Lee", checked_in=True)
        make_guest(event, name="Zara Lee")
        make_guest(event, name="Mia Lee")
        guests = IdentityResolver.search(event.id, "lee", db=db_session)
        assert [g.name for g in guests] == ["Mia Lee", "Zara Lee", "Aaron Lee"]
        assert guests[-1].checkin_status == CheckInStatus.CHECKED_IN

    def test_matches_phone_and_email(self, db_session, event, make_guest):
        make_guest(event, name="Dewi", phone="+62811000111")
        make_guest(event, name="Eka", email="eka@example.com")
        assert IdentityResolver.resolve_by_name(event.id, "000111", db=db_session).guest.name == "Dewi"
        assert IdentityResolver.resolve_by_name(event.id, "EKA@EXAMPLE", db=db_session).guest.name == "Eka"

    def test_group_narrows_candidates(self, db_session, event, make_guest, make_guest_type):
        vip = make_guest_type(event, "VIP")
        family = make_guest_type(event, "FAMILY")
        make_guest(event, name="Rina Hartono", guest_type=vip)
        make_guest(event, name="Rina Susanti", guest_type=family)
        result = IdentityResolver.resolve_by_name(event.id, "rina", db=db_session, group="vip")
        assert result.kind == MatchKind.MATCHED
        assert result.guest.name == "Rina Hartono"

    def test_no_match_is_an_empty_result(self, db_session, event, make_guest):
        make_guest(event, name="Fajar")
        result = IdentityResolver.resolve_by_name(event.id, "nobody", db=db_session)
        assert result.kind == MatchKind.NOT_FOUND
        assert result.candidates == []

    def test_wildcards_in_query_match_literally(self, db_session, event, make_guest):
        make_guest(event, name="Putri Ayu")
        make_guest(event, name="Budi Santoso")
        assert IdentityResolver.search(event.id, "%", db=db_session) == []
        assert IdentityResolver.search(event.id, "_", db=db_session) == []
        assert IdentityResolver.resolve_by_name(event.id, "%", db=db_session).kind == MatchKind.NOT_FOUND

        make_guest(event, name="Table_7 Host")
        make_guest(event, name="100% Fan")
        make_guest(event, name="Back\\Slash")
        assert [g.name for g in IdentityResolver.search(event.id, "_", db=db_session)] == ["Table_7 Host"]
        assert [g.name for g in IdentityResolver.search(event.id, "0%", db=db_session)] == ["100% Fan"]
        assert [g.name for g in IdentityResolver.search(event.id, "k\\s", db=db_session)] == ["Back\\Slash"]

    def test_blank_query(self, db_session, event, make_guest):
        make_guest(event, name="Gita")
        assert IdentityResolver.search(event.id, "   ", db=db_session) == []

    def test_limit(self, db_session, event, make_guest):
        for i in range(5):
            make_guest(event, name=f"Hadi {i}")
        assert len(IdentityResolver.search(event.id, "hadi", db=db_session, limit=3)) == 3

class TestResolve:
    def test_unwrap_raises_kind_for_caller(self, db_session, event, make_guest):
        make_guest(event, name="Indra Kusuma")
        make_guest(event, name="Indra Wijaya")
        with pytest.raises(AmbiguousMatch) as excinfo:
            IdentityResolver.resolve(event.id, db=db_session, name="indra").unwrap("indra")
        candidates = excinfo.value.details["candidates"]
        assert [c["name"] for c in candidates] == ["Indra Kusuma", "Indra Wijaya"]

        with pytest.raises(NotFound):
            IdentityResolver.resolve(event.id, db=db_session, guest_id=99999).unwrap(99999)

    def test_id_wins_over_name(self, db_session, event, make_guest):
        target = make_guest(event, name="Joko")
        make_guest(event, name="Joko Widodo")
        result = IdentityResolver.resolve(event.id, db=db_session, guest_id=target.id, name="joko")
        assert result.guest.id == target.id

    def test_requires_an_identifier(self, db_session, event):
        with pytest.raises(InvalidRequest):
            IdentityResolver.resolve(event.id, db=db_session)
