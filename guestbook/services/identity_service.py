"""
Guest identity resolution from a scanned code or a name search
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from guestbook.core.config import settings
from guestbook.core.db import guard_storage
from guestbook.core.exceptions import AmbiguousMatch, InvalidRequest, NotFound
from guestbook.models import CheckInStatus, Guest, GuestType
from guestbook.services.repositories import GuestRepo


class MatchKind(str, enum.Enum):
    MATCHED = "MATCHED"
    AMBIGUOUS = "AMBIGUOUS"
    NOT_FOUND = "NOT_FOUND"


@dataclass
class Resolution:
    """Outcome of a lookup: one guest, an ordered candidate list, or nothing"""

    kind: MatchKind
    guest: Optional[Guest] = None
    candidates: List[Guest] = field(default_factory=list)

    @classmethod
    def of(cls, guests: List[Guest]) -> "Resolution":
        if not guests:
            return cls(MatchKind.NOT_FOUND)
        if len(guests) == 1:
            return cls(MatchKind.MATCHED, guest=guests[0], candidates=guests)
        return cls(MatchKind.AMBIGUOUS, candidates=guests)

    @property
    def found(self) -> bool:
        return self.kind == MatchKind.MATCHED

    def unwrap(self, identifier: Any = None) -> Guest:
        """Return the single guest or raise the matching rejection"""
        if self.kind == MatchKind.MATCHED:
            return self.guest
        if self.kind == MatchKind.AMBIGUOUS:
            raise AmbiguousMatch([candidate_dict(g) for g in self.candidates])
        raise NotFound("Guest", identifier)


LIKE_ESCAPE = "\\"


def escape_like(text: str) -> str:
    """Make LIKE wildcards in user input match literally"""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def candidate_dict(guest: Guest) -> Dict[str, Any]:
    return {
        "id": guest.id,
        "name": guest.name,
        "phone": guest.phone,
        "guest_type_id": guest.guest_type_id,
        "checkin_status": guest.checkin_status.value,
    }


class IdentityResolver:
    """Read-only guest lookups restricted to one event"""

    @staticmethod
    @guard_storage
    def by_scan_code(event_id: int, scan_code: str, *, db: Session) -> Resolution:
        """Exact match on the stored code; the code is opaque here"""
        guest = GuestRepo.live(db, event_id).filter(Guest.scan_code == scan_code).first()
        return Resolution.of([guest] if guest else [])

    @staticmethod
    @guard_storage
    def by_id(event_id: int, guest_id: int, *, db: Session) -> Resolution:
        guest = GuestRepo.live(db, event_id).filter(Guest.id == guest_id).first()
        return Resolution.of([guest] if guest else [])

    @staticmethod
    @guard_storage
    def search(
        event_id: int,
        query: str,
        *,
        db: Session,
        group: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Guest]:
        """Case-insensitive substring match on name, phone and email.

        Guests who have not arrived come first, then by name. ``group`` narrows
        the search to one guest type name.
        """
        term = (query or "").strip()
        if not term:
            return []
        if limit is None:
            limit = settings.SEARCH_RESULT_LIMIT

        pattern = f"%{escape_like(term.lower())}%"
        q = GuestRepo.live(db, event_id).filter(
            or_(
                func.lower(Guest.name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(func.coalesce(Guest.phone, "")).like(pattern, escape=LIKE_ESCAPE),
                func.lower(func.coalesce(Guest.email, "")).like(pattern, escape=LIKE_ESCAPE),
            )
        )
        if group:
            q = q.join(GuestType, Guest.guest_type_id == GuestType.id).filter(
                func.lower(GuestType.type_name) == group.strip().lower()
            )

        arrival_rank = case((Guest.checkin_status == CheckInStatus.NOT_ARRIVED, 0), else_=1)
        return q.order_by(arrival_rank, func.lower(Guest.name), Guest.id).limit(limit).all()

    @staticmethod
    def resolve_by_name(event_id: int, name: str, *, db: Session, group: Optional[str] = None) -> Resolution:
        return Resolution.of(IdentityResolver.search(event_id, name, db=db, group=group))

    @staticmethod
    def resolve(
        event_id: int,
        *,
        db: Session,
        guest_id: Optional[int] = None,
        scan_code: Optional[str] = None,
        name: Optional[str] = None,
        group: Optional[str] = None,
    ) -> Resolution:
        """Pick the strongest identifier supplied: id, then scan code, then name"""
        if guest_id is not None:
            return IdentityResolver.by_id(event_id, guest_id, db=db)
        if scan_code:
            return IdentityResolver.by_scan_code(event_id, scan_code, db=db)
        if name and name.strip():
            return IdentityResolver.resolve_by_name(event_id, name, db=db, group=group)
        raise InvalidRequest("One of guest_id, scan_code or name is required", field="guest_id")
