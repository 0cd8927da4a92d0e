"""
Security utilities: actor resolution, capability checks and rate limiting
"""

import enum
import secrets
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from guestbook.core.config import settings
from guestbook.core.db import get_db
from guestbook.core.exceptions import PermissionDenied
from guestbook.models import BenefitType, StaffMember

# Simple in-memory rate limiter
rate_limiter = defaultdict(list)

security = HTTPBearer()


class ActorKind(str, enum.Enum):
    OWNER = "OWNER"
    STAFF = "STAFF"


class Permission(str, enum.Enum):
    CHECKIN = "CHECKIN"
    REDEEM_SOUVENIR = "REDEEM_SOUVENIR"
    REDEEM_SNACK = "REDEEM_SNACK"
    ACCESS_VIP_LOUNGE = "ACCESS_VIP_LOUNGE"


BENEFIT_PERMISSIONS = {
    BenefitType.SOUVENIR: Permission.REDEEM_SOUVENIR,
    BenefitType.SNACK: Permission.REDEEM_SNACK,
    BenefitType.VIP_LOUNGE: Permission.ACCESS_VIP_LOUNGE,
}


@dataclass(frozen=True)
class Actor:
    """Resolved caller identity.

    The owner acts on every event and implicitly holds every permission.
    Staff are bound to a single event and hold exactly the flags granted to
    them. All capability checks go through this object.
    """

    actor_id: str
    kind: ActorKind
    event_id: Optional[int] = None
    permissions: FrozenSet[Permission] = field(default_factory=frozenset)

    @classmethod
    def owner(cls) -> "Actor":
        return cls(actor_id="owner", kind=ActorKind.OWNER, permissions=frozenset(Permission))

    @classmethod
    def from_staff(cls, staff: StaffMember) -> "Actor":
        flags = {
            Permission.CHECKIN: staff.can_checkin,
            Permission.REDEEM_SOUVENIR: staff.can_redeem_souvenir,
            Permission.REDEEM_SNACK: staff.can_redeem_snack,
            Permission.ACCESS_VIP_LOUNGE: staff.can_access_vip_lounge,
        }
        return cls(
            actor_id=f"staff:{staff.id}",
            kind=ActorKind.STAFF,
            event_id=staff.event_id,
            permissions=frozenset(p for p, granted in flags.items() if granted),
        )

    @property
    def is_owner(self) -> bool:
        return self.kind == ActorKind.OWNER

    def can(self, permission: Permission) -> bool:
        return self.is_owner or permission in self.permissions

    def require(self, permission: Permission) -> None:
        if not self.can(permission):
            raise PermissionDenied(f"Missing permission {permission.value}", required=permission.value)

    def can_redeem(self, benefit_type: BenefitType) -> bool:
        return self.can(BENEFIT_PERMISSIONS[benefit_type])

    def require_benefit(self, benefit_type: BenefitType) -> None:
        if not self.can_redeem(benefit_type):
            raise PermissionDenied(
                f"Not allowed to redeem {benefit_type.value}",
                required=BENEFIT_PERMISSIONS[benefit_type].value,
            )

    def redeemable_benefits(self) -> List[BenefitType]:
        return [b for b in BenefitType if self.can_redeem(b)]

    def ensure_scope(self, event_id: int) -> None:
        if self.event_id is not None and self.event_id != event_id:
            raise PermissionDenied("Access denied to this event")

    def require_owner(self) -> None:
        if not self.is_owner:
            raise PermissionDenied("Event owner access required", required=ActorKind.OWNER.value)


def issue_access_token() -> str:
    return secrets.token_urlsafe(24)


def get_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the bearer credential into an Actor"""
    token = credentials.credentials
    if secrets.compare_digest(token, settings.ADMIN_TOKEN):
        return Actor.owner()

    staff = db.query(StaffMember).filter(
        StaffMember.access_token == token,
        StaffMember.is_active == True
    ).first()
    if not staff:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access token"
        )
    return Actor.from_staff(staff)


def verify_admin_token(actor: Actor = Depends(get_actor)) -> Actor:
    """Only the event owner passes"""
    actor.require_owner()
    return actor


def rate_limit_check(client_ip: str, limit: int = None) -> bool:
    """Simple rate limiting by IP address"""
    if limit is None:
        limit = settings.RATE_LIMIT_PER_MINUTE

    current_time = time.time()
    minute_ago = current_time - 60

    rate_limiter[client_ip] = [
        req_time for req_time in rate_limiter[client_ip]
        if req_time > minute_ago
    ]

    if len(rate_limiter[client_ip]) >= limit:
        return False

    rate_limiter[client_ip].append(current_time)
    return True


def get_client_ip(request) -> str:
    """Extract client IP from request"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host
