"""
Outcome kinds reported back to check-in desks and dashboards
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class GuestbookError(Exception):
    """Base class for rejections that callers are expected to act on"""

    code = "GUESTBOOK_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "error_code": self.code, "details": self.details}


class InvalidRequest(GuestbookError):
    code = "INVALID_REQUEST"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)


class NotFound(GuestbookError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} {identifier} not found"
        super().__init__(message, {"resource": resource, "id": identifier})


class AlreadyCheckedIn(GuestbookError):
    """Duplicate scan of a guest who is already inside"""

    code = "ALREADY_CHECKED_IN"
    status_code = 409

    def __init__(self, guest_id: int, guest_name: str, checked_in_at: Optional[datetime] = None):
        super().__init__(
            f"{guest_name} is already checked in",
            {
                "guest_id": guest_id,
                "guest_name": guest_name,
                "checked_in_at": checked_in_at.isoformat() if checked_in_at else None,
            },
        )


class CompanionLimitExceeded(GuestbookError):
    code = "COMPANION_LIMIT_EXCEEDED"
    status_code = 422

    def __init__(self, max_companions: int, requested: int):
        super().__init__(
            f"Guest may bring at most {max_companions} companions, {requested} requested",
            {"max_companions": max_companions, "requested": requested},
        )


class CapacityExceeded(GuestbookError):
    code = "CAPACITY_EXCEEDED"
    status_code = 409

    def __init__(self, resource_id: int, resource_name: str, capacity: int, occupied: int):
        super().__init__(
            f"'{resource_name}' is full ({occupied}/{capacity})",
            {
                "resource_id": resource_id,
                "resource_name": resource_name,
                "capacity": capacity,
                "occupied": occupied,
            },
        )


class TypeNotAllowed(GuestbookError):
    code = "TYPE_NOT_ALLOWED"
    status_code = 422

    def __init__(self, resource_name: str, guest_type_id: Optional[int], allowed: List[int]):
        super().__init__(
            f"'{resource_name}' does not host this guest type",
            {"guest_type_id": guest_type_id, "allowed_guest_type_ids": list(allowed)},
        )


class NotCheckedIn(GuestbookError):
    code = "NOT_CHECKED_IN"
    status_code = 409

    def __init__(self, guest_id: int, guest_name: str):
        super().__init__(
            f"{guest_name} has not checked in yet",
            {"guest_id": guest_id, "guest_name": guest_name},
        )


class PermissionDenied(GuestbookError):
    code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(self, message: str = "Not allowed", required: Optional[str] = None):
        super().__init__(message, {"required": required} if required else None)


class NoEntitlement(GuestbookError):
    code = "NO_ENTITLEMENT"
    status_code = 422

    def __init__(self, guest_id: int, benefit_type: str):
        super().__init__(
            f"Guest has no active {benefit_type} entitlement",
            {"guest_id": guest_id, "benefit_type": benefit_type},
        )


class QuotaExceeded(GuestbookError):
    code = "QUOTA_EXCEEDED"
    status_code = 409

    def __init__(self, benefit_type: str, remaining: int, requested: int):
        super().__init__(
            f"Insufficient {benefit_type} quota. Remaining: {remaining}, requested: {requested}",
            {"benefit_type": benefit_type, "remaining": remaining, "requested": requested},
        )


class AmbiguousMatch(GuestbookError):
    """More than one guest matched a name search; the caller must pick one"""

    code = "AMBIGUOUS_MATCH"
    status_code = 409

    def __init__(self, candidates: List[Dict[str, Any]]):
        super().__init__(
            f"{len(candidates)} guests match this name, choose one",
            {"candidates": candidates},
        )


class StorageUnavailable(GuestbookError):
    code = "STORAGE_UNAVAILABLE"
    status_code = 503
    retryable = True

    def __init__(self, message: str = "Guest storage is temporarily unavailable"):
        super().__init__(message)
