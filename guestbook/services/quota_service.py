"""
Entitlement quota ledger: per-guest benefit allowances and redemptions
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from guestbook.core.db import guard_storage
from guestbook.core.exceptions import (
    InvalidRequest,
    NoEntitlement,
    NotCheckedIn,
    NotFound,
    QuotaExceeded,
)
from guestbook.models import BenefitType, Entitlement, Guest, QuotaBalance, Redemption, StaffAction
from guestbook.services.repositories import EventRepo, GuestRepo, GuestTypeRepo, StaffLogRepo
from guestbook.utils.security import Actor

logger = logging.getLogger(__name__)


@dataclass
class RedeemResult:
    redemption: Redemption
    remaining: int


class QuotaService:
    """Redemptions are serialized per (guest, benefit type) on the QuotaBalance row.

    The balance holds the running total redeemed. A redemption only succeeds
    through a single conditional update that adds the quantity while the new
    total stays within the entitlement maximum, so concurrent redemptions for
    the same pair cannot both pass the check.
    """

    # -------- Entitlements --------

    @staticmethod
    @guard_storage
    def set_entitlement(
        guest_type_id: int,
        benefit_type: BenefitType,
        max_quantity: int,
        actor: Actor,
        *,
        db: Session,
        is_active: bool = True,
    ) -> Entitlement:
        actor.require_owner()
        if max_quantity < 0:
            raise InvalidRequest("max_quantity must be zero or more", field="max_quantity")
        guest_type = GuestTypeRepo.require(db, guest_type_id)

        entitlement = db.query(Entitlement).filter(
            Entitlement.guest_type_id == guest_type.id,
            Entitlement.benefit_type == benefit_type,
        ).first()
        if entitlement:
            entitlement.max_quantity = max_quantity
            entitlement.is_active = is_active
        else:
            entitlement = Entitlement(
                event_id=guest_type.event_id,
                guest_type_id=guest_type.id,
                benefit_type=benefit_type,
                max_quantity=max_quantity,
                is_active=is_active,
            )
            db.add(entitlement)
        db.commit()
        db.refresh(entitlement)
        logger.info(
            f"Entitlement {benefit_type.value} for guest type {guest_type.id} set to {max_quantity}"
            f" (active={is_active})"
        )
        return entitlement

    @staticmethod
    @guard_storage
    def list_entitlements(event_id: int, *, db: Session) -> List[Entitlement]:
        return db.query(Entitlement).filter(Entitlement.event_id == event_id).order_by(
            Entitlement.guest_type_id, Entitlement.benefit_type
        ).all()

    @staticmethod
    def _active_entitlement(db: Session, guest: Guest, benefit_type: BenefitType) -> Entitlement:
        entitlement = None
        if guest.guest_type_id is not None:
            entitlement = db.query(Entitlement).filter(
                Entitlement.guest_type_id == guest.guest_type_id,
                Entitlement.benefit_type == benefit_type,
                Entitlement.is_active == True,
            ).first()
        if not entitlement:
            raise NoEntitlement(guest.id, benefit_type.value)
        return entitlement

    @staticmethod
    def _redeemed(db: Session, guest_id: int, benefit_type: BenefitType) -> int:
        balance = db.query(QuotaBalance.redeemed).filter(
            QuotaBalance.guest_id == guest_id,
            QuotaBalance.benefit_type == benefit_type,
        ).scalar()
        return balance or 0

    @staticmethod
    def _ensure_balance(db: Session, guest_id: int, benefit_type: BenefitType) -> None:
        """Create the zero balance row once; a concurrent creator winning is fine"""
        exists = db.query(QuotaBalance.id).filter(
            QuotaBalance.guest_id == guest_id,
            QuotaBalance.benefit_type == benefit_type,
        ).first()
        if exists:
            return
        db.add(QuotaBalance(guest_id=guest_id, benefit_type=benefit_type, redeemed=0))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()

    # -------- Queries --------

    @staticmethod
    @guard_storage
    def remaining(guest_id: int, benefit_type: BenefitType, *, db: Session) -> int:
        """Units still available; pure read"""
        guest = GuestRepo.require(db, guest_id)
        entitlement = QuotaService._active_entitlement(db, guest, benefit_type)
        return max(entitlement.max_quantity - QuotaService._redeemed(db, guest.id, benefit_type), 0)

    @staticmethod
    @guard_storage
    def summary(guest_id: int, *, db: Session) -> List[Dict]:
        """Every active entitlement of the guest with used and remaining units"""
        guest = GuestRepo.require(db, guest_id)
        if guest.guest_type_id is None:
            return []
        entitlements = db.query(Entitlement).filter(
            Entitlement.guest_type_id == guest.guest_type_id,
            Entitlement.is_active == True,
        ).order_by(Entitlement.benefit_type).all()
        rows = []
        for entitlement in entitlements:
            used = QuotaService._redeemed(db, guest.id, entitlement.benefit_type)
            rows.append({
                "benefit_type": entitlement.benefit_type.value,
                "max_quantity": entitlement.max_quantity,
                "redeemed": used,
                "remaining": max(entitlement.max_quantity - used, 0),
            })
        return rows

    # -------- Redemption --------

    @staticmethod
    @guard_storage
    def redeem(
        guest_id: int,
        benefit_type: BenefitType,
        quantity: int,
        actor: Actor,
        *,
        db: Session,
        notes: Optional[str] = None,
    ) -> RedeemResult:
        if quantity is None or quantity < 1:
            raise InvalidRequest("quantity must be at least 1", field="quantity")
        guest = GuestRepo.require(db, guest_id)
        actor.ensure_scope(guest.event_id)
        if not guest.is_checked_in:
            raise NotCheckedIn(guest.id, guest.name)
        actor.require_benefit(benefit_type)

        entitlement = QuotaService._active_entitlement(db, guest, benefit_type)
        max_quantity = entitlement.max_quantity
        event_id = guest.event_id

        QuotaService._ensure_balance(db, guest_id, benefit_type)

        claimed = db.query(QuotaBalance).filter(
            QuotaBalance.guest_id == guest_id,
            QuotaBalance.benefit_type == benefit_type,
            QuotaBalance.redeemed + quantity <= max_quantity,
        ).update(
            {
                QuotaBalance.redeemed: QuotaBalance.redeemed + quantity,
                QuotaBalance.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        if claimed != 1:
            db.rollback()
            remaining = max(max_quantity - QuotaService._redeemed(db, guest_id, benefit_type), 0)
            raise QuotaExceeded(benefit_type.value, remaining, quantity)

        redemption = Redemption(
            event_id=event_id,
            guest_id=guest_id,
            benefit_type=benefit_type,
            quantity=quantity,
            actor_id=actor.actor_id,
            notes=notes,
        )
        db.add(redemption)
        StaffLogRepo.record(
            db, event_id, actor.actor_id, StaffAction.REDEEM,
            guest_id=guest_id, notes=f"{benefit_type.value} x{quantity}",
        )
        db.commit()
        db.refresh(redemption)

        remaining = max(max_quantity - QuotaService._redeemed(db, guest_id, benefit_type), 0)
        logger.info(
            f"Guest {guest_id} redeemed {quantity} {benefit_type.value} via {actor.actor_id}; {remaining} left"
        )
        return RedeemResult(redemption=redemption, remaining=remaining)

    @staticmethod
    @guard_storage
    def history(
        event_id: int,
        actor: Actor,
        *,
        db: Session,
        guest_id: Optional[int] = None,
        benefit_type: Optional[BenefitType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Redemption]:
        """Newest first, limited to benefit types the actor may redeem"""
        actor.ensure_scope(event_id)
        EventRepo.require(db, event_id)
        visible = actor.redeemable_benefits()
        if benefit_type is not None:
            actor.require_benefit(benefit_type)
            visible = [benefit_type]
        if not visible:
            return []

        query = db.query(Redemption).filter(
            Redemption.event_id == event_id,
            Redemption.benefit_type.in_(visible),
        )
        if guest_id is not None:
            query = query.filter(Redemption.guest_id == guest_id)
        return query.order_by(Redemption.redeemed_at.desc(), Redemption.id.desc()).offset(offset).limit(limit).all()

    @staticmethod
    @guard_storage
    def reverse_redemption(redemption_id: int, actor: Actor, reason: str, *, db: Session) -> Redemption:
        """Append an offsetting record and hand the units back; owner only.

        ``reverses_id`` is unique, so a second reversal of the same record
        fails at insert time even when two owners race.
        """
        actor.require_owner()
        original = db.query(Redemption).filter(Redemption.id == redemption_id).first()
        if not original:
            raise NotFound("Redemption", redemption_id)
        if original.reverses_id is not None or original.quantity <= 0:
            raise InvalidRequest("An offsetting record cannot itself be reversed", field="redemption_id")
        already = db.query(Redemption.id).filter(Redemption.reverses_id == original.id).first()
        if already:
            raise InvalidRequest(f"Redemption {redemption_id} was already reversed", field="redemption_id")

        quantity = original.quantity
        guest_id = original.guest_id
        benefit_type = original.benefit_type
        event_id = original.event_id

        offset = Redemption(
            event_id=event_id,
            guest_id=guest_id,
            benefit_type=benefit_type,
            quantity=-quantity,
            actor_id=actor.actor_id,
            notes=reason,
            reverses_id=original.id,
        )
        db.add(offset)
        db.query(QuotaBalance).filter(
            QuotaBalance.guest_id == guest_id,
            QuotaBalance.benefit_type == benefit_type,
            QuotaBalance.redeemed >= quantity,
        ).update(
            {
                QuotaBalance.redeemed: QuotaBalance.redeemed - quantity,
                QuotaBalance.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        StaffLogRepo.record(
            db, event_id, actor.actor_id, StaffAction.REVERSE_REDEMPTION,
            guest_id=guest_id, notes=f"#{redemption_id}: {reason}",
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise InvalidRequest(f"Redemption {redemption_id} was already reversed", field="redemption_id")
        db.refresh(offset)
        logger.info(f"Redemption {redemption_id} reversed by {actor.actor_id}: {reason}")
        return offset
