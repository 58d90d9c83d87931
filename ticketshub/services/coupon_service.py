"""Coupon validation and commit-time redemption.

Validation is read-only and can be repeated any number of times while a buyer
re-prices a cart. Usage counters only move in `redeem_coupon`, which the
checkout coordinator calls inside the booking commit.
"""
import json
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from ticketshub.core.errors import CouponRejected
from ticketshub.models.booking import Booking
from ticketshub.models.coupon import Coupon
from ticketshub.models.coupon_redemption import CouponRedemption
from ticketshub.services.identity import BuyerIdentity
from ticketshub.services.pricing_service import PriceLine

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = ("percentage", "fixed", "bogo")
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
BOGO_SHARE_PERCENT = 50


class RejectionReason(str, Enum):
    NOT_FOUND = "NotFound"
    INACTIVE = "Inactive"
    WRONG_EVENT = "WrongEvent"
    NOT_YET_VALID = "NotYetValid"
    EXPIRED = "Expired"
    EXHAUSTED = "Exhausted"
    BELOW_MIN_PURCHASE = "BelowMinPurchase"
    NOT_APPLICABLE = "NotApplicable"
    NOT_FIRST_TIME_USER = "NotFirstTimeUser"
    ALREADY_USED_BY_USER = "AlreadyUsedByUser"

    @property
    def category(self) -> str:
        if self in (RejectionReason.INACTIVE, RejectionReason.NOT_YET_VALID, RejectionReason.EXPIRED):
            return "CouponExpired"
        if self is RejectionReason.EXHAUSTED:
            return "CouponExhausted"
        if self is RejectionReason.ALREADY_USED_BY_USER:
            return "AlreadyUsedByUser"
        return "CouponNotEligible"


REJECTION_MESSAGES = {
    RejectionReason.NOT_FOUND: "Coupon code not found",
    RejectionReason.INACTIVE: "This coupon is no longer active",
    RejectionReason.WRONG_EVENT: "This coupon is not valid for this event",
    RejectionReason.NOT_YET_VALID: "This coupon is not valid yet",
    RejectionReason.EXPIRED: "This coupon has expired",
    RejectionReason.EXHAUSTED: "This coupon has reached its usage limit",
    RejectionReason.BELOW_MIN_PURCHASE: "Order total is below the coupon's minimum purchase amount",
    RejectionReason.NOT_APPLICABLE: "This coupon is not applicable to your selected tickets",
    RejectionReason.NOT_FIRST_TIME_USER: "This coupon is only for first-time buyers",
    RejectionReason.ALREADY_USED_BY_USER: "You have already used this coupon",
}


@dataclass(frozen=True)
class CouponDecision:
    ok: bool
    discount: int = 0
    reason: RejectionReason | None = None
    coupon: Coupon | None = None

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES[self.reason] if self.reason else "Coupon applied"

    def raise_if_rejected(self) -> None:
        if not self.ok:
            raise CouponRejected(self.reason, self.message)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands timezone-aware columns back naive
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _applicable_ticket_types(coupon: Coupon) -> list[str]:
    if not coupon.applicable_ticket_types_json:
        return []
    return list(json.loads(coupon.applicable_ticket_types_json))


def get_coupon(db: Session, code: str) -> Coupon | None:
    return db.execute(select(Coupon).where(Coupon.code == normalize_code(code))).scalar_one_or_none()


def prior_confirmed_bookings(db: Session, identity: BuyerIdentity) -> int:
    q = select(func.count(Booking.id)).where(Booking.status == "confirmed")
    if identity.user_id:
        q = q.where(Booking.user_id == identity.user_id)
    else:
        q = q.where(Booking.user_id.is_(None), Booking.guest_email == (identity.guest_email or "").strip().lower())
    return int(db.execute(q).scalar_one())


def redemptions_by_identity(db: Session, coupon_id: str, identity: BuyerIdentity) -> int:
    return int(db.execute(
        select(func.count(CouponRedemption.id)).where(
            CouponRedemption.coupon_id == coupon_id,
            CouponRedemption.identity_key == identity.key,
        )
    ).scalar_one())


def compute_discount(coupon: Coupon, subtotal: int, lines: list[PriceLine]) -> int:
    if coupon.discount_type == "percentage":
        # round half-up to the paisa
        discount = (subtotal * coupon.discount_value * 2 + 100) // 200
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
        return discount
    if coupon.discount_type == "fixed":
        return coupon.discount_value
    if coupon.discount_type == "bogo":
        eligible = _applicable_ticket_types(coupon)
        candidates = [l for l in lines if not eligible or l.ticket_type_id in eligible]
        if not candidates:
            return 0
        cheapest = min(candidates, key=lambda l: l.unit_price)
        return cheapest.total * BOGO_SHARE_PERCENT // 100
    raise ValueError(f"unknown discount type {coupon.discount_type}")


def validate_coupon(
    db: Session,
    code: str,
    *,
    subtotal: int,
    lines: list[PriceLine],
    identity: BuyerIdentity,
    event_id: str,
    now: datetime | None = None,
) -> CouponDecision:
    """Run the ordered eligibility checks; the first failing check decides the reason."""
    now = now or datetime.now(timezone.utc)
    coupon = get_coupon(db, code)

    def reject(reason: RejectionReason) -> CouponDecision:
        logger.info("coupon %s rejected: %s", normalize_code(code), reason.value)
        return CouponDecision(ok=False, reason=reason, coupon=coupon)

    if not coupon:
        return reject(RejectionReason.NOT_FOUND)
    if not coupon.is_active:
        return reject(RejectionReason.INACTIVE)
    if coupon.event_id and coupon.event_id != event_id:
        return reject(RejectionReason.WRONG_EVENT)
    if now < _as_utc(coupon.valid_from):
        return reject(RejectionReason.NOT_YET_VALID)
    if now >= _as_utc(coupon.valid_until):
        return reject(RejectionReason.EXPIRED)
    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        return reject(RejectionReason.EXHAUSTED)
    if coupon.min_purchase_amount is not None and subtotal < coupon.min_purchase_amount:
        return reject(RejectionReason.BELOW_MIN_PURCHASE)
    eligible = _applicable_ticket_types(coupon)
    if eligible and not any(l.ticket_type_id in eligible for l in lines):
        return reject(RejectionReason.NOT_APPLICABLE)
    if coupon.first_time_user_only and prior_confirmed_bookings(db, identity) > 0:
        return reject(RejectionReason.NOT_FIRST_TIME_USER)
    if coupon.max_uses_per_user is not None and redemptions_by_identity(db, coupon.id, identity) >= coupon.max_uses_per_user:
        return reject(RejectionReason.ALREADY_USED_BY_USER)

    return CouponDecision(ok=True, discount=compute_discount(coupon, subtotal, lines), coupon=coupon)


def redeem_coupon(
    db: Session,
    coupon: Coupon,
    *,
    booking_id: str,
    payment_id: str,
    event_id: str,
    identity: BuyerIdentity,
    original_amount: int,
    discount: int,
) -> CouponRedemption:
    """Take one use of the coupon and append the redemption record. Caller commits.

    The coupon row is locked first, so concurrent commits for the same coupon
    serialise here and the per-buyer count below always sees redemptions
    committed before the lock was granted.
    """
    db.execute(select(Coupon.id).where(Coupon.id == coupon.id).with_for_update())
    if coupon.max_uses_per_user is not None and redemptions_by_identity(db, coupon.id, identity) >= coupon.max_uses_per_user:
        raise CouponRejected(RejectionReason.ALREADY_USED_BY_USER, REJECTION_MESSAGES[RejectionReason.ALREADY_USED_BY_USER])

    result = db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            Coupon.is_active.is_(True),
            or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses),
        )
        .values(current_uses=Coupon.current_uses + 1, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise CouponRejected(RejectionReason.EXHAUSTED, REJECTION_MESSAGES[RejectionReason.EXHAUSTED])

    redemption = CouponRedemption(
        id=str(uuid.uuid4()),
        coupon_id=coupon.id,
        coupon_code=coupon.code,
        booking_id=booking_id,
        payment_id=payment_id,
        event_id=event_id,
        user_id=identity.user_id,
        identity_key=identity.key,
        original_amount=original_amount,
        discount_applied=discount,
        final_amount=original_amount - discount,
    )
    db.add(redemption)
    return redemption


def generate_coupon_code(prefix: str | None = None) -> str:
    return (prefix or "").upper() + "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))


def create_coupon(
    db: Session,
    *,
    discount_type: str,
    discount_value: int,
    valid_from: datetime,
    valid_until: datetime,
    code: str | None = None,
    prefix: str | None = None,
    name: str = "",
    description: str = "",
    event_id: str | None = None,
    max_discount: int | None = None,
    max_uses: int | None = None,
    max_uses_per_user: int | None = None,
    min_purchase_amount: int | None = None,
    applicable_ticket_types: list[str] | None = None,
    first_time_user_only: bool = False,
) -> Coupon:
    if discount_type not in DISCOUNT_TYPES:
        raise ValueError(f"discount_type must be one of {', '.join(DISCOUNT_TYPES)}")
    if valid_from >= valid_until:
        raise ValueError("valid_from must be before valid_until")
    if discount_type == "percentage" and not (0 < discount_value <= 100):
        raise ValueError("percentage discount must be between 1 and 100")
    if discount_type == "fixed" and discount_value <= 0:
        raise ValueError("fixed discount must be greater than 0")
    if max_uses is not None and max_uses < 0:
        raise ValueError("max_uses cannot be negative")

    if code:
        final_code = normalize_code(code)
        if get_coupon(db, final_code):
            raise ValueError("coupon code already exists")
    else:
        for _ in range(10):
            final_code = generate_coupon_code(prefix)
            if not get_coupon(db, final_code):
                break
        else:
            raise ValueError("could not allocate coupon code")

    coupon = Coupon(
        id=str(uuid.uuid4()),
        code=final_code,
        name=name,
        description=description,
        event_id=event_id,
        discount_type=discount_type,
        discount_value=discount_value,
        max_discount=max_discount,
        valid_from=valid_from,
        valid_until=valid_until,
        max_uses=max_uses,
        max_uses_per_user=max_uses_per_user,
        current_uses=0,
        min_purchase_amount=min_purchase_amount,
        applicable_ticket_types_json=json.dumps(applicable_ticket_types) if applicable_ticket_types else None,
        first_time_user_only=first_time_user_only,
        is_active=True,
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    logger.info("coupon %s created", coupon.code)
    return coupon


def deactivate_coupon(db: Session, code: str) -> Coupon:
    coupon = get_coupon(db, code)
    if not coupon:
        raise ValueError("coupon not found")
    coupon.is_active = False
    coupon.updated_at = datetime.now(timezone.utc)
    db.commit()
    return coupon
