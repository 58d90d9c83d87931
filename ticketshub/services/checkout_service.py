"""Checkout coordinator: price -> gateway order -> verified payment -> committed booking.

Each checkout attempt is a Payment row whose `checkout_state` walks

    PRICED -> ORDER_CREATED -> PAYMENT_CALLBACK_RECEIVED -> VERIFIED -> COMMITTED

with VERIFICATION_FAILED and COMMIT_FAILED as failure states. The gateway is
only ever called with no write transaction open; inventory and coupon counters
move only inside `commit_booking`, as one database transaction.

A payment that is VERIFIED (or COMMIT_FAILED) without a booking is the
"payment succeeded, booking pending" case. It stays observable on the row and
`retry_commit` replays it; the Booking.payment_id unique index makes replays
return the existing booking instead of creating a second one.
"""
import json
import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ticketshub.core.config import settings
from ticketshub.core.errors import (
    CommitConflict,
    CommitFailed,
    CouponRejected,
    InvalidTransition,
    Oversold,
    PaymentNotFound,
    VerificationFailed,
)
from ticketshub.core.logger import security_logger
from ticketshub.models.booking import Booking
from ticketshub.models.payment import (
    CHECKOUT_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    CheckoutState,
    Payment,
    PaymentStatus,
)
from ticketshub.services import inventory_service
from ticketshub.services.audit_service import GATEWAY_ACTOR, PUBLIC_ACTOR, log_audit
from ticketshub.services.coupon_service import CouponDecision, normalize_code, redeem_coupon, validate_coupon
from ticketshub.services.identity import BuyerIdentity
from ticketshub.services.pricing_service import PriceBreakdown, PriceLine, PricingPolicy, load_lines, price_lines
from ticketshub.services.razorpay_client import PaymentOrder, RazorpayClient, map_payment_status
from ticketshub.services.settings_service import get_pricing_policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingResult:
    lines: list[PriceLine]
    breakdown: PriceBreakdown
    coupon: CouponDecision | None = None


def make_booking_number(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(5))
    return f"BK-{now:%Y%m%d}-{suffix}"


def _set_status(payment: Payment, new: PaymentStatus) -> None:
    current = PaymentStatus(payment.status)
    if current == new:
        return
    if new not in PAYMENT_TRANSITIONS[current]:
        raise InvalidTransition(f"Payment {payment.id} cannot go from {current.value} to {new.value}")
    payment.status = new.value
    payment.updated_at = datetime.now(timezone.utc)


def _set_state(payment: Payment, new: CheckoutState) -> None:
    current = CheckoutState(payment.checkout_state)
    if current == new:
        return
    if new not in CHECKOUT_TRANSITIONS[current]:
        raise InvalidTransition(f"Checkout {payment.id} cannot go from {current.value} to {new.value}")
    payment.checkout_state = new.value
    payment.updated_at = datetime.now(timezone.utc)


def _lines_to_json(lines: list[PriceLine]) -> str:
    return json.dumps([
        {"ticketTypeId": l.ticket_type_id, "ticketTypeName": l.name, "quantity": l.quantity, "price": l.unit_price}
        for l in lines
    ])


def _lines_from_json(raw: str) -> list[PriceLine]:
    return [
        PriceLine(ticket_type_id=d["ticketTypeId"], quantity=int(d["quantity"]), unit_price=int(d["price"]), name=d.get("ticketTypeName", ""))
        for d in json.loads(raw or "[]")
    ]


def identity_of(payment: Payment) -> BuyerIdentity:
    return BuyerIdentity(
        user_id=payment.user_id,
        guest_name=payment.guest_name,
        guest_email=payment.guest_email,
        guest_phone=payment.guest_phone,
    )


def get_payment_by_order(db: Session, order_id: str) -> Payment | None:
    return db.execute(select(Payment).where(Payment.gateway_order_id == order_id)).scalar_one_or_none()


def get_booking_for_payment(db: Session, payment_id: str) -> Booking | None:
    return db.execute(select(Booking).where(Booking.payment_id == payment_id)).scalar_one_or_none()


def price_selection(
    db: Session,
    event_id: str,
    selection: dict[str, int],
    coupon_code: str | None = None,
    identity: BuyerIdentity | None = None,
    now: datetime | None = None,
    policy: PricingPolicy | None = None,
) -> PricingResult:
    """Price a cart. Read-only; a rejected coupon prices at full price and reports why."""
    policy = policy or get_pricing_policy(db)
    identity = identity or BuyerIdentity()
    lines = load_lines(db, event_id, selection)
    full = price_lines(lines, policy)
    if not coupon_code:
        return PricingResult(lines=lines, breakdown=full)

    decision = validate_coupon(
        db, coupon_code, subtotal=full.subtotal, lines=lines, identity=identity, event_id=event_id, now=now,
    )
    if not decision.ok:
        return PricingResult(lines=lines, breakdown=full, coupon=decision)
    return PricingResult(lines=lines, breakdown=price_lines(lines, policy, decision.discount), coupon=decision)


def begin_checkout(
    db: Session,
    gateway: RazorpayClient,
    event_id: str,
    selection: dict[str, int],
    identity: BuyerIdentity,
    coupon_code: str | None = None,
    require_coupon: bool = False,
    now: datetime | None = None,
) -> tuple[Payment, PaymentOrder]:
    identity = identity.require_contactable()
    priced = price_selection(db, event_id, selection, coupon_code, identity, now)
    if priced.coupon and not priced.coupon.ok:
        if require_coupon:
            priced.coupon.raise_if_rejected()
        logger.info("checkout continues at full price; coupon %s rejected (%s)", coupon_code, priced.coupon.reason.value)
    applied_code = normalize_code(coupon_code) if priced.coupon and priced.coupon.ok else None
    breakdown = priced.breakdown

    # No transaction stays open across the gateway call.
    db.rollback()

    payment_id = str(uuid.uuid4())
    receipt = "rcpt_" + payment_id.replace("-", "")[:32]
    order = gateway.create_order(
        amount=breakdown.grand_total,
        currency=settings.CURRENCY,
        receipt=receipt,
        notes={"payment_id": payment_id, "event_id": event_id},
    )

    payment = Payment(
        id=payment_id,
        provider="razorpay",
        gateway_order_id=order.id,
        receipt=receipt,
        amount=breakdown.grand_total,
        currency=order.currency,
        status=PaymentStatus.PENDING.value,
        checkout_state=CheckoutState.PRICED.value,
        event_id=event_id,
        user_id=identity.user_id,
        guest_name=identity.guest_name,
        guest_email=identity.guest_email,
        guest_phone=identity.guest_phone,
        selection_json=_lines_to_json(priced.lines),
        coupon_code=applied_code,
        **breakdown.to_dict(),
    )
    _set_state(payment, CheckoutState.ORDER_CREATED)
    db.add(payment)
    log_audit(db, actor_user_id=identity.user_id or PUBLIC_ACTOR, action="checkout_started", entity_type="payment",
              entity_id=payment.id, details={"orderId": order.id, "amount": payment.amount, "coupon": applied_code})
    db.commit()
    db.refresh(payment)
    logger.info("checkout %s started: order=%s amount=%s", payment.id, order.id, payment.amount)
    return payment, order


def _reject_verification(db: Session, payment: Payment, reason: str, details: dict) -> None:
    """Record a failed verification. Only a payment that is still unverified is moved to failed.

    The move is a conditional UPDATE against the current row, not the copy
    loaded before the signature check, so a forged callback racing a genuine
    one can never pull a verified payment back to failed.
    """
    payment_id, order_id = payment.id, payment.gateway_order_id
    security_logger.warning("payment verification failed: payment=%s order=%s reason=%s", payment_id, order_id, reason)
    status_sources = [s.value for s, targets in PAYMENT_TRANSITIONS.items() if PaymentStatus.FAILED in targets]
    state_sources = [s.value for s, targets in CHECKOUT_TRANSITIONS.items() if CheckoutState.VERIFICATION_FAILED in targets]
    result = db.execute(
        update(Payment)
        .where(
            Payment.id == payment_id,
            Payment.status.in_(status_sources),
            Payment.checkout_state.in_(state_sources),
        )
        .values(status=PaymentStatus.FAILED.value, checkout_state=CheckoutState.VERIFICATION_FAILED.value,
                failure_reason=reason[:255], updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    log_audit(db, actor_user_id=GATEWAY_ACTOR, action="payment_verification_failed", entity_type="payment",
              entity_id=payment_id, details={"reason": reason, "paymentFailed": result.rowcount > 0, **details})
    db.commit()


def _mark_verified(db: Session, payment: Payment, gateway_payment_id: str, signature: str | None) -> None:
    status = PaymentStatus(payment.status)
    if status == PaymentStatus.VERIFIED:
        return
    if status == PaymentStatus.FAILED:
        # Money moved after we gave up on this payment; surface it, never drop it.
        logger.error("payment %s captured after being marked failed (gateway payment %s)", payment.id, gateway_payment_id)
        log_audit(db, actor_user_id=GATEWAY_ACTOR, action="payment_captured_after_failure", entity_type="payment",
                  entity_id=payment.id, details={"gatewayPaymentId": gateway_payment_id})
        db.commit()
        raise CommitFailed(payment.id, "payment captured after it was marked failed")

    payment.gateway_payment_id = gateway_payment_id
    if signature:
        payment.gateway_signature = signature
    _set_status(payment, PaymentStatus.CAPTURED)
    _set_state(payment, CheckoutState.PAYMENT_CALLBACK_RECEIVED)
    _set_status(payment, PaymentStatus.VERIFIED)
    _set_state(payment, CheckoutState.VERIFIED)
    log_audit(db, actor_user_id=GATEWAY_ACTOR, action="payment_verified", entity_type="payment",
              entity_id=payment.id, details={"gatewayPaymentId": gateway_payment_id})
    # Durable before the commit step, so a crash leaves a replayable VERIFIED payment.
    db.commit()
    logger.info("payment %s verified (gateway payment %s)", payment.id, gateway_payment_id)


def handle_payment_callback(
    db: Session,
    gateway: RazorpayClient,
    order_id: str,
    gateway_payment_id: str,
    signature: str,
) -> Booking:
    payment = get_payment_by_order(db, order_id)
    if not payment:
        raise PaymentNotFound(order_id)

    if not gateway.verify_callback(order_id, gateway_payment_id, signature):
        _reject_verification(db, payment, "signature mismatch", {"gatewayPaymentId": gateway_payment_id})
        raise VerificationFailed()

    _mark_verified(db, payment, gateway_payment_id, signature)
    return commit_booking(db, payment)


def _fail_commit(db: Session, payment_id: str, reason: str) -> Booking | None:
    """Mark COMMIT_FAILED unless a concurrent commit won; returns that booking if so."""
    sources = [s.value for s, targets in CHECKOUT_TRANSITIONS.items() if CheckoutState.COMMIT_FAILED in targets]
    result = db.execute(
        update(Payment)
        .where(Payment.id == payment_id, Payment.checkout_state.in_(sources))
        .values(checkout_state=CheckoutState.COMMIT_FAILED.value, failure_reason=reason[:255],
                updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        return get_booking_for_payment(db, payment_id)
    log_audit(db, actor_user_id=GATEWAY_ACTOR, action="booking_commit_failed", entity_type="payment",
              entity_id=payment_id, details={"reason": reason})
    db.commit()
    logger.error("payment %s verified but booking not committed: %s", payment_id, reason)
    return None


def _allocate_booking_number(db: Session, attempts: int = 10) -> str | None:
    for _ in range(attempts):
        number = make_booking_number()
        if not db.execute(select(Booking.id).where(Booking.booking_number == number)).first():
            return number
    return None


def _abort_commit(db: Session, payment_id: str, reason: str) -> CommitFailed:
    """Roll back, mark COMMIT_FAILED and return the error to raise; a concurrent winner raises CommitConflict."""
    db.rollback()
    winner = _fail_commit(db, payment_id, reason)
    if winner:
        raise CommitConflict(winner)
    return CommitFailed(payment_id, reason)


def _commit_once(db: Session, payment: Payment) -> Booking:
    payment_id = payment.id
    existing = get_booking_for_payment(db, payment_id)
    if existing:
        raise CommitConflict(existing)

    if PaymentStatus(payment.status) != PaymentStatus.VERIFIED:
        raise InvalidTransition(f"Payment {payment_id} is {payment.status}, not verified")
    if CheckoutState.COMMITTED not in CHECKOUT_TRANSITIONS[CheckoutState(payment.checkout_state)]:
        raise InvalidTransition(f"Checkout {payment_id} cannot commit from {payment.checkout_state}")

    identity = identity_of(payment)
    lines = _lines_from_json(payment.selection_json)
    booking_id = str(uuid.uuid4())
    number = _allocate_booking_number(db)
    if number is None:
        raise _abort_commit(db, payment_id, "could not allocate a booking number")
    try:
        tokens = [inventory_service.reserve(db, l.ticket_type_id, l.quantity, payment_id=payment_id) for l in lines]

        if payment.coupon_code:
            # Re-check the coupon; a discount is never applied from a stale validation.
            decision = validate_coupon(
                db, payment.coupon_code, subtotal=payment.subtotal, lines=lines,
                identity=identity, event_id=payment.event_id,
            )
            decision.raise_if_rejected()
            redeem_coupon(
                db, decision.coupon, booking_id=booking_id, payment_id=payment_id, event_id=payment.event_id,
                identity=identity, original_amount=payment.subtotal, discount=payment.discount,
            )

        booking = Booking(
            id=booking_id,
            booking_number=number,
            event_id=payment.event_id,
            user_id=payment.user_id,
            guest_name=payment.guest_name,
            guest_email=payment.guest_email,
            guest_phone=payment.guest_phone,
            tickets_json=payment.selection_json,
            subtotal=payment.subtotal,
            ticket_tax=payment.ticket_tax,
            platform_fee=payment.platform_fee,
            platform_fee_tax=payment.platform_fee_tax,
            discount=payment.discount,
            grand_total=payment.grand_total,
            currency=payment.currency,
            payment_id=payment_id,
            coupon_code=payment.coupon_code,
            status="confirmed",
        )
        db.add(booking)
        db.flush()

        for token in tokens:
            inventory_service.commit(db, token, booking_id)
        _set_state(payment, CheckoutState.COMMITTED)
        payment.failure_reason = None
        log_audit(db, actor_user_id=GATEWAY_ACTOR, action="booking_committed", entity_type="booking",
                  entity_id=booking_id, details={"bookingNumber": number, "paymentId": payment_id})
        db.commit()
    except IntegrityError as e:
        db.rollback()
        winner = get_booking_for_payment(db, payment_id)
        if winner:
            raise CommitConflict(winner)
        # booking_number collided with a booking written after allocation
        raise _abort_commit(db, payment_id, "booking could not be stored") from e
    except (Oversold, CouponRejected) as e:
        raise _abort_commit(db, payment_id, e.message) from e

    db.refresh(booking)
    logger.info("booking %s committed for payment %s", booking.booking_number, payment_id)
    return booking


def commit_booking(db: Session, payment: Payment) -> Booking:
    """Reserve inventory, redeem the coupon and persist the booking as one unit.

    Idempotent on the payment id: a payment that already has a booking gets
    that booking back and nothing is decremented or redeemed again.
    """
    payment_id = payment.id
    try:
        return _commit_once(db, payment)
    except CommitConflict as c:
        logger.info("commit replay for payment %s returns booking %s", payment_id, c.booking.booking_number)
        return c.booking


def retry_commit(db: Session, payment_id: str) -> Booking:
    """Reconciliation entry point for VERIFIED / COMMIT_FAILED payments."""
    payment = db.get(Payment, payment_id)
    if not payment:
        raise PaymentNotFound(payment_id)
    return commit_booking(db, payment)


def handle_payment_webhook(db: Session, gateway: RazorpayClient, body: bytes, signature: str) -> Booking | None:
    """Razorpay webhook: payment.captured / order.paid drive the same verify+commit path as the callback."""
    if not gateway.verify_webhook(body, signature):
        security_logger.warning("razorpay webhook rejected: bad signature")
        raise VerificationFailed("Invalid webhook signature")

    payload = json.loads((body or b"{}").decode("utf-8") or "{}")
    event = str(payload.get("event") or "")
    entity = ((payload.get("payload") or {}).get("payment") or {}).get("entity") or {}
    order_id = str(entity.get("order_id") or "")
    gateway_payment_id = str(entity.get("id") or "")

    payment = get_payment_by_order(db, order_id) if order_id else None
    if not payment:
        logger.warning("razorpay webhook %s for unknown order %r ignored", event, order_id)
        return None

    if event == "payment.failed":
        # The order stays payable; another attempt may still capture it.
        payment.failure_reason = str(entity.get("error_description") or "payment attempt failed")[:255]
        log_audit(db, actor_user_id=GATEWAY_ACTOR, action="payment_attempt_failed", entity_type="payment",
                  entity_id=payment.id, details={"gatewayPaymentId": gateway_payment_id, "reason": payment.failure_reason})
        db.commit()
        return None

    if event not in ("payment.captured", "order.paid"):
        logger.info("razorpay webhook %s for payment %s ignored", event, payment.id)
        return None
    if entity.get("status") and map_payment_status(str(entity["status"])) != PaymentStatus.CAPTURED:
        logger.info("razorpay webhook %s for payment %s not captured yet (%s)", event, payment.id, entity["status"])
        return None

    amount = entity.get("amount")
    if amount is not None and int(amount) != payment.amount:
        _reject_verification(db, payment, "amount mismatch", {"gatewayAmount": amount, "expected": payment.amount})
        raise VerificationFailed("Payment amount does not match the order")

    _mark_verified(db, payment, gateway_payment_id, None)
    return commit_booking(db, payment)
