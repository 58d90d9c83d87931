"""Tests for the checkout coordinator: price -> order -> verify -> commit."""

import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone

import pytest

from ticketshub.core.errors import (
    CommitFailed,
    CouponRejected,
    InvalidBuyer,
    InvalidTransition,
    PaymentNotFound,
    VerificationFailed,
)
from ticketshub.models.audit_log import AuditLog
from ticketshub.models.booking import Booking
from ticketshub.models.coupon_redemption import CouponRedemption
from ticketshub.models.inventory_reservation import InventoryReservation
from ticketshub.models.payment import CheckoutState, Payment, PaymentStatus
from ticketshub.models.ticket_type import TicketType
from ticketshub.services import checkout_service
from ticketshub.services.checkout_service import (
    begin_checkout,
    commit_booking,
    handle_payment_callback,
    handle_payment_webhook,
    make_booking_number,
    price_selection,
    retry_commit,
)
from ticketshub.services.coupon_service import RejectionReason, create_coupon, deactivate_coupon, get_coupon
from ticketshub.services.identity import BuyerIdentity
from ticketshub.tasks.worker_jobs import reconcile_verified_payments

from conftest import WEBHOOK_SECRET


def sold(db, ticket_type_id):
    db.expire_all()
    return db.get(TicketType, ticket_type_id).sold


def add_fixed_coupon(db, code="FLAT200", **kw):
    now = datetime.now(timezone.utc)
    params = dict(discount_type="fixed", discount_value=20_000, min_purchase_amount=50_000,
                  valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=1))
    params.update(kw)
    return create_coupon(db, code=code, **params)


def pay(db, gateway, payment, gateway_payment_id="pay_1"):
    sig = gateway.sign_callback(payment.gateway_order_id, gateway_payment_id)
    return handle_payment_callback(db, gateway, payment.gateway_order_id, gateway_payment_id, sig)


def webhook(db, gateway, event, payment, amount=None, status="captured", gateway_payment_id="pay_wh"):
    body = json.dumps({
        "event": event,
        "payload": {"payment": {"entity": {
            "id": gateway_payment_id,
            "order_id": payment.gateway_order_id,
            "amount": payment.amount if amount is None else amount,
            "status": status,
        }}},
    }).encode()
    sig = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return handle_payment_webhook(db, gateway, body, sig)


class TestBeginCheckout:
    """Tests for pricing and order creation."""

    def test_creates_order_for_grand_total(self, db, gateway, ga, guest):
        payment, order = begin_checkout(db, gateway, ga.event_id, {ga.id: 2}, guest)
        assert payment.amount == order.amount == 129_800
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.checkout_state == CheckoutState.ORDER_CREATED.value
        assert payment.guest_email == "asha@example.com"
        assert payment.receipt.startswith("rcpt_")
        # nothing is reserved before payment
        assert sold(db, ga.id) == 0

    def test_coupon_applied(self, db, gateway, ga, guest):
        add_fixed_coupon(db)
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 2}, guest, coupon_code="flat200")
        assert payment.amount == 109_800
        assert payment.coupon_code == "FLAT200"
        assert get_coupon(db, "FLAT200").current_uses == 0

    def test_rejected_coupon_falls_back_to_full_price(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 2}, guest, coupon_code="NOPE")
        assert payment.amount == 129_800
        assert payment.coupon_code is None

    def test_required_coupon_rejection_aborts(self, db, gateway, ga, guest):
        with pytest.raises(CouponRejected) as exc:
            begin_checkout(db, gateway, ga.event_id, {ga.id: 2}, guest, coupon_code="NOPE", require_coupon=True)
        assert exc.value.reason is RejectionReason.NOT_FOUND
        assert db.query(Payment).count() == 0

    def test_guest_needs_contact_details(self, db, gateway, ga):
        with pytest.raises(InvalidBuyer):
            begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, BuyerIdentity(guest_email="a@b.c"))

    def test_price_selection_reports_coupon_reason(self, db, ga, guest):
        add_fixed_coupon(db, min_purchase_amount=500_000)
        priced = price_selection(db, ga.event_id, {ga.id: 2}, "FLAT200", guest)
        assert priced.coupon.reason is RejectionReason.BELOW_MIN_PURCHASE
        assert priced.breakdown.discount == 0


class TestCallbackAndCommit:
    """Tests for verification and the booking commit."""

    def test_full_flow_commits_booking(self, db, gateway, ga, guest):
        add_fixed_coupon(db)
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 2}, guest, coupon_code="FLAT200")
        booking = pay(db, gateway, payment)

        assert booking.payment_id == payment.id
        assert booking.grand_total == 109_800
        assert booking.booking_number.startswith("BK-")
        db.refresh(payment)
        assert payment.status == PaymentStatus.VERIFIED.value
        assert payment.checkout_state == CheckoutState.COMMITTED.value
        assert sold(db, ga.id) == 2
        assert get_coupon(db, "FLAT200").current_uses == 1
        assert db.query(CouponRedemption).one().booking_id == booking.id
        assert db.query(InventoryReservation).filter_by(status="COMMITTED").count() == 1

    def test_replayed_callback_returns_same_booking(self, db, gateway, ga, guest):
        add_fixed_coupon(db)
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 2}, guest, coupon_code="FLAT200")
        first = pay(db, gateway, payment)
        second = pay(db, gateway, payment)
        third = retry_commit(db, payment.id)

        assert first.id == second.id == third.id
        assert db.query(Booking).count() == 1
        assert sold(db, ga.id) == 2
        assert get_coupon(db, "FLAT200").current_uses == 1

    def test_tampered_signature(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        with pytest.raises(VerificationFailed):
            handle_payment_callback(db, gateway, payment.gateway_order_id, "pay_1", "0" * 64)
        db.refresh(payment)
        assert payment.status == PaymentStatus.FAILED.value
        assert payment.checkout_state == CheckoutState.VERIFICATION_FAILED.value
        assert db.query(Booking).count() == 0
        assert sold(db, ga.id) == 0
        assert db.query(AuditLog).filter_by(action="payment_verification_failed").count() == 1

    def test_valid_capture_after_forged_callback_is_surfaced(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        with pytest.raises(VerificationFailed):
            handle_payment_callback(db, gateway, payment.gateway_order_id, "pay_1", "bad")
        with pytest.raises(CommitFailed):
            pay(db, gateway, payment)
        assert db.query(AuditLog).filter_by(action="payment_captured_after_failure").count() == 1

    def test_forged_callback_racing_genuine_one_leaves_payment_committed(
            self, db, session_factory, gateway, ga, guest, monkeypatch):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        payment_id, order_id = payment.id, payment.gateway_order_id
        forged = "0" * 64
        verify = gateway.verify_callback

        def genuine_commits_mid_check(order, gateway_payment_id, signature):
            # the forged request already holds its copy of the payment row
            if signature == forged:
                other = session_factory()
                try:
                    handle_payment_callback(other, gateway, order, "pay_1", gateway.sign_callback(order, "pay_1"))
                finally:
                    other.close()
            return verify(order, gateway_payment_id, signature)

        monkeypatch.setattr(gateway, "verify_callback", genuine_commits_mid_check)
        with pytest.raises(VerificationFailed):
            handle_payment_callback(db, gateway, order_id, "pay_1", forged)

        db.expire_all()
        row = db.get(Payment, payment_id)
        assert row.status == PaymentStatus.VERIFIED.value
        assert row.checkout_state == CheckoutState.COMMITTED.value
        assert row.failure_reason is None
        assert db.query(Booking).filter_by(payment_id=payment_id).count() == 1
        assert db.query(AuditLog).filter_by(action="payment_verification_failed").count() == 1

    def test_booking_number_exhaustion_fails_commit(self, db, gateway, ga, guest, monkeypatch):
        first, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        second, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        monkeypatch.setattr(checkout_service, "make_booking_number", lambda now=None: "BK-20261019-AAAAA")
        pay(db, gateway, first, "pay_first")

        with pytest.raises(CommitFailed) as exc:
            pay(db, gateway, second, "pay_second")
        assert "booking number" in exc.value.reason
        db.refresh(second)
        assert second.checkout_state == CheckoutState.COMMIT_FAILED.value
        assert sold(db, ga.id) == 1

    def test_booking_number_collision_fails_commit(self, db, gateway, ga, guest, monkeypatch):
        first, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        second, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        taken = pay(db, gateway, first, "pay_first").booking_number
        # a concurrent commit takes the number after it was checked
        monkeypatch.setattr(checkout_service, "_allocate_booking_number", lambda db: taken)

        with pytest.raises(CommitFailed) as exc:
            pay(db, gateway, second, "pay_second")
        assert exc.value.reason == "booking could not be stored"
        db.refresh(second)
        assert second.status == PaymentStatus.VERIFIED.value
        assert second.checkout_state == CheckoutState.COMMIT_FAILED.value
        assert sold(db, ga.id) == 1
        assert db.query(Booking).count() == 1

    def test_unknown_order(self, db, gateway):
        with pytest.raises(PaymentNotFound):
            handle_payment_callback(db, gateway, "order_missing", "pay_1", "sig")

    def test_oversold_rolls_back_everything(self, db, gateway, vip, make_ticket_type, guest):
        ga = make_ticket_type("GA", 50_000, 100)
        add_fixed_coupon(db)
        payment, _ = begin_checkout(db, gateway, vip.event_id, {ga.id: 2, vip.id: 2}, guest, coupon_code="FLAT200")
        # Someone else takes a VIP seat between checkout and payment.
        other, _ = begin_checkout(db, gateway, vip.event_id, {vip.id: 1},
                                  BuyerIdentity(guest_name="B", guest_email="b@example.com", guest_phone="1"))
        pay(db, gateway, other, "pay_other")

        with pytest.raises(CommitFailed) as exc:
            pay(db, gateway, payment)
        assert "sold out" in exc.value.reason

        db.refresh(payment)
        assert payment.status == PaymentStatus.VERIFIED.value
        assert payment.checkout_state == CheckoutState.COMMIT_FAILED.value
        assert sold(db, ga.id) == 0
        assert sold(db, vip.id) == 1
        assert get_coupon(db, "FLAT200").current_uses == 0
        assert db.query(Booking).filter_by(payment_id=payment.id).count() == 0

    def test_retry_after_capacity_frees_up(self, db, gateway, vip, guest):
        payment, _ = begin_checkout(db, gateway, vip.event_id, {vip.id: 2}, guest)
        vip_row = db.get(TicketType, vip.id)
        vip_row.sold = 2
        db.commit()
        with pytest.raises(CommitFailed):
            pay(db, gateway, payment)

        vip_row = db.get(TicketType, vip.id)
        vip_row.sold = 0
        db.commit()
        booking = retry_commit(db, payment.id)
        db.refresh(payment)
        assert payment.checkout_state == CheckoutState.COMMITTED.value
        assert booking.payment_id == payment.id

    def test_coupon_deactivated_before_commit_fails_commit(self, db, gateway, ga, guest):
        add_fixed_coupon(db)
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 2}, guest, coupon_code="FLAT200")
        deactivate_coupon(db, "FLAT200")
        with pytest.raises(CommitFailed):
            pay(db, gateway, payment)
        db.refresh(payment)
        assert payment.checkout_state == CheckoutState.COMMIT_FAILED.value
        assert sold(db, ga.id) == 0

    def test_booking_number_format(self):
        number = make_booking_number(datetime(2026, 10, 19, tzinfo=timezone.utc))
        assert number.startswith("BK-20261019-")
        assert len(number) == len("BK-20261019-XXXXX")


class TestWebhook:
    """Tests for the Razorpay webhook path."""

    def test_captured_commits(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        booking = webhook(db, gateway, "payment.captured", payment)
        assert booking.payment_id == payment.id
        # the browser callback arriving later replays the same booking
        assert pay(db, gateway, payment, "pay_wh").id == booking.id

    def test_bad_signature(self, db, gateway):
        with pytest.raises(VerificationFailed):
            handle_payment_webhook(db, gateway, b"{}", "nope")

    def test_amount_mismatch_rejected(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        with pytest.raises(VerificationFailed):
            webhook(db, gateway, "payment.captured", payment, amount=1)
        db.refresh(payment)
        assert payment.checkout_state == CheckoutState.VERIFICATION_FAILED.value

    def test_failed_attempt_is_not_terminal(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        assert webhook(db, gateway, "payment.failed", payment, status="failed") is None
        db.refresh(payment)
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.failure_reason
        assert pay(db, gateway, payment).payment_id == payment.id

    def test_authorized_payment_is_not_committed(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        assert webhook(db, gateway, "payment.captured", payment, status="authorized") is None
        assert db.query(Booking).count() == 0

    def test_unknown_order_ignored(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        payment.gateway_order_id = "order_elsewhere"
        assert webhook(db, gateway, "payment.captured", payment) is None
        db.rollback()


class TestReconcile:
    """Tests for the reconciliation worker job."""

    def test_commits_payment_stuck_in_verified(self, db, session_factory, gateway, ga, guest, monkeypatch):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        # Crash between verification and commit.
        monkeypatch.setattr(checkout_service, "commit_booking", lambda db, payment: None)
        pay(db, gateway, payment)
        monkeypatch.undo()
        db.refresh(payment)
        assert payment.checkout_state == CheckoutState.VERIFIED.value
        payment.updated_at = datetime.now(timezone.utc) - timedelta(hours=1)
        db.commit()

        result = reconcile_verified_payments(session_factory=session_factory)

        assert result == {"processed": 1, "committed": 1, "failed": 0}
        db.expire_all()
        assert db.get(Payment, payment.id).checkout_state == CheckoutState.COMMITTED.value
        assert db.query(Booking).filter_by(payment_id=payment.id).count() == 1

    def test_recent_payments_left_alone(self, db, session_factory, gateway, ga, guest, monkeypatch):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        monkeypatch.setattr(checkout_service, "commit_booking", lambda db, payment: None)
        pay(db, gateway, payment)
        monkeypatch.undo()
        assert reconcile_verified_payments(session_factory=session_factory)["processed"] == 0

    def test_commit_directly_requires_verified_payment(self, db, gateway, ga, guest):
        payment, _ = begin_checkout(db, gateway, ga.event_id, {ga.id: 1}, guest)
        with pytest.raises(InvalidTransition):
            commit_booking(db, payment)
