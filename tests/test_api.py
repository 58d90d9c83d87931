"""HTTP tests for the checkout, payment and booking routes."""

import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from ticketshub.api.deps import get_gateway
from ticketshub.core.security import create_access_token
from ticketshub.db.session import get_db
from ticketshub.main import app
from ticketshub.models.payment import Payment
from ticketshub.models.ticket_type import TicketType

from conftest import WEBHOOK_SECRET

GUEST = {"name": "Asha Rao", "email": "asha@example.com", "phone": "+919800000000"}


@pytest.fixture
def client(db, session_factory, gateway):
    def _db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


def start(client, ticket_type, qty=2, **extra):
    body = {"eventId": ticket_type.event_id, "tickets": {ticket_type.id: qty}, "guest": GUEST, **extra}
    return client.post("/api/v1/public/checkout", json=body)


def callback(client, gateway, order_id, payment_id="pay_1", signature=None):
    return client.post("/api/v1/public/payments/razorpay/verify", json={
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature or gateway.sign_callback(order_id, payment_id),
    })


class TestPricingRoutes:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_price_cart(self, client, ga):
        r = client.post("/api/v1/public/checkout/price", json={"eventId": ga.event_id, "tickets": {ga.id: 2}})
        assert r.status_code == 200
        data = r.json()
        assert data["pricing"]["grandTotal"] == 129_800
        assert data["pricing"]["platformFeeTax"] == 1_800
        assert data["lines"][0]["ticketTypeName"] == "GA"
        assert data["coupon"] is None

    def test_price_cart_reports_rejected_coupon(self, client, ga):
        r = client.post("/api/v1/public/checkout/price",
                        json={"eventId": ga.event_id, "tickets": {ga.id: 1}, "couponCode": "ghost"})
        coupon = r.json()["coupon"]
        assert coupon == {"code": "GHOST", "applied": False, "reason": "NotFound",
                          "category": "CouponNotEligible", "message": "Coupon code not found"}

    def test_invalid_selection(self, client, ga):
        r = client.post("/api/v1/public/checkout/price", json={"eventId": ga.event_id, "tickets": {}})
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "INVALID_SELECTION"


class TestCheckoutRoutes:
    def test_guest_checkout_to_booking(self, client, gateway, ga):
        r = start(client, ga)
        assert r.status_code == 200
        order = r.json()
        assert order["amount"] == 129_800
        assert order["keyId"] == "rzp_test_key"

        r = callback(client, gateway, order["orderId"])
        assert r.status_code == 200
        booking = r.json()
        assert booking["paymentId"] == order["paymentId"]
        assert booking["tickets"] == [{"ticketTypeId": ga.id, "ticketTypeName": "GA", "quantity": 2, "price": 50_000}]

        r = client.get(f"/api/v1/public/bookings/{booking['bookingNumber'].lower()}")
        assert r.status_code == 200
        assert r.json()["bookingId"] == booking["bookingId"]

    def test_guest_without_contact_details(self, client, ga):
        r = client.post("/api/v1/public/checkout", json={"eventId": ga.event_id, "tickets": {ga.id: 1}})
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "INVALID_BUYER"

    def test_authenticated_checkout_needs_no_guest_details(self, client, ga):
        token = create_access_token("user-42")
        r = client.post("/api/v1/public/checkout", json={"eventId": ga.event_id, "tickets": {ga.id: 1}},
                        headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200

    def test_bad_token_is_not_treated_as_guest(self, client, ga):
        r = client.post("/api/v1/public/checkout/price", json={"eventId": ga.event_id, "tickets": {ga.id: 1}},
                        headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401

    def test_required_coupon(self, client, ga):
        r = start(client, ga, couponCode="GHOST", requireCoupon=True)
        assert r.status_code == 422
        assert r.json()["detail"]["reason"] == "NotFound"

    def test_tampered_callback(self, client, gateway, ga):
        order = start(client, ga).json()
        r = callback(client, gateway, order["orderId"], signature="f" * 64)
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "VERIFICATION_FAILED"
        assert "did not go through" in r.json()["detail"]["message"]

    def test_commit_failure_is_not_a_silent_success(self, client, gateway, db, vip):
        order = start(client, vip, qty=2).json()
        row = db.get(TicketType, vip.id)
        row.sold = 1
        db.commit()
        r = callback(client, gateway, order["orderId"])
        assert r.status_code == 409
        detail = r.json()["detail"]
        assert detail["code"] == "COMMIT_FAILED"
        assert "payment succeeded" in detail["message"]
        assert detail["paymentId"] == order["paymentId"]

    def test_unknown_booking(self, client):
        assert client.get("/api/v1/public/bookings/BK-20260101-ZZZZZ").status_code == 404


class TestWebhookRoute:
    def test_captured_webhook(self, client, ga):
        order = start(client, ga, qty=1).json()
        body = json.dumps({"event": "payment.captured", "payload": {"payment": {"entity": {
            "id": "pay_wh", "order_id": order["orderId"], "amount": order["amount"], "status": "captured",
        }}}}).encode()
        sig = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
        r = client.post("/api/v1/webhooks/razorpay", content=body, headers={"X-Razorpay-Signature": sig})
        assert r.status_code == 200
        assert r.json()["committed"] is True

    def test_unsigned_webhook_rejected(self, client):
        r = client.post("/api/v1/webhooks/razorpay", content=b"{}")
        assert r.status_code == 400


class TestRetryCommitRoute:
    def test_requires_ops_role(self, client):
        assert client.post("/api/v1/ops/payments/p1/retry-commit").status_code == 401
        token = create_access_token("user-1", role="customer")
        r = client.post("/api/v1/ops/payments/p1/retry-commit", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 403

    def test_ops_retry_commits_after_capacity_frees(self, client, gateway, db, vip):
        order = start(client, vip, qty=2).json()
        row = db.get(TicketType, vip.id)
        row.sold = 1
        db.commit()
        assert callback(client, gateway, order["orderId"]).status_code == 409

        row = db.get(TicketType, vip.id)
        row.sold = 0
        db.commit()
        token = create_access_token("ops-1", role="ops")
        r = client.post(f"/api/v1/ops/payments/{order['paymentId']}/retry-commit",
                        headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200
        assert r.json()["paymentId"] == order["paymentId"]
        db.expire_all()
        assert db.get(Payment, order["paymentId"]).checkout_state == "COMMITTED"

    def test_unknown_payment(self, client):
        token = create_access_token("ops-1", role="admin")
        r = client.post("/api/v1/ops/payments/missing/retry-commit", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 404
