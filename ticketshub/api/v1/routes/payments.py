import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ticketshub.db.session import get_db
from ticketshub.api.deps import get_gateway, require_roles
from ticketshub.api.v1.routes.bookings import booking_out
from ticketshub.core.errors import CommitFailed
from ticketshub.schemas.booking import BookingOut
from ticketshub.schemas.checkout import RazorpayCallback
from ticketshub.services.audit_service import log_audit
from ticketshub.services.checkout_service import handle_payment_callback, handle_payment_webhook, retry_commit
from ticketshub.services.razorpay_client import RazorpayClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/public/payments/razorpay/verify", response_model=BookingOut)
def verify_razorpay_payment(body: RazorpayCallback, db: Session = Depends(get_db), gateway: RazorpayClient = Depends(get_gateway)):
    """Checkout-widget handler posts the three razorpay_* fields here after payment."""
    booking = handle_payment_callback(
        db, gateway,
        order_id=body.razorpay_order_id,
        gateway_payment_id=body.razorpay_payment_id,
        signature=body.razorpay_signature,
    )
    return booking_out(booking)


@router.post("/webhooks/razorpay")
async def razorpay_webhook(req: Request, db: Session = Depends(get_db), gateway: RazorpayClient = Depends(get_gateway)):
    body = await req.body()
    signature = req.headers.get("x-razorpay-signature") or ""
    try:
        booking = handle_payment_webhook(db, gateway, body, signature)
    except CommitFailed as e:
        # Recorded on the payment for reconciliation; acknowledge so the gateway stops redelivering.
        return {"ok": True, "committed": False, "paymentId": e.payment_id, "reason": e.reason}
    if booking is None:
        return {"ok": True}
    return {"ok": True, "committed": True, "bookingNumber": booking.booking_number}


@router.post("/ops/payments/{payment_id}/retry-commit", response_model=BookingOut)
def retry_payment_commit(payment_id: str, db: Session = Depends(get_db), claims: dict = Depends(require_roles("ops", "admin"))):
    log_audit(db, actor_user_id=claims["sub"], action="commit_retry_requested", entity_type="payment", entity_id=payment_id)
    db.commit()
    booking = retry_commit(db, payment_id)
    return booking_out(booking)
