from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ticketshub.core.config import settings
from ticketshub.db.session import get_db
from ticketshub.api.deps import get_gateway, get_optional_claims
from ticketshub.schemas.checkout import (
    CheckoutRequest, CheckoutResponse, CouponOut, PriceBreakdownOut, PriceLineOut, PriceRequest, PriceResponse,
)
from ticketshub.services.checkout_service import begin_checkout, price_selection
from ticketshub.services.identity import BuyerIdentity
from ticketshub.services.razorpay_client import RazorpayClient

router = APIRouter(tags=["checkout"])


def pricing_out(p, currency: str = "INR") -> PriceBreakdownOut:
    """Works for PriceBreakdown, Payment and Booking; they share the column names."""
    return PriceBreakdownOut(
        subtotal=p.subtotal,
        ticketTax=p.ticket_tax,
        platformFee=p.platform_fee,
        platformFeeTax=p.platform_fee_tax,
        discount=p.discount,
        grandTotal=p.grand_total,
        currency=currency,
    )


@router.post("/public/checkout/price", response_model=PriceResponse)
def price_cart(body: PriceRequest, db: Session = Depends(get_db), claims: dict | None = Depends(get_optional_claims)):
    identity = BuyerIdentity(user_id=claims["sub"] if claims else None, guest_email=body.guestEmail)
    priced = price_selection(db, body.eventId, body.tickets, body.couponCode, identity)
    coupon = None
    if priced.coupon:
        reason = priced.coupon.reason
        coupon = CouponOut(
            code=(body.couponCode or "").strip().upper(),
            applied=priced.coupon.ok,
            reason=reason.value if reason else None,
            category=reason.category if reason else None,
            message=priced.coupon.message,
        )
    return PriceResponse(
        lines=[PriceLineOut(ticketTypeId=l.ticket_type_id, ticketTypeName=l.name, quantity=l.quantity, price=l.unit_price)
               for l in priced.lines],
        pricing=pricing_out(priced.breakdown, settings.CURRENCY),
        coupon=coupon,
    )


@router.post("/public/checkout", response_model=CheckoutResponse)
def start_checkout(
    body: CheckoutRequest,
    db: Session = Depends(get_db),
    gateway: RazorpayClient = Depends(get_gateway),
    claims: dict | None = Depends(get_optional_claims),
):
    guest = body.guest
    identity = BuyerIdentity(
        user_id=claims["sub"] if claims else None,
        guest_name=guest.name if guest else None,
        guest_email=guest.email if guest else None,
        guest_phone=guest.phone if guest else None,
    )
    payment, order = begin_checkout(
        db, gateway, body.eventId, body.tickets, identity,
        coupon_code=body.couponCode, require_coupon=body.requireCoupon,
    )
    return CheckoutResponse(
        paymentId=payment.id,
        orderId=order.id,
        amount=payment.amount,
        currency=payment.currency,
        receipt=payment.receipt,
        keyId=gateway.cfg.key_id,
        pricing=pricing_out(payment, payment.currency),
        couponCode=payment.coupon_code,
    )
