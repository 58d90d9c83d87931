from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class GuestDetails(BaseModel):
    name: str
    email: str  # plain str to allow .local and other dev domains
    phone: str


class PriceRequest(BaseModel):
    eventId: str
    tickets: Dict[str, int] = Field(default_factory=dict)  # ticketTypeId -> quantity
    couponCode: Optional[str] = None
    guestEmail: Optional[str] = None  # lets guests see per-buyer coupon limits while pricing


class CheckoutRequest(BaseModel):
    eventId: str
    tickets: Dict[str, int] = Field(default_factory=dict)
    couponCode: Optional[str] = None
    requireCoupon: bool = False
    guest: Optional[GuestDetails] = None  # mandatory when no identity token is sent


class PriceBreakdownOut(BaseModel):
    subtotal: int
    ticketTax: int
    platformFee: int
    platformFeeTax: int
    discount: int
    grandTotal: int
    currency: str = "INR"


class PriceLineOut(BaseModel):
    ticketTypeId: str
    ticketTypeName: str
    quantity: int
    price: int


class CouponOut(BaseModel):
    code: str
    applied: bool
    reason: Optional[str] = None
    category: Optional[str] = None
    message: str = ""


class PriceResponse(BaseModel):
    lines: List[PriceLineOut]
    pricing: PriceBreakdownOut
    coupon: Optional[CouponOut] = None


class CheckoutResponse(BaseModel):
    paymentId: str
    orderId: str
    amount: int
    currency: str
    receipt: str
    keyId: str = ""  # public key for the Razorpay checkout widget
    pricing: PriceBreakdownOut
    couponCode: Optional[str] = None


class RazorpayCallback(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
