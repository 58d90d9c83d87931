from enum import Enum
from sqlalchemy import String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from ticketshub.db.session import Base


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CAPTURED = "captured"
    VERIFIED = "verified"
    FAILED = "failed"


class CheckoutState(str, Enum):
    PRICED = "PRICED"
    ORDER_CREATED = "ORDER_CREATED"
    PAYMENT_CALLBACK_RECEIVED = "PAYMENT_CALLBACK_RECEIVED"
    VERIFIED = "VERIFIED"
    COMMITTED = "COMMITTED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"


# Forward-only; verified and failed are terminal.
PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.CAPTURED, PaymentStatus.FAILED},
    PaymentStatus.CAPTURED: {PaymentStatus.VERIFIED, PaymentStatus.FAILED},
    PaymentStatus.VERIFIED: set(),
    PaymentStatus.FAILED: set(),
}

# COMMIT_FAILED -> COMMITTED is the reconciliation path (retry_commit).
CHECKOUT_TRANSITIONS: dict[CheckoutState, set[CheckoutState]] = {
    CheckoutState.PRICED: {CheckoutState.ORDER_CREATED},
    CheckoutState.ORDER_CREATED: {CheckoutState.PAYMENT_CALLBACK_RECEIVED, CheckoutState.VERIFICATION_FAILED},
    CheckoutState.PAYMENT_CALLBACK_RECEIVED: {CheckoutState.VERIFIED, CheckoutState.VERIFICATION_FAILED},
    CheckoutState.VERIFIED: {CheckoutState.COMMITTED, CheckoutState.COMMIT_FAILED},
    CheckoutState.COMMIT_FAILED: {CheckoutState.COMMITTED, CheckoutState.COMMIT_FAILED},
    CheckoutState.COMMITTED: set(),
    CheckoutState.VERIFICATION_FAILED: set(),
}


class Payment(Base):
    """One checkout attempt: the gateway order, its payment and the priced cart it pays for."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    provider: Mapped[str] = mapped_column(String(40), default="razorpay")
    gateway_order_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    gateway_payment_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    gateway_signature: Mapped[str] = mapped_column(String(128), nullable=True)
    receipt: Mapped[str] = mapped_column(String(40))

    amount: Mapped[int] = mapped_column(Integer)  # paise, equals grand_total
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value, index=True)
    checkout_state: Mapped[str] = mapped_column(String(32), default=CheckoutState.PRICED.value, index=True)
    failure_reason: Mapped[str] = mapped_column(String(255), nullable=True)

    event_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    guest_name: Mapped[str] = mapped_column(String(200), nullable=True)
    guest_email: Mapped[str] = mapped_column(String(320), nullable=True)
    guest_phone: Mapped[str] = mapped_column(String(40), nullable=True)

    # Priced cart, frozen at checkout start
    selection_json: Mapped[str] = mapped_column(Text, default="{}")
    subtotal: Mapped[int] = mapped_column(Integer, default=0)
    ticket_tax: Mapped[int] = mapped_column(Integer, default=0)
    platform_fee: Mapped[int] = mapped_column(Integer, default=0)
    platform_fee_tax: Mapped[int] = mapped_column(Integer, default=0)
    discount: Mapped[int] = mapped_column(Integer, default=0)
    grand_total: Mapped[int] = mapped_column(Integer, default=0)
    coupon_code: Mapped[str] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
