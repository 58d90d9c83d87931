"""Checkout error taxonomy.

Every error carries a stable code, a user-safe message and the HTTP status the
API layer maps it to. User-facing coupon/pricing conditions are returned as
values by the services; these exceptions cover what must abort a request.
"""

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_SELECTION = "INVALID_SELECTION"
    INVALID_BUYER = "INVALID_BUYER"
    COUPON_REJECTED = "COUPON_REJECTED"
    GATEWAY_UNAVAILABLE = "GATEWAY_UNAVAILABLE"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    OVERSOLD = "OVERSOLD"
    COMMIT_CONFLICT = "COMMIT_CONFLICT"
    COMMIT_FAILED = "COMMIT_FAILED"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"


class CheckoutError(Exception):
    """Base error with code and user-safe message."""

    code: ErrorCode = ErrorCode.INVALID_SELECTION
    http_status: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


class InvalidSelection(CheckoutError):
    code = ErrorCode.INVALID_SELECTION
    http_status = 400


class InvalidBuyer(CheckoutError):
    """Neither an authenticated user nor complete guest contact details."""

    code = ErrorCode.INVALID_BUYER
    http_status = 400


class CouponRejected(CheckoutError):
    code = ErrorCode.COUPON_REJECTED
    http_status = 422

    def __init__(self, reason, message: str | None = None) -> None:
        super().__init__(message or f"Coupon rejected: {reason.value}")
        self.reason = reason

    def to_dict(self) -> dict:
        return {**super().to_dict(), "reason": self.reason.value}


class GatewayUnavailable(CheckoutError):
    """Transport failure or timeout talking to the gateway. Safe to retry with backoff."""

    code = ErrorCode.GATEWAY_UNAVAILABLE
    http_status = 503


class GatewayError(CheckoutError):
    """The gateway answered but refused the request."""

    code = ErrorCode.GATEWAY_ERROR
    http_status = 502


class VerificationFailed(CheckoutError):
    code = ErrorCode.VERIFICATION_FAILED
    http_status = 400

    def __init__(self, message: str = "Your payment did not go through: payment verification failed") -> None:
        super().__init__(message)


class Oversold(CheckoutError):
    code = ErrorCode.OVERSOLD
    http_status = 409

    def __init__(self, ticket_type_id: str, ticket_type_name: str = "") -> None:
        super().__init__(f"{ticket_type_name or ticket_type_id} is sold out")
        self.ticket_type_id = ticket_type_id

    def to_dict(self) -> dict:
        return {**super().to_dict(), "ticketTypeId": self.ticket_type_id}


class CommitConflict(CheckoutError):
    """A booking already exists for the payment; carries it so callers can return it."""

    code = ErrorCode.COMMIT_CONFLICT
    http_status = 200

    def __init__(self, booking) -> None:
        super().__init__("Booking already committed for this payment")
        self.booking = booking


class CommitFailed(CheckoutError):
    """Payment is verified but the booking could not be committed."""

    code = ErrorCode.COMMIT_FAILED
    http_status = 409

    def __init__(self, payment_id: str, reason: str) -> None:
        super().__init__(
            "Your payment succeeded but tickets could not be reserved. "
            "It has been recorded and will be reconciled."
        )
        self.payment_id = payment_id
        self.reason = reason

    def to_dict(self) -> dict:
        return {**super().to_dict(), "paymentId": self.payment_id, "reason": self.reason}


class PaymentNotFound(CheckoutError):
    code = ErrorCode.PAYMENT_NOT_FOUND
    http_status = 404

    def __init__(self, ref: str) -> None:
        super().__init__("Payment not found")
        self.ref = ref


class InvalidTransition(CheckoutError):
    code = ErrorCode.INVALID_TRANSITION
    http_status = 409
