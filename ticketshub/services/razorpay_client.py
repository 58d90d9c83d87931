import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum

import requests

from ticketshub.core.errors import GatewayError, GatewayUnavailable
from ticketshub.models.payment import PaymentStatus

logger = logging.getLogger(__name__)


@dataclass
class RazorpayConfig:
    key_id: str               # basic-auth username
    key_secret: str           # basic-auth password; also signs checkout callbacks
    webhook_secret: str = ""  # signs webhook bodies (set in the Razorpay dashboard)
    host: str = "api.razorpay.com"
    timeout: float = 10
    sandbox: bool = False


class OrderStatus(str, Enum):
    CREATED = "created"
    CAPTURED = "captured"
    VERIFIED = "verified"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class PaymentOrder:
    id: str
    amount: int  # paise
    currency: str
    receipt: str
    status: OrderStatus = OrderStatus.CREATED
    notes: dict = field(default_factory=dict)


# Razorpay order states: created -> attempted -> paid
_ORDER_STATUS = {
    "created": OrderStatus.CREATED,
    "attempted": OrderStatus.CREATED,
    "paid": OrderStatus.CAPTURED,
}

# Razorpay payment states. "authorized" is not money in hand yet.
_PAYMENT_STATUS = {
    "created": PaymentStatus.PENDING,
    "authorized": PaymentStatus.PENDING,
    "captured": PaymentStatus.CAPTURED,
    "failed": PaymentStatus.FAILED,
}


def map_order_status(gateway_status: str) -> OrderStatus:
    return _ORDER_STATUS.get((gateway_status or "").lower(), OrderStatus.CREATED)


def map_payment_status(gateway_status: str) -> PaymentStatus:
    return _PAYMENT_STATUS.get((gateway_status or "").lower(), PaymentStatus.PENDING)


def _hmac_sha256_hex(secret: str, msg: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def _digest_matches(expected: str, signature) -> bool:
    # hex digests are ASCII; anything else cannot match and must not reach compare_digest
    if not isinstance(signature, str) or not signature.isascii():
        return False
    return hmac.compare_digest(expected, signature)


class RazorpayClient:
    def __init__(self, cfg: RazorpayConfig):
        self.cfg = cfg

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"https://{self.cfg.host}{path}"
        try:
            r = requests.request(
                method=method.upper(),
                url=url,
                json=payload,
                auth=(self.cfg.key_id, self.cfg.key_secret),
                timeout=self.cfg.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning("razorpay %s %s unreachable: %s", method, path, e)
            raise GatewayUnavailable("Payment gateway is unavailable, please retry") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 500:
            logger.warning("razorpay %s %s returned %s", method, path, r.status_code)
            raise GatewayUnavailable(f"Payment gateway error {r.status_code}, please retry")
        if r.status_code >= 400:
            err = (data.get("error") or {}) if isinstance(data, dict) else {}
            logger.error("razorpay %s %s rejected: %s %s", method, path, r.status_code, err)
            raise GatewayError(f"Razorpay {r.status_code}: {err.get('description') or data}")
        return data

    def create_order(self, *, amount: int, currency: str, receipt: str, notes: dict | None = None) -> PaymentOrder:
        """Open a gateway order for `amount` paise. Not retried here; GatewayUnavailable is the caller's to retry."""
        if self.cfg.sandbox:
            order_id = "order_sbx" + uuid.uuid4().hex[:14]
            logger.info("razorpay sandbox order %s for %s %s", order_id, amount, currency)
            return PaymentOrder(id=order_id, amount=amount, currency=currency, receipt=receipt, notes=notes or {})

        payload = {"amount": int(amount), "currency": currency, "receipt": receipt, "notes": notes or {}}
        data = self.request("POST", "/v1/orders", payload)
        order = PaymentOrder(
            id=str(data.get("id") or ""),
            amount=int(data.get("amount") or amount),
            currency=str(data.get("currency") or currency),
            receipt=str(data.get("receipt") or receipt),
            status=map_order_status(str(data.get("status") or "")),
            notes=data.get("notes") or {},
        )
        if not order.id:
            raise GatewayError("Razorpay returned an order without an id")
        logger.info("razorpay order %s created for %s %s", order.id, order.amount, order.currency)
        return order

    def sign_callback(self, order_id: str, payment_id: str) -> str:
        return _hmac_sha256_hex(self.cfg.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))

    def verify_callback(self, order_id: str, payment_id: str, signature: str) -> bool:
        """True only if `signature` is HMAC-SHA256(order_id|payment_id). Never raises."""
        if not (self.cfg.key_secret and order_id and payment_id and signature):
            return False
        expected = self.sign_callback(order_id, payment_id)
        return _digest_matches(expected, signature)

    def verify_webhook(self, body: bytes, signature: str) -> bool:
        """Check X-Razorpay-Signature over the raw webhook body. Never raises."""
        if not (self.cfg.webhook_secret and signature):
            return False
        expected = _hmac_sha256_hex(self.cfg.webhook_secret, body or b"")
        return _digest_matches(expected, signature)
