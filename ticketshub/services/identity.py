from dataclasses import dataclass

from ticketshub.core.errors import InvalidBuyer


@dataclass(frozen=True)
class BuyerIdentity:
    """Who is buying: an identity-provider user id, or a guest with contact details."""

    user_id: str | None = None
    guest_name: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None

    @property
    def is_guest(self) -> bool:
        return not self.user_id

    @property
    def key(self) -> str:
        """Stable key for per-user coupon caps and first-time-buyer checks."""
        if self.user_id:
            return f"user:{self.user_id}"
        return f"guest:{(self.guest_email or '').strip().lower()}"

    def require_contactable(self) -> "BuyerIdentity":
        if self.user_id:
            return self
        if not ((self.guest_name or "").strip() and (self.guest_email or "").strip() and (self.guest_phone or "").strip()):
            raise InvalidBuyer("Guest checkout requires name, email and phone")
        return BuyerIdentity(
            guest_name=self.guest_name.strip(),
            guest_email=self.guest_email.strip().lower(),
            guest_phone=self.guest_phone.strip(),
        )
