from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from ticketshub.db.session import Base

class CouponRedemption(Base):
    """Append-only usage ledger; per-user caps are counted from here."""

    __tablename__ = "coupon_redemptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    coupon_id: Mapped[str] = mapped_column(String(36), index=True)
    coupon_code: Mapped[str] = mapped_column(String(40))
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    payment_id: Mapped[str] = mapped_column(String(36), index=True)
    event_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=True)
    identity_key: Mapped[str] = mapped_column(String(340), index=True)  # user:<id> or guest:<email>
    original_amount: Mapped[int] = mapped_column(Integer)
    discount_applied: Mapped[int] = mapped_column(Integer)
    final_amount: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
