from sqlalchemy import String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from ticketshub.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_number: Mapped[str] = mapped_column(String(20), unique=True, index=True)  # BK-YYYYMMDD-XXXXX

    event_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    guest_name: Mapped[str] = mapped_column(String(200), nullable=True)
    guest_email: Mapped[str] = mapped_column(String(320), nullable=True, index=True)
    guest_phone: Mapped[str] = mapped_column(String(40), nullable=True)

    # [{"ticketTypeId", "ticketTypeName", "quantity", "price"}]
    tickets_json: Mapped[str] = mapped_column(Text, default="[]")

    subtotal: Mapped[int] = mapped_column(Integer, default=0)
    ticket_tax: Mapped[int] = mapped_column(Integer, default=0)
    platform_fee: Mapped[int] = mapped_column(Integer, default=0)
    platform_fee_tax: Mapped[int] = mapped_column(Integer, default=0)
    discount: Mapped[int] = mapped_column(Integer, default=0)
    grand_total: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="INR")

    # 1:1 with payments; the unique index is the commit idempotency guard
    payment_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    coupon_code: Mapped[str] = mapped_column(String(40), nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="confirmed")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
