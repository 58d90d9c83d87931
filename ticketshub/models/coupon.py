from sqlalchemy import String, Integer, DateTime, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from ticketshub.db.session import Base

class Coupon(Base):
    __tablename__ = "coupons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(40), unique=True, index=True)  # stored upper-case
    name: Mapped[str] = mapped_column(String(120), default="")
    description: Mapped[str] = mapped_column(String(500), default="")
    event_id: Mapped[str] = mapped_column(String(36), nullable=True, index=True)  # None = any event

    discount_type: Mapped[str] = mapped_column(String(12))  # percentage|fixed|bogo
    discount_value: Mapped[int] = mapped_column(Integer, default=0)  # percent, or paise for fixed
    max_discount: Mapped[int] = mapped_column(Integer, nullable=True)  # paise

    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    max_uses: Mapped[int] = mapped_column(Integer, nullable=True)
    max_uses_per_user: Mapped[int] = mapped_column(Integer, nullable=True)
    current_uses: Mapped[int] = mapped_column(Integer, default=0)
    min_purchase_amount: Mapped[int] = mapped_column(Integer, nullable=True)  # paise, compared with subtotal
    applicable_ticket_types_json: Mapped[str] = mapped_column(Text, nullable=True)  # JSON list of ticket type ids
    first_time_user_only: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
