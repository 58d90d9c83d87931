from sqlalchemy import String, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from ticketshub.db.session import Base

class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        # a payment's full trail: checkout_started ... booking_committed
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    actor_user_id: Mapped[str] = mapped_column(String(64), index=True)  # user id, or razorpay / public / worker
    action: Mapped[str] = mapped_column(String(80), index=True)  # e.g. payment_verified, booking_committed
    entity_type: Mapped[str] = mapped_column(String(40))  # payment, booking, coupon
    entity_id: Mapped[str] = mapped_column(String(36))
    details_json: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
