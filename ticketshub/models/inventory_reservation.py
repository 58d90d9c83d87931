from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from ticketshub.db.session import Base

HELD = "HELD"
COMMITTED = "COMMITTED"
RELEASED = "RELEASED"

class InventoryReservation(Base):
    __tablename__ = "inventory_reservations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ticket_type_id: Mapped[str] = mapped_column(String(36), index=True)
    quantity: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(12), default=HELD, index=True)  # HELD|COMMITTED|RELEASED
    payment_id: Mapped[str] = mapped_column(String(36), nullable=True, index=True)
    booking_id: Mapped[str] = mapped_column(String(36), nullable=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
