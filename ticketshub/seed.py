import logging
import uuid
from datetime import datetime, timezone, timedelta

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from ticketshub.core.config import settings
from ticketshub.db.session import SessionLocal
from ticketshub.models.setting import Setting
from ticketshub.models.ticket_type import TicketType
from ticketshub.services.coupon_service import create_coupon, get_coupon
from ticketshub.services.settings_service import PLATFORM_FEE_KEY, TAX_RATE_KEY

logger = logging.getLogger(__name__)

DEMO_EVENT_ID = "00000000-0000-0000-0000-00000000e001"

# (name, price in paise, capacity)
DEMO_TICKET_TYPES = [
    ("General Admission", 50_000, 500),
    ("VIP", 250_000, 50),
    ("Early Bird", 35_000, 100),
]


def ensure_setting(db: Session, key: str, value: int):
    if db.get(Setting, key):
        return
    db.add(Setting(key=key, int_value=value, str_value=None))
    db.commit()


def ensure_ticket_type(db: Session, event_id: str, name: str, price: int, capacity: int) -> TicketType:
    tt = db.query(TicketType).filter(TicketType.event_id == event_id, TicketType.name == name).first()
    if tt:
        return tt
    tt = TicketType(id=str(uuid.uuid4()), event_id=event_id, name=name, price=price, capacity=capacity, sold=0)
    db.add(tt)
    db.commit()
    return tt


def run(db=None, event_id: str = DEMO_EVENT_ID):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM ticket_types LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("[seed] ticket_types table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ensure_setting(db, TAX_RATE_KEY, settings.TAX_RATE_BPS)
        ensure_setting(db, PLATFORM_FEE_KEY, settings.PLATFORM_FEE_BPS)

        for name, price, capacity in DEMO_TICKET_TYPES:
            ensure_ticket_type(db, event_id, name, price, capacity)

        if not get_coupon(db, "WELCOME10"):
            now = datetime.now(timezone.utc)
            create_coupon(
                db,
                code="WELCOME10",
                name="Welcome offer",
                description="10% off, capped at Rs 500",
                discount_type="percentage",
                discount_value=10,
                max_discount=50_000,
                valid_from=now,
                valid_until=now + timedelta(days=90),
                max_uses_per_user=1,
            )
        logger.info("[seed] demo event %s ready", event_id)
    finally:
        db.close()


if __name__ == "__main__":
    run()
