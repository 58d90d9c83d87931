"""Pytest configuration and shared fixtures."""

import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RAZORPAY_SANDBOX", "true")

import pytest
from sqlalchemy.orm import sessionmaker

from ticketshub.db.session import Base, make_engine
from ticketshub.models.audit_log import AuditLog  # noqa: F401
from ticketshub.models.booking import Booking  # noqa: F401
from ticketshub.models.coupon import Coupon  # noqa: F401
from ticketshub.models.coupon_redemption import CouponRedemption  # noqa: F401
from ticketshub.models.inventory_reservation import InventoryReservation  # noqa: F401
from ticketshub.models.payment import Payment  # noqa: F401
from ticketshub.models.setting import Setting
from ticketshub.models.ticket_type import TicketType
from ticketshub.services.identity import BuyerIdentity
from ticketshub.services.razorpay_client import RazorpayClient, RazorpayConfig
from ticketshub.services.settings_service import PLATFORM_FEE_KEY, TAX_RATE_KEY

EVENT_ID = "event-1"
KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"


@pytest.fixture
def session_factory(tmp_path):
    # File-backed so worker threads see the same database
    engine = make_engine(f"sqlite:///{tmp_path / 'checkout.db'}")
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    # 18% tax, 10% platform fee
    session.add(Setting(key=TAX_RATE_KEY, int_value=1800))
    session.add(Setting(key=PLATFORM_FEE_KEY, int_value=1000))
    session.commit()
    yield session
    session.close()


def add_ticket_type(db, name="GA", price=50_000, capacity=100, event_id=EVENT_ID) -> TicketType:
    tt = TicketType(id=str(uuid.uuid4()), event_id=event_id, name=name, price=price, capacity=capacity, sold=0)
    db.add(tt)
    db.commit()
    return tt


@pytest.fixture
def ga(db) -> TicketType:
    return add_ticket_type(db, "GA", 50_000, 100)


@pytest.fixture
def vip(db) -> TicketType:
    return add_ticket_type(db, "VIP", 200_000, 2)


@pytest.fixture
def gateway() -> RazorpayClient:
    return RazorpayClient(RazorpayConfig(
        key_id="rzp_test_key",
        key_secret=KEY_SECRET,
        webhook_secret=WEBHOOK_SECRET,
        sandbox=True,
    ))


@pytest.fixture
def guest() -> BuyerIdentity:
    return BuyerIdentity(guest_name="Asha Rao", guest_email="Asha@Example.com", guest_phone="+919800000000")


@pytest.fixture
def make_ticket_type(db):
    def _make(name="GA", price=50_000, capacity=100, event_id=EVENT_ID) -> TicketType:
        return add_ticket_type(db, name, price, capacity, event_id)
    return _make
