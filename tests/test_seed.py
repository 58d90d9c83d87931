from ticketshub import seed
from ticketshub.models.setting import Setting
from ticketshub.models.ticket_type import TicketType
from ticketshub.services.coupon_service import get_coupon


def test_seed_is_idempotent(session_factory):
    seed.run(session_factory())
    seed.run(session_factory())

    db = session_factory()
    try:
        assert db.query(TicketType).filter_by(event_id=seed.DEMO_EVENT_ID).count() == len(seed.DEMO_TICKET_TYPES)
        assert db.get(Setting, "TAX_RATE_BPS").int_value == 1800
        assert get_coupon(db, "welcome10").max_discount == 50_000
    finally:
        db.close()
