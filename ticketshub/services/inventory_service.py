"""Inventory ledger: reserve / commit / release against per-ticket-type counters.

`reserve` is one conditional UPDATE, so two buyers can never both pass the
capacity check for the last seat. Nothing here commits the session; the
caller's transaction decides whether holds become permanent.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ticketshub.core.config import settings
from ticketshub.core.errors import InvalidSelection, Oversold, InvalidTransition
from ticketshub.models.inventory_reservation import InventoryReservation, HELD, COMMITTED, RELEASED
from ticketshub.models.ticket_type import TicketType

logger = logging.getLogger(__name__)


def reserve(db: Session, ticket_type_id: str, quantity: int, payment_id: str | None = None) -> InventoryReservation:
    if quantity <= 0:
        raise InvalidSelection(f"Quantity for {ticket_type_id} must be at least 1")

    # Compare-and-swap: the WHERE clause is the capacity check.
    result = db.execute(
        update(TicketType)
        .where(TicketType.id == ticket_type_id, TicketType.sold + quantity <= TicketType.capacity)
        .values(sold=TicketType.sold + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        tt = db.get(TicketType, ticket_type_id)
        if not tt:
            raise InvalidSelection(f"Unknown ticket type {ticket_type_id}")
        logger.info("oversold: ticket_type=%s requested=%s", ticket_type_id, quantity)
        raise Oversold(ticket_type_id, tt.name)

    token = InventoryReservation(
        id=str(uuid.uuid4()),
        ticket_type_id=ticket_type_id,
        quantity=quantity,
        status=HELD,
        payment_id=payment_id,
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=settings.RESERVATION_TTL_MINUTES),
    )
    db.add(token)
    db.flush()
    return token


def commit(db: Session, token: InventoryReservation, booking_id: str | None = None) -> InventoryReservation:
    result = db.execute(
        update(InventoryReservation)
        .where(InventoryReservation.id == token.id, InventoryReservation.status == HELD)
        .values(status=COMMITTED, booking_id=booking_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidTransition(f"Reservation {token.id} is not held")
    db.refresh(token)
    return token


def release(db: Session, token: InventoryReservation) -> InventoryReservation:
    """Give a held reservation back. A token is released at most once."""
    result = db.execute(
        update(InventoryReservation)
        .where(InventoryReservation.id == token.id, InventoryReservation.status == HELD)
        .values(status=RELEASED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidTransition(f"Reservation {token.id} is not held")
    db.execute(
        update(TicketType)
        .where(TicketType.id == token.ticket_type_id)
        .values(sold=TicketType.sold - token.quantity)
        .execution_options(synchronize_session=False)
    )
    db.refresh(token)
    return token


def available(db: Session, ticket_type_id: str) -> int:
    """Remaining capacity for display. Not a guarantee; only `reserve` decides."""
    row = db.execute(
        select(TicketType.capacity - TicketType.sold).where(TicketType.id == ticket_type_id)
    ).scalar_one_or_none()
    if row is None:
        raise InvalidSelection(f"Unknown ticket type {ticket_type_id}")
    return int(row)
