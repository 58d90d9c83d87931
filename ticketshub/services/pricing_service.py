"""Price a ticket selection into a tax-inclusive breakdown.

Amounts are integer paise. Rates are basis points (1800 = 18%). Each tax/fee
component is rounded on its own, half-up to the nearest paisa; receipts are
rendered from these persisted numbers, so the policy must not change.
"""
from dataclasses import dataclass, asdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketshub.core.errors import InvalidSelection
from ticketshub.models.ticket_type import TicketType

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate_bps: int = 1800
    platform_fee_bps: int = 500


@dataclass(frozen=True)
class PriceLine:
    ticket_type_id: str
    quantity: int
    unit_price: int
    name: str = ""

    @property
    def total(self) -> int:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: int
    ticket_tax: int
    platform_fee: int
    platform_fee_tax: int
    discount: int
    grand_total: int

    def to_dict(self) -> dict:
        return asdict(self)


def apply_bps(amount: int, bps: int) -> int:
    """amount * bps / 10000, rounded half-up. Integer-only so client and server agree."""
    return (amount * bps * 2 + BPS_DENOMINATOR) // (BPS_DENOMINATOR * 2)


def price_lines(lines: list[PriceLine], policy: PricingPolicy, discount: int = 0) -> PriceBreakdown:
    if not lines:
        raise InvalidSelection("Select at least one ticket")
    for line in lines:
        if line.quantity <= 0:
            raise InvalidSelection(f"Quantity for {line.ticket_type_id} must be at least 1")
        if line.unit_price < 0:
            raise InvalidSelection(f"Price for {line.ticket_type_id} cannot be negative")

    subtotal = sum(line.total for line in lines)
    ticket_tax = apply_bps(subtotal, policy.tax_rate_bps)
    platform_fee = apply_bps(subtotal, policy.platform_fee_bps)
    platform_fee_tax = apply_bps(platform_fee, policy.tax_rate_bps)
    # Discount only ever reduces the ticket subtotal, never tax or fee lines.
    discount = max(0, min(int(discount or 0), subtotal))

    return PriceBreakdown(
        subtotal=subtotal,
        ticket_tax=ticket_tax,
        platform_fee=platform_fee,
        platform_fee_tax=platform_fee_tax,
        discount=discount,
        grand_total=subtotal + ticket_tax + platform_fee + platform_fee_tax - discount,
    )


def load_lines(db: Session, event_id: str, selection: dict[str, int]) -> list[PriceLine]:
    """Resolve {ticket_type_id: quantity} against the catalogue, in selection order."""
    if not selection:
        raise InvalidSelection("Select at least one ticket")
    for ticket_type_id, quantity in selection.items():
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise InvalidSelection(f"Quantity for {ticket_type_id} must be at least 1")

    rows = db.execute(
        select(TicketType).where(TicketType.id.in_(list(selection.keys())))
    ).scalars().all()
    by_id = {t.id: t for t in rows}

    lines = []
    for ticket_type_id, quantity in selection.items():
        tt = by_id.get(ticket_type_id)
        if not tt or tt.event_id != event_id:
            raise InvalidSelection(f"Unknown ticket type {ticket_type_id}")
        lines.append(PriceLine(ticket_type_id=tt.id, quantity=quantity, unit_price=tt.price, name=tt.name))
    return lines
