"""Tests for the pricing engine: breakdown arithmetic, rounding and selection validation."""

import pytest

from ticketshub.core.errors import InvalidSelection
from ticketshub.models.setting import Setting
from ticketshub.services.checkout_service import price_selection
from ticketshub.services.pricing_service import PriceLine, PricingPolicy, apply_bps, load_lines, price_lines
from ticketshub.services.settings_service import PLATFORM_FEE_KEY, get_pricing_policy

POLICY = PricingPolicy(tax_rate_bps=1800, platform_fee_bps=1000)


class TestPriceLines:
    """Tests for price_lines."""

    def test_two_general_admission_tickets(self):
        """2 x Rs 500 at 18% tax and a 10% fee is Rs 1298."""
        b = price_lines([PriceLine("ga", 2, 50_000)], POLICY)
        assert (b.subtotal, b.ticket_tax, b.platform_fee, b.platform_fee_tax, b.discount) == (100_000, 18_000, 10_000, 1_800, 0)
        assert b.grand_total == 129_800

    def test_fixed_discount_reduces_grand_total(self):
        b = price_lines([PriceLine("ga", 2, 50_000)], POLICY, discount=20_000)
        assert b.discount == 20_000
        assert b.grand_total == 109_800

    def test_discount_clamped_to_subtotal(self):
        b = price_lines([PriceLine("ga", 1, 1_000)], POLICY, discount=5_000)
        assert b.discount == 1_000
        assert b.grand_total == b.ticket_tax + b.platform_fee + b.platform_fee_tax
        assert b.grand_total >= 0

    @pytest.mark.parametrize("lines", [
        [PriceLine("a", 1, 999)],
        [PriceLine("a", 3, 333), PriceLine("b", 1, 1)],
        [PriceLine("a", 7, 12_345)],
    ])
    def test_grand_total_invariant(self, lines):
        b = price_lines(lines, POLICY, discount=100)
        assert b.grand_total == b.subtotal + b.ticket_tax + b.platform_fee + b.platform_fee_tax - b.discount
        assert min(b.to_dict().values()) >= 0

    def test_each_component_rounds_half_up(self):
        """Rs 0.25 at 18% is 4.5 paise: rounds to 5, independent of the other lines."""
        assert apply_bps(25, 1800) == 5
        assert apply_bps(24, 1800) == 4
        b = price_lines([PriceLine("a", 1, 25)], POLICY)
        assert b.ticket_tax == 5
        assert b.platform_fee == 3  # 2.5 -> 3
        assert b.platform_fee_tax == 1  # 0.54 -> 1

    def test_empty_selection_rejected(self):
        with pytest.raises(InvalidSelection):
            price_lines([], POLICY)

    def test_non_positive_quantity_rejected(self):
        with pytest.raises(InvalidSelection):
            price_lines([PriceLine("a", 0, 100)], POLICY)


class TestLoadLines:
    """Tests for resolving a selection against the catalogue."""

    def test_resolves_prices_from_catalogue(self, db, ga, vip):
        lines = load_lines(db, ga.event_id, {ga.id: 2, vip.id: 1})
        assert [(l.ticket_type_id, l.quantity, l.unit_price) for l in lines] == [(ga.id, 2, 50_000), (vip.id, 1, 200_000)]

    def test_unknown_ticket_type(self, db, ga):
        with pytest.raises(InvalidSelection):
            load_lines(db, ga.event_id, {"missing": 1})

    def test_ticket_type_of_other_event(self, db, make_ticket_type):
        other = make_ticket_type("Other", 10_000, 10, event_id="event-2")
        with pytest.raises(InvalidSelection):
            load_lines(db, "event-1", {other.id: 1})

    @pytest.mark.parametrize("qty", [0, -1, 1.5, True])
    def test_bad_quantities(self, db, ga, qty):
        with pytest.raises(InvalidSelection):
            load_lines(db, ga.event_id, {ga.id: qty})


class TestPricingPolicy:
    """Rates come from the settings table, then configuration."""

    def test_settings_table_overrides(self, db):
        assert get_pricing_policy(db) == POLICY

    def test_falls_back_to_config(self, db):
        db.delete(db.get(Setting, PLATFORM_FEE_KEY))
        db.commit()
        assert get_pricing_policy(db).platform_fee_bps == 500

    def test_price_selection_without_coupon(self, db, ga):
        priced = price_selection(db, ga.event_id, {ga.id: 2})
        assert priced.coupon is None
        assert priced.breakdown.grand_total == 129_800
