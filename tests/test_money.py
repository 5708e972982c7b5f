"""Tests for money conversion and the commission split."""

from decimal import Decimal

import pytest

from utils.money import from_cents, round2, split_commission, to_cents


class TestConversion:
    def test_to_cents_from_strings_and_floats(self):
        assert to_cents("200.00") == 20000
        assert to_cents(0.1) == 10
        assert to_cents(Decimal("49.995")) == 5000

    def test_round_half_up(self):
        assert round2("0.125") == Decimal("0.13")
        assert round2("0.124") == Decimal("0.12")

    def test_from_cents(self):
        assert from_cents(19600) == 196.0
        assert from_cents(None) == 0.0


class TestCommissionSplit:
    def test_two_percent_of_two_hundred(self):
        assert split_commission(10000, 2) == (20000, 400, 19600)

    def test_two_percent_of_fifty(self):
        assert split_commission(5000, 1) == (5000, 100, 4900)

    @pytest.mark.parametrize("price_cents,qty", [(1, 1), (33, 3), (1999, 7), (12345, 11)])
    def test_parts_add_back_to_total(self, price_cents, qty):
        total, commission, earning = split_commission(price_cents, qty)
        assert total == price_cents * qty
        assert commission + earning == total
        assert commission == int((Decimal(total) * Decimal("0.02")).quantize(Decimal("1"), rounding="ROUND_HALF_UP"))

    def test_commission_rounds_half_up(self):
        # 2% of 0.25 is half a cent
        assert split_commission(25, 1) == (25, 1, 24)
