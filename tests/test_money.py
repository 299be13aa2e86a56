"""Tests for money helpers and the Money value object."""
import pytest
from decimal import Decimal

from django_booking_totals.money import (
    CurrencyMismatchError,
    Money,
    round_amount,
    to_decimal,
)


class TestToDecimal:
    def test_none_is_zero(self):
        assert to_decimal(None) == Decimal("0")

    def test_float_goes_through_str(self):
        assert to_decimal(19.99) == Decimal("19.99")


class TestRoundAmount:
    """Test suite for currency-aware half-up rounding."""

    def test_vnd_rounds_to_whole_dong(self):
        assert round_amount(Decimal("12345.5"), "VND") == Decimal("12346")

    def test_vnd_rounds_half_up_not_bankers(self):
        assert round_amount(Decimal("2.5"), "VND") == Decimal("3")

    def test_usd_rounds_to_cents(self):
        assert round_amount(Decimal("10.005"), "USD") == Decimal("10.01")

    def test_unknown_currency_uses_two_decimals(self):
        assert round_amount(Decimal("1.234"), "XYZ") == Decimal("1.23")


class TestMoney:
    """Test suite for Money arithmetic."""

    def test_amount_is_normalized_to_decimal(self):
        assert Money(100, "VND").amount == Decimal("100")

    def test_money_is_frozen(self):
        money = Money(Decimal("100"), "VND")
        with pytest.raises(AttributeError):
            money.amount = Decimal("200")

    def test_add_same_currency(self):
        assert Money(100, "VND") + Money(50, "VND") == Money(150, "VND")

    def test_add_different_currency_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money(100, "VND") + Money(1, "USD")

    def test_subtract_different_currency_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money(100, "VND") - Money(1, "USD")

    def test_multiply_and_quantize(self):
        tax = (Money(Decimal("2100000"), "VND") * Decimal("0.1")).quantized()
        assert tax == Money(Decimal("210000"), "VND")

    def test_rmul(self):
        assert 2 * Money(150000, "VND") == Money(300000, "VND")

    def test_floored_at_zero(self):
        assert (Money(100, "VND") - Money(300, "VND")).floored_at_zero().is_zero()
        assert Money(5, "VND").floored_at_zero() == Money(5, "VND")
