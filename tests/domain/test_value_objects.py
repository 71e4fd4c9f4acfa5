"""Unit tests for domain value objects."""

from decimal import Decimal

import pytest

from fulfillment.domain.exceptions import ValidationError
from fulfillment.domain.model.value_objects import (
    GeoPoint,
    Money,
    PaymentChannel,
    Quantity,
    ShippingAddress,
)


# ── Money ────────────────────────────────────────────────────────────────────


class TestMoney:

    def test_creation_defaults_to_shillings(self):
        m = Money(Decimal("10000"))
        assert m.amount == Decimal("10000")
        assert m.currency == "UGX"

    def test_of_factory_from_string(self):
        assert Money.of("2500").amount == Decimal("2500")

    def test_of_factory_rejects_garbage(self):
        with pytest.raises(ValidationError, match="Invalid money amount"):
            Money.of("ten thousand")

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            Money(Decimal("-1"))

    def test_float_amount_rejected(self):
        with pytest.raises(ValidationError, match="must be a Decimal"):
            Money(10.5)

    def test_addition_and_subtraction(self):
        assert Money.of("10000") + Money.of("500") == Money.of("10500")
        assert Money.of("10000") - Money.of("400") == Money.of("9600")

    def test_subtraction_going_negative_rejected(self):
        with pytest.raises(ValidationError, match="negative amount"):
            Money.of("5") - Money.of("10")

    def test_currency_mismatch_rejected(self):
        with pytest.raises(ValidationError, match="Cannot combine"):
            Money(Decimal("10"), "UGX") + Money(Decimal("5"), "KES")

    def test_percentage_rounds_half_up(self):
        assert Money.of("1250").percentage(3) == Money.of("38")  # 37.5
        assert Money.of("1249").percentage(3) == Money.of("37")  # 37.47

    def test_str_formatting(self):
        assert str(Money.of("10000")) == "UGX 10,000"

    def test_comparison_operators(self):
        assert Money.of("5") < Money.of("10")
        assert Money.of("10") >= Money.of("10")


# ── Quantity ─────────────────────────────────────────────────────────────────


class TestQuantity:

    def test_valid_quantity(self):
        assert Quantity(5).value == 5

    def test_zero_rejected(self):
        with pytest.raises(ValidationError, match="must be positive"):
            Quantity(0)

    def test_bool_rejected(self):
        with pytest.raises(ValidationError, match="must be an integer"):
            Quantity(True)


# ── Addresses and channels ───────────────────────────────────────────────────


class TestShippingAddress:

    def test_missing_city_rejected(self):
        with pytest.raises(ValidationError, match="city is required"):
            ShippingAddress("Amina", "Plot 12", "  ", "Uganda", "+256700000001")

    def test_coordinates_must_be_in_range(self):
        with pytest.raises(ValidationError, match="Latitude out of range"):
            GeoPoint(32.58, 95.0)


class TestPaymentChannel:

    def test_parse_is_case_insensitive(self):
        assert PaymentChannel.parse(" Mobile_Money ") is PaymentChannel.MOBILE_MONEY

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValidationError, match="Unknown payment channel"):
            PaymentChannel.parse("barter")
