"""
Tests for fee arithmetic.
"""

from decimal import Decimal

import pytest
from django.test import override_settings

from settlement.exceptions import PaymentValidationError
from settlement.fees import (
    compute_fee_split,
    get_default_fee_percent,
    to_minor_units,
    validate_fee_percent,
)


class TestToMinorUnits:
    """Tests for major -> minor unit conversion."""

    @pytest.mark.parametrize(
        "amount,expected",
        [
            (Decimal("100.00"), 10000),
            ("12.345", 1235),
            ("0.01", 1),
            (7, 700),
        ],
    )
    def test_converts_and_rounds_half_up(self, amount, expected):
        assert to_minor_units(amount) == expected

    def test_rejects_garbage(self):
        with pytest.raises(PaymentValidationError):
            to_minor_units("ten dollars")


class TestComputeFeeSplit:
    """Tests for compute_fee_split."""

    def test_default_platform_fee(self):
        """Should apply the 7.9% platform default."""
        split = compute_fee_split(10000)

        assert split.platform_fee_cents == 790
        assert split.merchant_amount_cents == 9210
        assert split.fee_percent == Decimal("7.9")

    def test_fee_rounds_half_up(self):
        """1234 * 7.9% = 97.486 rounds to 97."""
        split = compute_fee_split(1234, Decimal("7.9"))

        assert split.platform_fee_cents == 97
        assert split.merchant_amount_cents == 1137

    def test_exact_half_rounds_up(self):
        """50 * 5% = 2.5 rounds to 3."""
        assert compute_fee_split(50, 5).platform_fee_cents == 3

    @pytest.mark.parametrize("amount", [1, 99, 10001, 123457])
    def test_parts_always_sum_to_total(self, amount):
        split = compute_fee_split(amount, "12.5")

        assert split.platform_fee_cents + split.merchant_amount_cents == amount

    def test_zero_fee_passes_everything_through(self):
        split = compute_fee_split(5000, 0)

        assert split.platform_fee_cents == 0
        assert split.merchant_amount_cents == 5000

    @pytest.mark.parametrize("amount", [0, -100])
    def test_rejects_non_positive_amount(self, amount):
        with pytest.raises(PaymentValidationError):
            compute_fee_split(amount)


class TestValidateFeePercent:
    """Tests for fee percentage validation."""

    def test_none_uses_default(self):
        assert validate_fee_percent(None) == get_default_fee_percent()

    @override_settings(PLATFORM_FEE_PERCENT=Decimal("5"))
    def test_default_follows_settings(self):
        assert compute_fee_split(10000).platform_fee_cents == 500

    @pytest.mark.parametrize("value", ["-1", "30.01", "abc"])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(PaymentValidationError):
            validate_fee_percent(value)

    def test_accepts_upper_bound(self):
        assert validate_fee_percent(30) == Decimal("30")
