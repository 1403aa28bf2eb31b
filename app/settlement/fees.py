"""
Fee arithmetic for split payments and payouts.

All amounts are integer minor units (cents). The platform fee is rounded
half-up and the merchant share is whatever remains, so the two always add
back to the total.

Usage:
    from settlement.fees import compute_fee_split, to_minor_units

    split = compute_fee_split(to_minor_units(order.total_amount), Decimal("7.9"))
    split.platform_fee_cents     # 790 for a 10000 total
    split.merchant_amount_cents  # 9210
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

from settlement.exceptions import PaymentValidationError

CENT = Decimal("0.01")
ONE = Decimal("1")


@dataclass(frozen=True)
class FeeSplit:
    """Result of splitting a total between platform and merchant."""

    total_cents: int
    platform_fee_cents: int
    merchant_amount_cents: int
    fee_percent: Decimal


def to_minor_units(amount: Decimal | str | int) -> int:
    """
    Convert a major-unit decimal amount to integer minor units.

    Rounds half-up at two places first, so "12.345" becomes 1235.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise PaymentValidationError(
            "Amount is not a valid decimal",
            details={"amount": str(amount)},
        )
    return int((value.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def get_default_fee_percent() -> Decimal:
    """Platform-wide fee percentage from settings.PLATFORM_FEE_PERCENT."""
    return Decimal(str(settings.PLATFORM_FEE_PERCENT))


def validate_fee_percent(fee_percent: Decimal | str | int | float | None) -> Decimal:
    """
    Normalize a caller-supplied fee percentage.

    None falls back to the platform default. Values outside
    [0, SETTLEMENT_MAX_FEE_PERCENT] raise PaymentValidationError.
    """
    if fee_percent is None:
        return get_default_fee_percent()

    try:
        pct = Decimal(str(fee_percent))
    except InvalidOperation:
        raise PaymentValidationError(
            "Fee percentage is not a valid number",
            details={"fee_percent": str(fee_percent)},
        )

    max_pct = Decimal(str(settings.SETTLEMENT_MAX_FEE_PERCENT))
    if pct < 0 or pct > max_pct:
        raise PaymentValidationError(
            f"Fee percentage must be between 0 and {max_pct}",
            details={"fee_percent": str(pct), "max_fee_percent": str(max_pct)},
        )
    return pct


def compute_fee_split(
    amount_cents: int,
    fee_percent: Decimal | str | int | float | None = None,
) -> FeeSplit:
    """
    Split a total into platform fee and merchant amount.

    Args:
        amount_cents: Total in minor units, must be positive
        fee_percent: Platform fee percentage, defaults to PLATFORM_FEE_PERCENT

    Returns:
        FeeSplit with platform_fee + merchant_amount == total

    Raises:
        PaymentValidationError: Non-positive amount or out-of-range fee
    """
    if amount_cents <= 0:
        raise PaymentValidationError(
            "Amount must be positive",
            details={"amount_cents": amount_cents},
        )

    pct = validate_fee_percent(fee_percent)
    fee = int(
        (Decimal(amount_cents) * pct / Decimal(100)).quantize(ONE, rounding=ROUND_HALF_UP)
    )

    return FeeSplit(
        total_cents=amount_cents,
        platform_fee_cents=fee,
        merchant_amount_cents=amount_cents - fee,
        fee_percent=pct,
    )


__all__ = [
    "FeeSplit",
    "compute_fee_split",
    "get_default_fee_percent",
    "to_minor_units",
    "validate_fee_percent",
]
