"""Decimal amount helpers that never round up."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal


def floor_to_dp(amount: Decimal | int | str, dp: int) -> Decimal:
    """Truncate ``amount`` toward zero at ``dp`` decimal places."""
    value = Decimal(str(amount))
    if dp < 0:
        raise ValueError("dp must be non-negative")
    return value.quantize(Decimal(1).scaleb(-dp), rounding=ROUND_DOWN)


def to_units_floor(amount: Decimal | int | str, dp: int) -> int:
    """Convert a human amount to integer smallest units, truncating."""
    return int(floor_to_dp(amount, dp).scaleb(dp))


def is_zero_or_negative(amount: Decimal | int | str, dp: int) -> bool:
    return to_units_floor(amount, dp) <= 0
