"""EMA band helpers: moving-average center, symmetric band, bps distances."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

BPS_SCALE = Decimal("10000")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def next_ema(
    prev: Decimal | None,
    price: Decimal | int | str,
    alpha: Decimal | int | str,
) -> Decimal:
    """Return the next EMA value, seeding with ``price`` when ``prev`` is unset."""
    current = to_decimal(price)
    if prev is None or prev.is_nan():
        return current
    weight = to_decimal(alpha)
    return weight * current + (Decimal("1") - weight) * prev


def bps_over(value: Decimal, reference: Decimal) -> Decimal:
    """Signed distance of ``value`` above ``reference`` in basis points."""
    if reference == 0:
        raise ValueError("reference must be non-zero")
    return (value - reference) / reference * BPS_SCALE


@dataclass(frozen=True)
class Band:
    lower: Decimal
    center: Decimal
    upper: Decimal


def band_from_center(center: Decimal, band_bps: Decimal | int | str) -> Band:
    """Symmetric band whose half-width is ``band_bps`` of the center."""
    width_bps = to_decimal(band_bps)
    if width_bps < 0:
        raise ValueError("band_bps must be non-negative")
    half_width = center * width_bps / BPS_SCALE
    return Band(lower=center - half_width, center=center, upper=center + half_width)


class BandTracker:
    """Maintain the EMA center for one pair."""

    def __init__(
        self,
        alpha: Decimal | int | str,
        center: Decimal | None = None,
    ) -> None:
        weight = to_decimal(alpha)
        if not (Decimal("0") <= weight <= Decimal("1")):
            raise ValueError(f"alpha must be within [0, 1], got: {weight}")
        self.alpha = weight
        self._center = center

    @property
    def center(self) -> Decimal | None:
        return self._center

    @property
    def initialized(self) -> bool:
        return self._center is not None

    def update(self, price: Decimal | int | str) -> Decimal:
        current = to_decimal(price)
        if current <= 0:
            raise ValueError(f"price must be positive, got: {current}")
        self._center = next_ema(self._center, current, self.alpha)
        return self._center

    def bounds(self, band_bps: Decimal | int | str) -> Band:
        if self._center is None:
            raise ValueError("band center is not initialized")
        return band_from_center(self._center, band_bps)


def describe() -> str:
    return "EMA band mean-reversion strategy: sell strength above the band, buy weakness below it."
