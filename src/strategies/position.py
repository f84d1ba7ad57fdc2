"""Single-position tracking with favorable and adverse excursions."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from strategies.ema_band import BPS_SCALE, to_decimal


class PositionMode(str, Enum):
    NONE = "NONE"
    LONG_BASE = "LONG_BASE"
    LONG_QUOTE = "LONG_QUOTE"


class PositionError(RuntimeError):
    """Raised when a position transition would break the single-position rule."""


@dataclass
class PositionState:
    """At most one open directional position.

    LONG_QUOTE is opened by selling base above the band and gains as the
    price falls; LONG_BASE is opened by selling quote below the band and
    gains as the price rises. ``peak`` and ``trough`` track the extremes seen
    while the position is open.
    """

    mode: PositionMode = PositionMode.NONE
    entry_price: Decimal = Decimal("0")
    peak_price: Decimal = Decimal("0")
    trough_price: Decimal = Decimal("0")

    @property
    def is_open(self) -> bool:
        return self.mode is not PositionMode.NONE

    def open(self, mode: PositionMode, price: Decimal | int | str) -> None:
        if self.is_open:
            raise PositionError(
                f"cannot open {mode.value}: {self.mode.value} position already open"
            )
        if mode is PositionMode.NONE:
            raise PositionError("cannot open a NONE position")
        entry = to_decimal(price)
        self.mode = mode
        self.entry_price = entry
        self.peak_price = entry
        self.trough_price = entry

    def update(self, price: Decimal | int | str) -> None:
        if not self.is_open:
            return
        current = to_decimal(price)
        self.peak_price = max(self.peak_price, current)
        self.trough_price = min(self.trough_price, current)

    def close(self) -> None:
        self.mode = PositionMode.NONE
        self.entry_price = Decimal("0")
        self.peak_price = Decimal("0")
        self.trough_price = Decimal("0")

    def favorable_move_bps(self, price: Decimal | int | str) -> Decimal:
        if not self.is_open or self.entry_price <= 0:
            return Decimal("0")
        current = to_decimal(price)
        if self.mode is PositionMode.LONG_BASE:
            return (current - self.entry_price) / self.entry_price * BPS_SCALE
        return (self.entry_price - current) / self.entry_price * BPS_SCALE

    def trailing_drawdown_bps(self, price: Decimal | int | str) -> Decimal:
        """Giveback from the best price reached while the position was open."""
        if not self.is_open:
            return Decimal("0")
        current = to_decimal(price)
        if self.mode is PositionMode.LONG_BASE:
            if self.peak_price <= 0:
                return Decimal("0")
            return (self.peak_price - current) / self.peak_price * BPS_SCALE
        if self.trough_price <= 0:
            return Decimal("0")
        return (current - self.trough_price) / self.trough_price * BPS_SCALE

    def hard_stop_bps(self, price: Decimal | int | str) -> Decimal:
        """Adverse move from entry, regardless of any favorable excursion."""
        return -self.favorable_move_bps(price)

    def to_payload(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "entry_price": str(self.entry_price),
            "peak_price": str(self.peak_price),
            "trough_price": str(self.trough_price),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "PositionState":
        if not payload:
            return cls()
        return cls(
            mode=PositionMode(payload.get("mode", PositionMode.NONE.value)),
            entry_price=Decimal(str(payload.get("entry_price", "0"))),
            peak_price=Decimal(str(payload.get("peak_price", "0"))),
            trough_price=Decimal(str(payload.get("trough_price", "0"))),
        )
