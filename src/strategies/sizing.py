"""Trade sizing from live balances, percentage caps and reserve guards."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from engine.balances import Balances
from strategies.decision import Action

LOGGER = logging.getLogger("emaband.strategy.sizing")

RESERVE_ASSETS = {"base", "quote", "none"}


@dataclass(frozen=True)
class SideSizing:
    max_pct: Decimal
    min_trade: Decimal = Decimal("0")
    max_trade: Decimal | None = None


@dataclass(frozen=True)
class SizingConfig:
    base: SideSizing
    quote: SideSizing
    reserve_asset: str = "none"
    reserve_floor: Decimal = Decimal("0")
    fee_buffer: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.reserve_asset not in RESERVE_ASSETS:
            raise ValueError(
                f"reserve_asset must be one of {sorted(RESERVE_ASSETS)}, "
                f"got: {self.reserve_asset}"
            )


def spendable_balance(
    balance: Decimal,
    *,
    reserve_floor: Decimal = Decimal("0"),
    fee_buffer: Decimal = Decimal("0"),
) -> Decimal:
    """Balance left after keeping the reserve floor and fee buffer."""
    return max(Decimal("0"), balance - reserve_floor - fee_buffer)


class SizingEngine:
    """Decide how much to sell for an actionable decision.

    Sizing depends only on balances and configuration, never on price.
    """

    def __init__(self, config: SizingConfig) -> None:
        self.config = config

    def spendable(self, action: Action, balances: Balances) -> Decimal:
        asset = "base" if action is Action.SELL_BASE else "quote"
        raw = balances.base if asset == "base" else balances.quote
        if asset == self.config.reserve_asset:
            return spendable_balance(
                raw,
                reserve_floor=self.config.reserve_floor,
                fee_buffer=self.config.fee_buffer,
            )
        return max(Decimal("0"), raw)

    def size(self, action: Action, balances: Balances) -> Decimal | None:
        if action is Action.HOLD:
            return None
        side = self.config.base if action is Action.SELL_BASE else self.config.quote
        available = self.spendable(action, balances)
        if available.is_finite() or side.max_pct > 0:
            dynamic = side.max_pct / Decimal("100") * available
        else:
            dynamic = Decimal("0")

        amount = max(dynamic, side.min_trade)
        if side.max_trade is not None and side.max_trade > 0:
            amount = min(amount, side.max_trade)
        amount = min(amount, available)

        if not amount.is_finite():
            LOGGER.warning(
                "Unbounded size for %s: configure a max trade when balances are unconstrained",
                action.value,
            )
            return None
        if amount <= 0 or amount < side.min_trade:
            LOGGER.info(
                "No viable size for %s: available=%s min_trade=%s",
                action.value,
                available,
                side.min_trade,
            )
            return None
        return amount
