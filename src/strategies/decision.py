"""Per-tick decision engine for the EMA band strategy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from strategies.ema_band import Band, bps_over, to_decimal
from strategies.position import PositionMode, PositionState

LOGGER = logging.getLogger("emaband.strategy.decision")


class Action(str, Enum):
    HOLD = "HOLD"
    SELL_BASE = "SELL_BASE"
    SELL_QUOTE = "SELL_QUOTE"

    @property
    def side(self) -> str:
        """Fill-log side: SELL gives up base, BUY acquires base."""
        if self is Action.SELL_BASE:
            return "SELL"
        if self is Action.SELL_QUOTE:
            return "BUY"
        return "HOLD"

    @property
    def opens(self) -> PositionMode:
        if self is Action.SELL_BASE:
            return PositionMode.LONG_QUOTE
        if self is Action.SELL_QUOTE:
            return PositionMode.LONG_BASE
        return PositionMode.NONE


def closing_action(mode: PositionMode) -> Action:
    if mode is PositionMode.LONG_QUOTE:
        return Action.SELL_QUOTE
    if mode is PositionMode.LONG_BASE:
        return Action.SELL_BASE
    return Action.HOLD


@dataclass(frozen=True)
class DecisionConfig:
    band_bps: Decimal
    edge_bps: Decimal
    cooldown_ms: int = 0
    decision_every_ms: int = 0
    cycle_filter: bool = False
    min_cycle_pnl_bps: Decimal = Decimal("0")
    round_trip_fee_bps: Decimal = Decimal("0")
    trail_bps: Decimal | None = None
    hard_stop_bps: Decimal | None = None


@dataclass(frozen=True)
class Decision:
    action: Action
    raw_action: Action
    reason: str
    price: Decimal
    band: Band
    excess_bps: Decimal = Decimal("0")
    forced: bool = False
    stop_reason: str | None = None

    @property
    def actionable(self) -> bool:
        return self.action is not Action.HOLD


class DecisionEngine:
    """Turn a price and band into HOLD, SELL_BASE or SELL_QUOTE.

    Order of checks: raw band signal, cadence gate, forced close from the
    trailing or hard stop, single-position rule, cooldown, cycle profit
    filter. A forced close skips everything after it.
    """

    def __init__(
        self,
        config: DecisionConfig,
        *,
        last_trade_at: int | None = None,
    ) -> None:
        self.config = config
        self.last_trade_at = last_trade_at
        self._last_bucket: int | None = None

    def raw_signal(self, price: Decimal, band: Band) -> tuple[Action, Decimal]:
        over_upper = bps_over(price, band.upper)
        under_lower = bps_over(band.lower, price)
        if price > band.upper and over_upper >= self.config.edge_bps:
            return Action.SELL_BASE, over_upper
        if price < band.lower and under_lower >= self.config.edge_bps:
            return Action.SELL_QUOTE, under_lower
        return Action.HOLD, Decimal("0")

    def is_decision_tick(self, now_ms: int) -> bool:
        """True on the first tick of each cadence bucket; consumes the bucket."""
        every = self.config.decision_every_ms
        if every <= 0:
            return True
        bucket = now_ms // every
        if bucket == self._last_bucket:
            return False
        self._last_bucket = bucket
        return True

    def cooldown_remaining_ms(self, now_ms: int) -> int:
        if self.last_trade_at is None or self.config.cooldown_ms <= 0:
            return 0
        return max(0, self.config.cooldown_ms - (now_ms - self.last_trade_at))

    def stop_trigger(self, price: Decimal, position: PositionState) -> str | None:
        if not position.is_open:
            return None
        trail = self.config.trail_bps
        if trail is not None and trail > 0:
            if position.trailing_drawdown_bps(price) >= trail:
                return "trailing_stop"
        hard = self.config.hard_stop_bps
        if hard is not None and hard > 0:
            if position.hard_stop_bps(price) >= hard:
                return "hard_stop"
        return None

    def decide(
        self,
        price: Decimal | int | str,
        band: Band,
        position: PositionState,
        now_ms: int,
    ) -> Decision:
        mid = to_decimal(price)
        raw_action, excess = self.raw_signal(mid, band)

        def hold(reason: str) -> Decision:
            return Decision(
                action=Action.HOLD,
                raw_action=raw_action,
                reason=reason,
                price=mid,
                band=band,
                excess_bps=excess,
            )

        if not self.is_decision_tick(now_ms):
            return hold("cadence")

        stop_reason = self.stop_trigger(mid, position)
        if stop_reason is not None:
            return Decision(
                action=closing_action(position.mode),
                raw_action=raw_action,
                reason="forced_close",
                price=mid,
                band=band,
                excess_bps=excess,
                forced=True,
                stop_reason=stop_reason,
            )

        if raw_action is Action.HOLD:
            return hold("in_band")

        if position.is_open and raw_action.opens is position.mode:
            return hold("same_side")

        remaining = self.cooldown_remaining_ms(now_ms)
        if remaining > 0:
            LOGGER.debug("Cooldown active, %sms remaining", remaining)
            return hold("cooldown")

        closes_position = (
            position.is_open and raw_action is closing_action(position.mode)
        )
        if closes_position and self.config.cycle_filter:
            required = self.config.min_cycle_pnl_bps + self.config.round_trip_fee_bps
            favorable = position.favorable_move_bps(mid)
            if favorable < required:
                LOGGER.debug(
                    "Cycle filter held close: favorable=%s required=%s",
                    favorable,
                    required,
                )
                return hold("cycle_filter")

        return Decision(
            action=raw_action,
            raw_action=raw_action,
            reason="signal",
            price=mid,
            band=band,
            excess_bps=excess,
        )

    def record_trade(self, now_ms: int) -> None:
        self.last_trade_at = now_ms
