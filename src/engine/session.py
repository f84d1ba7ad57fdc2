"""Per-pair trading session: one context object owning all mutable state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from engine.candles import CandleRoller
from engine.errors import GuardRejection, InvariantViolation
from engine.exchange_client import (
    BalanceService,
    ExecutionAdapter,
    ExecutionResult,
    SwapQuote,
)
from engine.ledger import FillRecord, Ledger
from engine.risk_guard import RiskGuard
from engine.state import SessionState
from strategies.decision import (
    Action,
    Decision,
    DecisionConfig,
    DecisionEngine,
    closing_action,
)
from strategies.ema_band import BandTracker, to_decimal
from strategies.position import PositionError, PositionMode
from strategies.sizing import SizingConfig, SizingEngine

LOGGER = logging.getLogger("emaband.engine.session")


@dataclass(frozen=True)
class SessionConfig:
    alpha: Decimal
    decision: DecisionConfig
    sizing: SizingConfig
    candle_ms: int = 0


@dataclass(frozen=True)
class TickOutcome:
    """What happened on one tick.

    ``status`` is one of: warming, hold, no_size, guarded, invariant, filled.
    """

    timestamp: int
    price: Decimal
    status: str
    decision: Decision | None = None
    amount: Decimal | None = None
    quote: SwapQuote | None = None
    result: ExecutionResult | None = None
    fill: FillRecord | None = None
    detail: str = ""


class TradingSession:
    """Run price ticks through band, decision, sizing, guard and execution.

    Transient collaborator errors (quotes, balances, submission) propagate
    to the caller; guard rejections and invariant violations become holds.
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        executor: ExecutionAdapter,
        balances: BalanceService,
        risk_guard: RiskGuard,
        ledger: Ledger,
        state: SessionState | None = None,
    ) -> None:
        self.config = config
        self.executor = executor
        self.balance_service = balances
        self.risk_guard = risk_guard
        self.ledger = ledger
        restored = state or SessionState()
        self.tracker = BandTracker(config.alpha, center=restored.center)
        self.position = restored.position
        self.engine = DecisionEngine(
            config.decision, last_trade_at=restored.last_trade_at
        )
        self.roller = CandleRoller(config.candle_ms) if config.candle_ms > 0 else None
        self.ticks = 0
        self.fill_count = 0

    @property
    def center(self) -> Decimal | None:
        return self.tracker.center

    def snapshot(self) -> SessionState:
        return SessionState(
            center=self.tracker.center,
            position=self.position,
            last_trade_at=self.engine.last_trade_at,
        )

    def _observe(self, timestamp: int, mid: Decimal) -> Decimal | None:
        """Update the center; return the price decisions evaluate at."""
        if self.roller is None:
            self.tracker.update(mid)
            return mid
        for closed in self.roller.push(timestamp, mid):
            self.tracker.update(closed.close)
            LOGGER.info(
                "Candle closed ts=%s o=%s h=%s l=%s c=%s center=%s",
                closed.ts,
                closed.open,
                closed.high,
                closed.low,
                closed.close,
                self.tracker.center,
            )
        last = self.roller.last_closed
        return last.close if last is not None else None

    def on_price(self, timestamp: int, price: Decimal | int | str) -> TickOutcome:
        mid = to_decimal(price)
        if mid <= 0:
            raise ValueError(f"price must be positive, got: {mid}")
        self.ticks += 1
        decision_price = self._observe(timestamp, mid)
        if decision_price is None or not self.tracker.initialized:
            return TickOutcome(timestamp=timestamp, price=mid, status="warming")

        band = self.tracker.bounds(self.config.decision.band_bps)
        self.position.update(decision_price)
        decision = self.engine.decide(decision_price, band, self.position, timestamp)

        if not decision.actionable:
            self.ledger.record_tick(timestamp, decision, "hold")
            return TickOutcome(
                timestamp=timestamp,
                price=mid,
                status="hold",
                decision=decision,
                detail=decision.reason,
            )

        try:
            self._check_transition(decision.action)
        except InvariantViolation as exc:
            LOGGER.error("Invariant violation, holding: %s", exc)
            self.ledger.record_tick(timestamp, decision, "invariant")
            return TickOutcome(
                timestamp=timestamp,
                price=mid,
                status="invariant",
                decision=decision,
                detail=str(exc),
            )

        LOGGER.info(
            "Decision %s at %s (band [%s, %s], excess %s bps, reason %s)",
            decision.action.value,
            decision.price,
            band.lower,
            band.upper,
            decision.excess_bps,
            decision.stop_reason or decision.reason,
        )

        balances = self.balance_service.get_balances()
        amount = SizingEngine(self.config.sizing).size(decision.action, balances)
        if amount is None:
            self.ledger.record_tick(timestamp, decision, "no_size")
            return TickOutcome(
                timestamp=timestamp,
                price=mid,
                status="no_size",
                decision=decision,
            )
        if amount < 0:
            LOGGER.error("Negative size %s for %s, holding", amount, decision.action.value)
            self.ledger.record_tick(timestamp, decision, "invariant")
            return TickOutcome(
                timestamp=timestamp, price=mid, status="invariant", decision=decision
            )

        quote = self.executor.quote(decision.action, amount)
        try:
            self.risk_guard.validate(quote)
        except GuardRejection as exc:
            LOGGER.info("Guarded %s: %s", decision.action.value, exc)
            self.ledger.record_tick(timestamp, decision, "guarded")
            return TickOutcome(
                timestamp=timestamp,
                price=mid,
                status="guarded",
                decision=decision,
                amount=amount,
                quote=quote,
                detail=exc.reason,
            )

        result = self.executor.execute(quote)
        self._apply_fill(decision.action, decision_price)
        self.engine.record_trade(timestamp)
        fill = self.ledger.record_fill(
            timestamp,
            decision,
            result.amount_in,
            result.amount_out,
            tx_id=result.tx_id,
        )
        self.ledger.record_tick(timestamp, decision, "filled")
        self.fill_count += 1
        return TickOutcome(
            timestamp=timestamp,
            price=mid,
            status="filled",
            decision=decision,
            amount=amount,
            quote=quote,
            result=result,
            fill=fill,
        )

    def _check_transition(self, action: Action) -> None:
        if self.position.is_open and action is not closing_action(self.position.mode):
            raise InvariantViolation(
                f"{action.value} would add to open {self.position.mode.value} position"
            )

    def _apply_fill(self, action: Action, price: Decimal) -> None:
        try:
            if self.position.mode is PositionMode.NONE:
                self.position.open(action.opens, price)
            else:
                self.position.close()
        except PositionError as exc:
            raise InvariantViolation(str(exc)) from exc
