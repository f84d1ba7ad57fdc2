"""Simulated wallet and executor for replays."""

from __future__ import annotations

import logging
from decimal import Decimal

from engine.balances import Balances
from engine.errors import ExecutionFailed
from engine.exchange_client import ExecutionResult, SwapQuote
from strategies.decision import Action
from strategies.ema_band import BPS_SCALE

LOGGER = logging.getLogger("emaband.backtest.simulator")


class SimulatedWallet:
    """Base and quote holdings; only :meth:`apply` mutates them."""

    def __init__(self, base: Decimal, quote: Decimal) -> None:
        self.base = base
        self.quote = quote

    def get_balances(self) -> Balances:
        return Balances(base=self.base, quote=self.quote)

    def apply(self, action: Action, amount_in: Decimal, amount_out: Decimal) -> None:
        if action is Action.SELL_BASE:
            if amount_in > self.base:
                raise ExecutionFailed(f"insufficient base: {self.base} < {amount_in}")
            self.base -= amount_in
            self.quote += amount_out
        elif action is Action.SELL_QUOTE:
            if amount_in > self.quote:
                raise ExecutionFailed(f"insufficient quote: {self.quote} < {amount_in}")
            self.quote -= amount_in
            self.base += amount_out
        else:
            raise ValueError("HOLD cannot be applied")


class SimulatedExecutor:
    """Fill at the current mid less pool and aggregator fees.

    Output is ``raw * (1 - (pool_fee_bps + agg_fee_bps) / 10000)``; the
    aggregator fee is also reported as ``fee_pct`` so the fee cap applies.
    """

    def __init__(
        self,
        wallet: SimulatedWallet,
        *,
        pool_fee_bps: Decimal = Decimal("30"),
        agg_fee_bps: Decimal = Decimal("0"),
        slippage_pct: Decimal = Decimal("0"),
    ) -> None:
        self.wallet = wallet
        self.pool_fee_bps = pool_fee_bps
        self.agg_fee_bps = agg_fee_bps
        self.slippage_pct = slippage_pct
        self.price: Decimal | None = None

    @property
    def total_fee_bps(self) -> Decimal:
        return self.pool_fee_bps + self.agg_fee_bps

    def mark(self, price: Decimal) -> None:
        self.price = price

    def quote(self, action: Action, amount: Decimal) -> SwapQuote:
        if self.price is None or self.price <= 0:
            raise ExecutionFailed("simulated executor has no price")
        if action is Action.SELL_BASE:
            raw_out = amount * self.price
            token_in, token_out = "base", "quote"
        elif action is Action.SELL_QUOTE:
            raw_out = amount / self.price
            token_in, token_out = "quote", "base"
        else:
            raise ValueError("HOLD cannot be quoted")
        amount_out = raw_out * (Decimal("1") - self.total_fee_bps / BPS_SCALE)
        return SwapQuote(
            action=action,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount,
            amount_out=amount_out,
            min_amount_out=amount_out,
            fee_pct=self.agg_fee_bps / Decimal("100"),
            slippage_pct=self.slippage_pct,
        )

    def execute(self, quote: SwapQuote) -> ExecutionResult:
        self.wallet.apply(quote.action, quote.amount_in, quote.min_amount_out)
        return ExecutionResult(amount_in=quote.amount_in, amount_out=quote.min_amount_out)
