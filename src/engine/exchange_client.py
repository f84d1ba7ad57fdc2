"""Collaborator interfaces the trading session depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Protocol

from engine.balances import Balances
from strategies.decision import Action


@dataclass(frozen=True)
class SwapQuote:
    action: Action
    token_in: str
    token_out: str
    amount_in: Decimal
    amount_out: Decimal
    min_amount_out: Decimal
    fee_pct: Decimal
    slippage_pct: Decimal
    raw: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutionResult:
    amount_in: Decimal
    amount_out: Decimal
    tx_id: str | None = None
    confirmed: bool | None = None

    @property
    def simulated(self) -> bool:
        return self.tx_id is None


class PriceSource(Protocol):
    def get_mid_price(self) -> Decimal:
        """Return quote units per base unit; raise QuoteUnavailable on failure."""


class BalanceService(Protocol):
    def get_balances(self) -> Balances:
        """Return fresh base/quote balances; raise BalanceUnavailable on failure."""


class ExecutionAdapter(Protocol):
    def quote(self, action: Action, amount: Decimal) -> SwapQuote:
        """Quote selling ``amount`` of the asset given up by ``action``."""

    def execute(self, quote: SwapQuote) -> ExecutionResult:
        """Execute a validated quote, or simulate it in dry-run mode."""
