"""Pre-execution checks on a quoted trade."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from engine.errors import GuardRejection
from engine.exchange_client import SwapQuote

LOGGER = logging.getLogger("emaband.engine.risk_guard")


@dataclass(frozen=True)
class RiskGuardConfig:
    fee_cap_pct: Decimal
    min_notional_out: Decimal = Decimal("0")
    max_slippage_pct: Decimal | None = None


class RiskGuard:
    """Reject quotes that breach fee, notional or slippage limits.

    Rejections are advisory: nothing is clamped, the caller holds for the tick.
    """

    def __init__(self, config: RiskGuardConfig) -> None:
        self.config = config

    def check_slippage(self, slippage_pct: Decimal) -> None:
        ceiling = self.config.max_slippage_pct
        if ceiling is not None and slippage_pct > ceiling:
            raise GuardRejection(
                "slippage",
                f"requested slippage {slippage_pct}% exceeds ceiling {ceiling}%",
            )

    def validate(self, quote: SwapQuote) -> None:
        self.check_slippage(quote.slippage_pct)
        if not quote.fee_pct.is_finite() or quote.fee_pct > self.config.fee_cap_pct:
            raise GuardRejection(
                "fee_cap",
                f"aggregator fee {quote.fee_pct}% exceeds cap {self.config.fee_cap_pct}%",
            )
        min_out = self.config.min_notional_out
        if min_out > 0 and quote.min_amount_out < min_out:
            raise GuardRejection(
                "min_notional",
                f"min output {quote.min_amount_out} {quote.token_out} below {min_out}",
            )
        LOGGER.debug(
            "Quote passed guards: fee=%s%% min_out=%s",
            quote.fee_pct,
            quote.min_amount_out,
        )
