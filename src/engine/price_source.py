"""Mid price from aggregator estimates."""

from __future__ import annotations

import logging
from decimal import Decimal

from aggregator_client.aggregator import AggregatorClient
from aggregator_client.rest import RestError
from engine.errors import QuoteUnavailable

LOGGER = logging.getLogger("emaband.engine.price_source")

MID_MODES = {"single", "averaged"}


class AggregatorPriceSource:
    """Quote-per-base mid from probe estimates.

    ``single`` uses one base->quote probe. ``averaged`` also probes
    quote->base and averages both implied prices, which cancels most of
    the route's spread.
    """

    def __init__(
        self,
        client: AggregatorClient,
        *,
        base_id: str,
        quote_id: str,
        slippage_pct: Decimal,
        mode: str = "single",
        probe_base: Decimal = Decimal("1"),
        probe_quote: Decimal | None = None,
    ) -> None:
        if mode not in MID_MODES:
            raise ValueError(f"mid_mode must be one of {sorted(MID_MODES)}, got: {mode}")
        if mode == "averaged" and (probe_quote is None or probe_quote <= 0):
            raise ValueError("averaged mid_mode requires a positive probe_quote")
        self.client = client
        self.base_id = base_id
        self.quote_id = quote_id
        self.slippage_pct = slippage_pct
        self.mode = mode
        self.probe_base = probe_base
        self.probe_quote = probe_quote

    def get_mid_price(self) -> Decimal:
        try:
            mid = self._compute()
        except (RestError, ValueError) as exc:
            raise QuoteUnavailable(f"Mid price unavailable: {exc}") from exc
        if not mid.is_finite() or mid <= 0:
            raise QuoteUnavailable(f"Non-positive mid price: {mid}")
        return mid

    def _compute(self) -> Decimal:
        forward = self.client.estimate(
            self.base_id,
            self.quote_id,
            self.probe_base,
            slippage_pct=self.slippage_pct,
        )
        if forward.amount_in <= 0:
            raise ValueError("estimate returned non-positive amount_in")
        if self.mode == "single":
            return forward.amount_out / forward.amount_in

        backward = self.client.estimate(
            self.quote_id,
            self.base_id,
            self.probe_quote,
            slippage_pct=self.slippage_pct,
        )
        if backward.min_amount_out <= 0:
            raise ValueError("reverse estimate returned non-positive min_amount_out")
        p1 = forward.min_amount_out / forward.amount_in
        p2 = backward.amount_in / backward.min_amount_out
        LOGGER.debug("Averaged mid legs: forward=%s reverse=%s", p1, p2)
        return (p1 + p2) / Decimal("2")
