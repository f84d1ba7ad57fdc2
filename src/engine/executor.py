"""Swap execution through the aggregator, with dry-run simulation."""

from __future__ import annotations

import importlib
import logging
from decimal import Decimal
from typing import Callable

from aggregator_client.aggregator import AggregatorClient
from aggregator_client.blockfrost import BlockfrostClient
from aggregator_client.models import SwapEstimate
from aggregator_client.rest import RestError
from engine.errors import ExecutionFailed, QuoteUnavailable
from engine.exchange_client import ExecutionResult, SwapQuote
from strategies.decision import Action

LOGGER = logging.getLogger("emaband.engine.executor")

Signer = Callable[[str], str]


def load_signer(spec: str) -> Signer:
    """Import a ``module:callable`` that turns unsigned CBOR hex into a witness set."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"signer must look like 'module:callable', got: {spec!r}")
    module = importlib.import_module(module_name)
    signer = getattr(module, attr, None)
    if not callable(signer):
        raise ValueError(f"signer {spec!r} is not callable")
    return signer


class AggregatorExecutor:
    """Quote, build, sign and submit swaps for one pair."""

    def __init__(
        self,
        client: AggregatorClient,
        *,
        base_id: str,
        quote_id: str,
        slippage_pct: Decimal,
        dry_run: bool = True,
        sender: str | None = None,
        signer: Signer | None = None,
        confirmer: BlockfrostClient | None = None,
        wait_for_confirmations: bool = False,
        confirm_timeout_sec: float = 180.0,
        confirm_poll_sec: float = 5.0,
    ) -> None:
        if not dry_run and (not sender or signer is None):
            raise ValueError("live execution requires a sender address and a signer")
        self.client = client
        self.base_id = base_id
        self.quote_id = quote_id
        self.slippage_pct = slippage_pct
        self.dry_run = dry_run
        self.sender = sender
        self.signer = signer
        self.confirmer = confirmer
        self.wait_for_confirmations = wait_for_confirmations
        self.confirm_timeout_sec = confirm_timeout_sec
        self.confirm_poll_sec = confirm_poll_sec

    def _tokens(self, action: Action) -> tuple[str, str]:
        if action is Action.SELL_BASE:
            return self.base_id, self.quote_id
        if action is Action.SELL_QUOTE:
            return self.quote_id, self.base_id
        raise ValueError("HOLD cannot be quoted")

    def quote(self, action: Action, amount: Decimal) -> SwapQuote:
        token_in, token_out = self._tokens(action)
        try:
            estimate = self.client.estimate(
                token_in, token_out, amount, slippage_pct=self.slippage_pct
            )
        except (RestError, ValueError) as exc:
            raise QuoteUnavailable(f"Estimate for {action.value} failed: {exc}") from exc
        return SwapQuote(
            action=action,
            token_in=token_in,
            token_out=token_out,
            amount_in=estimate.amount_in,
            amount_out=estimate.amount_out,
            min_amount_out=estimate.min_amount_out,
            fee_pct=estimate.aggregator_fee_percent,
            slippage_pct=self.slippage_pct,
            raw={"estimate": estimate},
        )

    def execute(self, quote: SwapQuote) -> ExecutionResult:
        if self.dry_run:
            LOGGER.info(
                "[dry-run] %s in=%s out=%s min_out=%s",
                quote.action.value,
                quote.amount_in,
                quote.amount_out,
                quote.min_amount_out,
            )
            return ExecutionResult(
                amount_in=quote.amount_in, amount_out=quote.min_amount_out
            )

        estimate = quote.raw.get("estimate")
        if not isinstance(estimate, SwapEstimate):
            raise ExecutionFailed("quote carries no aggregator estimate")
        try:
            built = self.client.build_tx(
                self.sender, estimate, slippage_pct=self.slippage_pct
            )
            witness = self.signer(built.cbor)
            submitted = self.client.finalize_and_submit(built.cbor, witness)
        except RestError as exc:
            raise ExecutionFailed(f"Swap submission failed: {exc}") from exc
        except ValueError as exc:
            raise ExecutionFailed(f"Signing failed: {exc}") from exc
        LOGGER.info(
            "[live] %s submitted tx=%s in=%s min_out=%s",
            quote.action.value,
            submitted.tx_id,
            quote.amount_in,
            quote.min_amount_out,
        )

        confirmed = None
        if self.wait_for_confirmations and self.confirmer is not None:
            confirmed = self.confirmer.wait_for_confirmation(
                submitted.tx_id,
                timeout_sec=self.confirm_timeout_sec,
                poll_sec=self.confirm_poll_sec,
            )
        return ExecutionResult(
            amount_in=quote.amount_in,
            amount_out=quote.min_amount_out,
            tx_id=submitted.tx_id,
            confirmed=confirmed,
        )
