"""Client for the DEX swap aggregator: tokens, estimates, build and submit."""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from aggregator_client.constants import (
    NATIVE_DECIMALS,
    NATIVE_TICKER,
    NATIVE_UNIT,
)
from aggregator_client.models import (
    BuildTxResponse,
    SubmitTxResponse,
    SwapEstimate,
    TokenInfo,
)
from aggregator_client.rest import RestClient, RestError
from utils.units import floor_to_dp, is_zero_or_negative

LOGGER = logging.getLogger("emaband.aggregator")

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

NATIVE_TOKEN = TokenInfo(
    token_id=NATIVE_UNIT,
    ticker=NATIVE_TICKER,
    project_name="Cardano",
    decimals=NATIVE_DECIMALS,
)


def is_asset_id(value: str) -> bool:
    """True for policy+asset hex strings, which need no lookup."""
    return len(value) >= 20 and _HEX_RE.match(value) is not None


class AggregatorClient:
    """Typed wrapper around the aggregator REST endpoints.

    Token ids and decimals are cached for the life of the client.
    """

    def __init__(self, rest: RestClient, *, only_verified: bool = True) -> None:
        self.rest = rest
        self.only_verified = only_verified
        self._resolved: dict[str, str] = {}
        self._infos: dict[str, TokenInfo] = {NATIVE_UNIT: NATIVE_TOKEN}

    def search_tokens(
        self, query: str = "", assets: list[str] | None = None
    ) -> list[TokenInfo]:
        payload = self.rest.post(
            "/tokens",
            {
                "query": query,
                "only_verified": self.only_verified,
                "assets": assets or [],
            },
        )
        rows = payload.get("tokens", []) if isinstance(payload, dict) else []
        tokens: list[TokenInfo] = []
        for row in rows:
            try:
                tokens.append(TokenInfo.model_validate(row))
            except ValidationError as exc:
                LOGGER.debug("Skipping malformed token row %s: %s", row, exc)
        return tokens

    def resolve_token(self, query: str) -> str:
        """Map a ticker, project name or asset id to an aggregator token id."""
        needle = (query or "").strip()
        if not needle:
            raise ValueError("Empty token symbol")
        if needle.upper() == NATIVE_TICKER or needle == NATIVE_UNIT:
            return NATIVE_UNIT
        if is_asset_id(needle):
            return needle
        cached = self._resolved.get(needle.upper())
        if cached is not None:
            return cached

        tokens = self.search_tokens(needle)
        if not tokens:
            raise RestError(f'Token lookup returned 0 results for "{query}"')
        upper = needle.upper()
        chosen = next(
            (t for t in tokens if (t.ticker or "").upper() == upper),
            None,
        ) or next(
            (t for t in tokens if (t.project_name or "").upper() == upper),
            tokens[0],
        )
        LOGGER.info(
            "Resolved %s => %s (%s)", query, chosen.token_id, chosen.ticker or ""
        )
        self._resolved[upper] = chosen.token_id
        self._infos.setdefault(chosen.token_id, chosen)
        return chosen.token_id

    def token_info(self, token_id: str) -> TokenInfo:
        cached = self._infos.get(token_id)
        if cached is not None:
            return cached
        infos = self.search_tokens("", [token_id])
        info = next((i for i in infos if i.token_id == token_id), None)
        if info is None:
            LOGGER.warning(
                "No metadata for %s, assuming %s decimals", token_id, NATIVE_DECIMALS
            )
            info = TokenInfo(token_id=token_id)
        self._infos[token_id] = info
        return info

    def get_decimals(self, token_id: str) -> int:
        return self.token_info(token_id).decimals

    def estimate(
        self,
        token_in: str,
        token_out: str,
        amount: Decimal,
        *,
        slippage_pct: Decimal,
    ) -> SwapEstimate:
        """Estimate selling ``amount`` (human units, floored to decimals)."""
        decimals = self.get_decimals(token_in)
        if is_zero_or_negative(amount, decimals):
            raise ValueError(f"Amount {amount} rounds to zero for {token_in}")
        floored = floor_to_dp(amount, decimals)
        payload = self.rest.post("/estimate", self._estimate_body(
            token_in, token_out, floored, slippage_pct
        ))
        if not isinstance(payload, dict):
            raise RestError("Bad estimate response")
        try:
            return SwapEstimate(
                token_in=token_in,
                token_out=token_out,
                amount_in=payload.get("amount_in"),
                amount_out=payload.get("amount_out"),
                min_amount_out=payload.get("min_amount_out"),
                avg_price_impact=payload.get("avg_price_impact"),
                aggregator_fee_percent=payload.get("aggregator_fee_percent"),
                paths=payload.get("paths") or [],
                raw_payload=payload,
            )
        except ValidationError as exc:
            raise RestError(f"Bad estimate response: {exc}") from exc

    def build_tx(
        self,
        sender: str,
        estimate: SwapEstimate,
        *,
        slippage_pct: Decimal,
    ) -> BuildTxResponse:
        body = {
            "sender": sender,
            "min_amount_out": str(estimate.min_amount_out),
            "estimate": {
                "amount": str(estimate.amount_in),
                "token_in": estimate.token_in,
                "token_out": estimate.token_out,
                "slippage": float(slippage_pct),
                "allow_multi_hops": True,
            },
            "amount_in_decimal": True,
        }
        payload = self.rest.post("/build-tx", body)
        try:
            return BuildTxResponse.model_validate(payload)
        except ValidationError as exc:
            raise RestError(f"Bad build-tx response: {exc}") from exc

    def finalize_and_submit(self, cbor: str, witness_set: str) -> SubmitTxResponse:
        payload = self.rest.post(
            "/finalize-and-submit-tx", {"cbor": cbor, "witness_set": witness_set}
        )
        try:
            return SubmitTxResponse.model_validate(payload)
        except ValidationError as exc:
            raise RestError(f"Bad submit response: {exc}") from exc

    def _estimate_body(
        self,
        token_in: str,
        token_out: str,
        amount: Decimal,
        slippage_pct: Decimal,
    ) -> dict[str, Any]:
        return {
            "amount": str(amount),
            "token_in": token_in,
            "token_out": token_out,
            "slippage": float(slippage_pct),
            "allow_multi_hops": True,
            "amount_in_decimal": True,
        }
