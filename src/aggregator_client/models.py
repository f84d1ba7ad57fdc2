"""Data models for aggregator, indexer and candle API payloads."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from aggregator_client.constants import NATIVE_DECIMALS


def _parse_decimal(value: Any, *, default: Decimal | None = None) -> Decimal:
    if value is None or value == "":
        if default is not None:
            return default
        raise ValueError("Missing numeric value")
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Invalid amount: {value}") from exc
    if not parsed.is_finite():
        raise ValueError(f"Non-finite amount: {value}")
    return parsed


class TokenInfo(BaseModel):
    """Token metadata returned by the aggregator token search."""

    model_config = ConfigDict(frozen=True, extra="allow")

    token_id: str
    ticker: str | None = None
    project_name: str | None = None
    decimals: int = NATIVE_DECIMALS
    is_verified: bool | None = None

    @field_validator("decimals", mode="before")
    @classmethod
    def validate_decimals(cls, v: Any) -> int:
        """Fall back to the native precision for missing or absurd decimals."""
        try:
            parsed = int(v)
        except (TypeError, ValueError):
            return NATIVE_DECIMALS
        if parsed < 0 or parsed > 18:
            return NATIVE_DECIMALS
        return parsed


class SwapEstimate(BaseModel):
    """Route estimate for selling ``amount_in`` of ``token_in``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    token_in: str
    token_out: str
    amount_in: Decimal
    amount_out: Decimal
    min_amount_out: Decimal
    avg_price_impact: Decimal = Decimal("0")
    aggregator_fee_percent: Decimal = Decimal("0")
    paths: Sequence[Any] = Field(default_factory=list)
    raw_payload: Mapping[str, Any] = Field(default_factory=dict)

    @field_validator("amount_in", "amount_out", "min_amount_out", mode="before")
    @classmethod
    def validate_amounts(cls, v: Any) -> Decimal:
        return _parse_decimal(v)

    @field_validator("avg_price_impact", "aggregator_fee_percent", mode="before")
    @classmethod
    def validate_percentages(cls, v: Any) -> Decimal:
        return _parse_decimal(v, default=Decimal("0"))


class BuildTxResponse(BaseModel):
    """Unsigned transaction returned by the aggregator."""

    model_config = ConfigDict(frozen=True)

    cbor: str

    @field_validator("cbor")
    @classmethod
    def validate_cbor(cls, v: str) -> str:
        if not v:
            raise ValueError("build-tx returned no CBOR")
        return v


class SubmitTxResponse(BaseModel):
    """Submission result returned by the aggregator."""

    model_config = ConfigDict(frozen=True)

    tx_id: str

    @field_validator("tx_id")
    @classmethod
    def validate_tx_id(cls, v: str) -> str:
        if not v:
            raise ValueError("finalize-and-submit-tx returned no tx_id")
        return v


class OhlcvCandle(BaseModel):
    """One OHLCV row from the candle provider, with the timestamp in ms."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ts: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal | None = None

    @field_validator("ts", mode="before")
    @classmethod
    def normalize_timestamp(cls, v: Any) -> int:
        """Accept seconds or milliseconds; store milliseconds."""
        try:
            parsed = int(float(v))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid timestamp: {v}") from exc
        return parsed * 1000 if len(str(abs(parsed))) < 13 else parsed

    @field_validator("open", "high", "low", "close", mode="before")
    @classmethod
    def validate_prices(cls, v: Any) -> Decimal:
        return _parse_decimal(v)

    @field_validator("volume", mode="before")
    @classmethod
    def validate_volume(cls, v: Any) -> Decimal | None:
        if v is None or v == "":
            return None
        return _parse_decimal(v)

    @classmethod
    def from_raw(cls, row: Mapping[str, Any]) -> "OhlcvCandle":
        """Build from a row using any of the provider's key spellings."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if row.get(key) is not None:
                    return row[key]
            return None

        return cls(
            ts=pick("ts", "time", "timestamp", "t"),
            open=pick("open", "o"),
            high=pick("high", "h"),
            low=pick("low", "l"),
            close=pick("close", "c"),
            volume=pick("volume", "v"),
        )
