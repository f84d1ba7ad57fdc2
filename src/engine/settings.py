"""Build typed strategy settings from a loaded configuration dict."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from engine.ledger import config_id
from engine.risk_guard import RiskGuardConfig
from engine.session import SessionConfig
from strategies.decision import DecisionConfig
from strategies.sizing import SideSizing, SizingConfig

DEFAULTS: dict[str, Any] = {
    "network": "Mainnet",
    "base_token": "ADA",
    "only_verified": True,
    "mid_mode": "single",
    "probe_base": "1",
    "band_alpha": "0.10",
    "band_bps": "50",
    "edge_bps": "5",
    "poll_interval_sec": 30,
    "cooldown_ms": 90_000,
    "decision_every_ms": 0,
    "candle_ms": 0,
    "max_pct_base": "15",
    "max_pct_quote": "15",
    "min_trade_base": "0",
    "min_trade_quote": "0",
    "reserve_floor": "0",
    "fee_buffer": "2",
    "slippage_pct": "0.5",
    "fee_cap_pct": "0.20",
    "min_notional_out": "0",
    "cycle_filter": False,
    "min_cycle_pnl_bps": "0",
    "round_trip_fee_bps": "0",
    "dry_run": True,
    "wait_for_confirmations": False,
    "confirm_timeout_sec": 180,
    "confirm_poll_sec": 5,
    "state_epsilon": "0.0001",
    "rest_timeout_sec": 10.0,
    "rest_retries": 3,
    "rest_backoff_factor": 0.5,
    "error_backoff_sec": 15,
    "interval": "1h",
    "price_is_quote_per_base": False,
}

STRATEGY_KEYS = (
    "band_alpha",
    "band_bps",
    "edge_bps",
    "cooldown_ms",
    "decision_every_ms",
    "candle_ms",
    "cycle_filter",
    "min_cycle_pnl_bps",
    "round_trip_fee_bps",
    "trail_bps",
    "hard_stop_bps",
    "max_pct_base",
    "max_pct_quote",
    "min_trade_base",
    "min_trade_quote",
    "max_trade_base",
    "max_trade_quote",
    "fee_cap_pct",
    "min_notional_out",
)

_ALIASES = {
    "token_a": "base_token",
    "token_b": "quote_token",
    "alpha": "band_alpha",
    "poll_interval_seconds": "poll_interval_sec",
    "rest_timeout": "rest_timeout_sec",
    "rest_max_retries": "rest_retries",
    "rest_backoff": "rest_backoff_factor",
}


def normalize_config(config: Mapping[str, Any]) -> dict[str, Any]:
    """Apply aliases and defaults; the input mapping is not modified."""
    normalized = dict(config)
    for alias, key in _ALIASES.items():
        if key not in normalized and alias in normalized:
            normalized[key] = normalized.pop(alias)
    if "reserve_asset" not in normalized:
        base = str(normalized.get("base_token", DEFAULTS["base_token"])).upper()
        normalized["reserve_asset"] = "base" if base == "ADA" else "none"
    for key, value in DEFAULTS.items():
        normalized.setdefault(key, value)
    return normalized


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


def _optional_dec(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def build_decision_config(config: Mapping[str, Any]) -> DecisionConfig:
    return DecisionConfig(
        band_bps=_dec(config["band_bps"]),
        edge_bps=_dec(config["edge_bps"]),
        cooldown_ms=int(config["cooldown_ms"]),
        decision_every_ms=int(config["decision_every_ms"]),
        cycle_filter=bool(config["cycle_filter"]),
        min_cycle_pnl_bps=_dec(config["min_cycle_pnl_bps"]),
        round_trip_fee_bps=_dec(config["round_trip_fee_bps"]),
        trail_bps=_optional_dec(config.get("trail_bps")),
        hard_stop_bps=_optional_dec(config.get("hard_stop_bps")),
    )


def build_sizing_config(config: Mapping[str, Any]) -> SizingConfig:
    return SizingConfig(
        base=SideSizing(
            max_pct=_dec(config["max_pct_base"]),
            min_trade=_dec(config["min_trade_base"]),
            max_trade=_optional_dec(config.get("max_trade_base")),
        ),
        quote=SideSizing(
            max_pct=_dec(config["max_pct_quote"]),
            min_trade=_dec(config["min_trade_quote"]),
            max_trade=_optional_dec(config.get("max_trade_quote")),
        ),
        reserve_asset=str(config["reserve_asset"]),
        reserve_floor=_dec(config["reserve_floor"]),
        fee_buffer=_dec(config["fee_buffer"]),
    )


def build_session_config(config: Mapping[str, Any]) -> SessionConfig:
    normalized = normalize_config(config)
    return SessionConfig(
        alpha=_dec(normalized["band_alpha"]),
        decision=build_decision_config(normalized),
        sizing=build_sizing_config(normalized),
        candle_ms=int(normalized["candle_ms"]),
    )


def build_risk_guard_config(config: Mapping[str, Any]) -> RiskGuardConfig:
    normalized = normalize_config(config)
    return RiskGuardConfig(
        fee_cap_pct=_dec(normalized["fee_cap_pct"]),
        min_notional_out=_dec(normalized["min_notional_out"]),
        max_slippage_pct=_optional_dec(normalized.get("max_slippage_pct")),
    )


def strategy_config_id(config: Mapping[str, Any]) -> str:
    normalized = normalize_config(config)
    return config_id({key: normalized.get(key) for key in STRATEGY_KEYS})


def band_center_seed(config: Mapping[str, Any]) -> Decimal | None:
    """Explicit starting center; a positive value overrides persisted state."""
    seed = _optional_dec(config.get("band_center"))
    if seed is None or seed <= 0:
        return None
    return seed
