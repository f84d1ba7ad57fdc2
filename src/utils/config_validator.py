"""Configuration validation utilities for the EMA band bot."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

MODES = {"live", "backtest", "sweep"}
NETWORKS = {"Mainnet", "Preprod", "Preview"}


class ConfigValidationError(ValueError):
    """Raised when configuration validation fails."""


def _as_decimal(config: dict[str, Any], field: str) -> Decimal:
    value = config[field]
    if isinstance(value, bool):
        raise ConfigValidationError(f"{field} must be a valid number, got: {value}")
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc
    if not decimal_value.is_finite():
        raise ConfigValidationError(f"{field} must be finite, got: {value}")
    return decimal_value


def validate_positive_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a positive decimal value."""
    if field not in config or config[field] is None:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return
    decimal_value = _as_decimal(config, field)
    if decimal_value <= 0:
        raise ConfigValidationError(f"{field} must be positive, got: {decimal_value}")


def validate_non_negative_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a non-negative decimal value."""
    if field not in config or config[field] is None:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return
    decimal_value = _as_decimal(config, field)
    if decimal_value < 0:
        raise ConfigValidationError(
            f"{field} must be non-negative, got: {decimal_value}"
        )


def validate_positive_integer(
    config: dict[str, Any], field: str, *, required: bool = True, minimum: int = 1
) -> None:
    """Validate that a field is an integer of at least ``minimum``."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigValidationError(
            f"{field} must be an integer, got: {type(value).__name__}"
        )

    if value < minimum:
        raise ConfigValidationError(f"{field} must be >= {minimum}, got: {value}")


def validate_percentage(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a percentage between 0 and 100."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return
    decimal_value = _as_decimal(config, field)
    if not (Decimal("0") <= decimal_value <= Decimal("100")):
        raise ConfigValidationError(
            f"{field} must be between 0 and 100, got: {decimal_value}"
        )


def validate_fraction(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field lies within [0, 1]."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return
    decimal_value = _as_decimal(config, field)
    if not (Decimal("0") <= decimal_value <= Decimal("1")):
        raise ConfigValidationError(
            f"{field} must be between 0 and 1, got: {decimal_value}"
        )


def validate_choice(
    config: dict[str, Any], field: str, choices: set[str], *, required: bool = True
) -> None:
    """Validate that a field is one of the allowed choices."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, str):
        raise ConfigValidationError(
            f"{field} must be a string, got: {type(value).__name__}"
        )

    if value not in choices:
        choices_str = ", ".join(sorted(choices))
        raise ConfigValidationError(
            f"{field} must be one of [{choices_str}], got: {value}"
        )


def validate_bool(config: dict[str, Any], field: str) -> None:
    if field in config and not isinstance(config[field], bool):
        raise ConfigValidationError(f"{field} must be a boolean")


def validate_url(config: dict[str, Any], field: str) -> None:
    """Validate that a URL field is properly formatted."""
    if field not in config:
        return

    url = config[field]
    if not isinstance(url, str) or not url.strip():
        raise ConfigValidationError(f"{field} must be a non-empty string")

    if not re.match(r"^https?://", url, re.IGNORECASE):
        raise ConfigValidationError(
            f"{field} must start with http:// or https://, got: {url}"
        )


def validate_token(config: dict[str, Any], field: str) -> None:
    if field not in config:
        raise ConfigValidationError(f"Missing required field: {field}")
    value = config[field]
    if not isinstance(value, str) or not value.strip():
        raise ConfigValidationError(f"{field} must be a non-empty string")


def validate_strategy_config(config: dict[str, Any]) -> None:
    """Validate the band, decision, sizing and guard parameters."""
    validate_fraction(config, "band_alpha", required=False)
    validate_non_negative_decimal(config, "band_bps", required=False)
    validate_non_negative_decimal(config, "edge_bps", required=False)
    validate_positive_decimal(config, "band_center", required=False)
    validate_positive_integer(config, "cooldown_ms", required=False, minimum=0)
    validate_positive_integer(config, "decision_every_ms", required=False, minimum=0)
    validate_positive_integer(config, "candle_ms", required=False, minimum=0)

    for side in ("base", "quote"):
        validate_percentage(config, f"max_pct_{side}", required=False)
        validate_non_negative_decimal(config, f"min_trade_{side}", required=False)
        validate_non_negative_decimal(config, f"max_trade_{side}", required=False)
        min_key, max_key = f"min_trade_{side}", f"max_trade_{side}"
        if config.get(min_key) is not None and config.get(max_key):
            if _as_decimal(config, max_key) < _as_decimal(config, min_key):
                raise ConfigValidationError(
                    f"{max_key} must be >= {min_key}"
                )

    validate_choice(config, "reserve_asset", {"base", "quote", "none"}, required=False)
    validate_non_negative_decimal(config, "reserve_floor", required=False)
    validate_non_negative_decimal(config, "fee_buffer", required=False)

    validate_non_negative_decimal(config, "fee_cap_pct", required=False)
    validate_non_negative_decimal(config, "min_notional_out", required=False)
    validate_non_negative_decimal(config, "max_slippage_pct", required=False)
    validate_percentage(config, "slippage_pct", required=False)

    validate_bool(config, "cycle_filter")
    validate_non_negative_decimal(config, "min_cycle_pnl_bps", required=False)
    validate_non_negative_decimal(config, "round_trip_fee_bps", required=False)
    validate_positive_decimal(config, "trail_bps", required=False)
    validate_positive_decimal(config, "hard_stop_bps", required=False)
    validate_positive_decimal(config, "state_epsilon", required=False)


def validate_live_config(config: dict[str, Any]) -> None:
    """Validate configuration for the live polling loop."""
    validate_token(config, "quote_token")
    if "base_token" in config:
        validate_token(config, "base_token")
    validate_choice(config, "network", NETWORKS, required=False)
    validate_choice(config, "mid_mode", {"single", "averaged"}, required=False)
    validate_positive_decimal(config, "probe_base", required=False)
    validate_positive_decimal(config, "probe_quote", required=False)
    if config.get("mid_mode") == "averaged" and "probe_quote" not in config:
        raise ConfigValidationError("probe_quote is required when mid_mode is averaged")
    validate_bool(config, "only_verified")
    validate_bool(config, "dry_run")
    validate_bool(config, "wait_for_confirmations")
    validate_url(config, "aggregator_url")

    validate_positive_decimal(config, "poll_interval_sec", required=False)
    validate_positive_decimal(config, "error_backoff_sec", required=False)
    validate_positive_decimal(config, "confirm_timeout_sec", required=False)
    validate_positive_decimal(config, "confirm_poll_sec", required=False)
    validate_positive_decimal(config, "rest_timeout_sec", required=False)
    validate_positive_integer(config, "rest_retries", required=False, minimum=0)
    validate_non_negative_decimal(config, "rest_backoff_factor", required=False)

    if not config.get("dry_run", True):
        address = config.get("address")
        if not isinstance(address, str) or not address.strip():
            raise ConfigValidationError("address is required when dry_run is false")
        signer = config.get("signer")
        if not isinstance(signer, str) or ":" not in signer:
            raise ConfigValidationError(
                "signer ('module:callable') is required when dry_run is false"
            )


def validate_backtest_config(config: dict[str, Any]) -> None:
    """Validate configuration for a single-pass replay."""
    validate_non_negative_decimal(config, "start_base", required=False)
    validate_non_negative_decimal(config, "start_quote", required=False)
    validate_non_negative_decimal(config, "pool_fee_bps", required=False)
    validate_non_negative_decimal(config, "agg_fee_bps", required=False)
    validate_positive_integer(config, "max_points", required=False, minimum=1)
    validate_bool(config, "price_is_quote_per_base")


def validate_sweep_config(config: dict[str, Any]) -> None:
    """Validate the ``sweep`` grid: each key maps to a non-empty list."""
    grid = config.get("sweep")
    if not isinstance(grid, dict) or not grid:
        raise ConfigValidationError("sweep must be a non-empty mapping of lists")
    for key, values in grid.items():
        if not isinstance(values, list) or not values:
            raise ConfigValidationError(f"sweep.{key} must be a non-empty list")
        for value in values:
            validate_strategy_config({key: value})
    validate_positive_integer(config, "workers", required=False, minimum=1)


def validate_config(config: dict[str, Any], mode: str = "live") -> None:
    """
    Validate configuration for a run mode.

    Args:
        config: Configuration dictionary
        mode: One of 'live', 'backtest', 'sweep'

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration must be a dictionary")

    if not config:
        raise ConfigValidationError("Configuration cannot be empty")

    if mode not in MODES:
        raise ConfigValidationError(f"Unknown mode: {mode}")

    validate_strategy_config(config)
    if mode == "live":
        validate_live_config(config)
    else:
        validate_backtest_config(config)
        if mode == "sweep":
            validate_sweep_config(config)
