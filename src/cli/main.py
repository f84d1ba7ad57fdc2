"""CLI entry point for the EMA band bot."""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import os
import tomllib
from pathlib import Path
from typing import Any

import yaml

from aggregator_client.taptools import CandleClient, build_taptools_rest
from backtest.candles import from_ohlcv, load_candles_csv, to_series, write_candles_csv
from backtest.replay import run_backtest
from backtest.sweep import log_best, run_sweep, write_leaderboard
from engine.band_runner import BandBot, build_aggregator
from engine.ledger import summarize_fills
from engine.settings import normalize_config
from strategies import ema_band_describe
from utils.config_validator import ConfigValidationError, validate_config
from utils.credentials import (
    BLOCKFROST_ENV,
    DEFAULT_SERVICE_NAME,
    TAPTOOLS_ENV,
    load_secret,
    store_secret,
)
from utils.logging_config import LogContext, setup_logging

LOGGER = logging.getLogger("emaband.cli")

SUPPORTED_FORMATS = (".json", ".toml", ".yaml", ".yml")
SECRET_KEYS = ("blockfrost_project_id", "taptools_api_key")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="EMA band DEX trading bot")
    parser.add_argument("--version", action="version", version="emaband-bot 0.1.0")
    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser(
        "start", help="Run the live band bot for one pair."
    )
    _add_config_arg(start_parser)
    start_parser.add_argument(
        "--config-dir",
        help="Directory to store instance state and fills (defaults to config file directory).",
    )
    start_parser.add_argument(
        "--instance-id",
        default="default",
        help="Instance identifier for multi-instance runs.",
    )
    start_parser.add_argument(
        "--pid-file",
        help="Optional PID file to prevent duplicate starts for the same instance.",
    )
    start_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Force dry-run mode regardless of the config.",
    )
    start_parser.add_argument(
        "--max-cycles", type=int, help="Stop after this many polling cycles."
    )
    _add_log_arg(start_parser)
    start_parser.set_defaults(handler=run_start)

    backtest_parser = subparsers.add_parser(
        "backtest", help="Replay a candle CSV through the strategy."
    )
    _add_config_arg(backtest_parser)
    backtest_parser.add_argument("--candles", required=True, help="Candle CSV path.")
    backtest_parser.add_argument(
        "--trades-out", help="Write simulated fills to this CSV."
    )
    _add_log_arg(backtest_parser)
    backtest_parser.set_defaults(handler=run_backtest_command)

    sweep_parser = subparsers.add_parser(
        "sweep", help="Grid-search strategy parameters over a candle CSV."
    )
    _add_config_arg(sweep_parser)
    sweep_parser.add_argument("--candles", required=True, help="Candle CSV path.")
    sweep_parser.add_argument(
        "--out", default="sweep_results.csv", help="Leaderboard CSV path."
    )
    sweep_parser.add_argument(
        "--workers", type=int, help="Worker processes (overrides config)."
    )
    _add_log_arg(sweep_parser)
    sweep_parser.set_defaults(handler=run_sweep_command)

    fetch_parser = subparsers.add_parser(
        "fetch-candles", help="Download OHLCV candles for the quote token to CSV."
    )
    _add_config_arg(fetch_parser)
    fetch_parser.add_argument("--out", required=True, help="Candle CSV path.")
    fetch_parser.add_argument("--interval", help="Candle interval, e.g. 1h or 4h.")
    fetch_parser.add_argument("--limit", type=int, help="Maximum number of candles.")
    fetch_parser.add_argument("--start-ms", type=int, help="Window start (epoch ms).")
    fetch_parser.add_argument("--end-ms", type=int, help="Window end (epoch ms).")
    _add_log_arg(fetch_parser)
    fetch_parser.set_defaults(handler=run_fetch_candles)

    summary_parser = subparsers.add_parser(
        "summarize", help="Summarize a fill log written by the bot or a backtest."
    )
    summary_parser.add_argument("--fills", required=True, help="Fill CSV path.")
    _add_log_arg(summary_parser)
    summary_parser.set_defaults(handler=run_summarize)

    secret_parser = subparsers.add_parser(
        "store-secret", help="Store an API secret in the OS keychain."
    )
    secret_parser.add_argument("--key", required=True, choices=SECRET_KEYS)
    _add_log_arg(secret_parser)
    secret_parser.set_defaults(handler=run_store_secret)
    return parser


def _add_config_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", required=True, help="Path to JSON/TOML/YAML config file."
    )


def _add_log_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Plain text or one JSON object per line.",
    )
    parser.add_argument("--log-file", help="Also write logs to this file.")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if hasattr(args, "handler"):
        return args.handler(args)
    parser.print_help()
    return 1


def run_start(args: argparse.Namespace) -> int:
    configure_logging(args)
    try:
        config_path = Path(args.config).expanduser()
        config = load_config(config_path)
        if args.dry_run:
            config["dry_run"] = True

        try:
            validate_config(config, "live")
        except ConfigValidationError as exc:
            LOGGER.error("Configuration validation failed: %s", exc)
            return 2

        config_dir = resolve_config_dir(args.config_dir, config_path)
        instance_id = normalize_instance_id(args.instance_id)
        instance_dir = prepare_instance_dir(config_dir, instance_id)
        pid_file = Path(args.pid_file).expanduser() if args.pid_file else None
        if pid_file:
            ensure_pid_file(pid_file)

        LOGGER.info("Starting EMA band bot: %s", ema_band_describe())
        LOGGER.info("Config file: %s", config_path)
        LOGGER.info("Instance: %s (%s)", instance_id, instance_dir)
        pair = f"{config.get('base_token', 'ADA')}/{config['quote_token']}"
        with LogContext(pair=pair, instance_id=instance_id):
            bot = BandBot.from_config(config, instance_dir)
            bot.run(max_cycles=args.max_cycles)
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        LOGGER.exception("Unexpected error during startup: %s", exc)
        return 3
    return 0


def load_series_for(config: dict[str, Any], candles_path: str):
    candles = load_candles_csv(Path(candles_path).expanduser())
    normalized = normalize_config(config)
    max_points = normalized.get("max_points")
    series = to_series(
        candles,
        invert=not bool(normalized.get("price_is_quote_per_base", False)),
        max_points=int(max_points) if max_points else None,
    )
    if not series:
        raise ValueError(f"No usable candles in {candles_path}")
    return series


def run_backtest_command(args: argparse.Namespace) -> int:
    configure_logging(args)
    try:
        config = load_config(Path(args.config).expanduser())
        try:
            validate_config(config, "backtest")
        except ConfigValidationError as exc:
            LOGGER.error("Configuration validation failed: %s", exc)
            return 2
        series = load_series_for(config, args.candles)
        result = run_backtest(series, config, trades_path=args.trades_out)
        for key, value in result.summary.to_row().items():
            print(f"{key}: {value}")
        print(f"final_base: {result.final_base}")
        print(f"final_quote: {result.final_quote}")
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        LOGGER.exception("Unexpected error during backtest: %s", exc)
        return 3
    return 0


def run_sweep_command(args: argparse.Namespace) -> int:
    configure_logging(args)
    try:
        config = load_config(Path(args.config).expanduser())
        try:
            validate_config(config, "sweep")
        except ConfigValidationError as exc:
            LOGGER.error("Configuration validation failed: %s", exc)
            return 2
        series = load_series_for(config, args.candles)
        workers = args.workers or int(config.get("workers", 1))
        rows = run_sweep(series, config, config["sweep"], workers=workers)
        written = write_leaderboard(Path(args.out).expanduser(), rows)
        LOGGER.info("Wrote %s leaderboard rows to %s", written, args.out)
        log_best(rows)
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        LOGGER.exception("Unexpected error during sweep: %s", exc)
        return 3
    return 0


def run_fetch_candles(args: argparse.Namespace) -> int:
    configure_logging(args)
    try:
        config = normalize_config(load_config(Path(args.config).expanduser()))
        if not config.get("quote_token"):
            raise ValueError("quote_token is required to fetch candles")
        unit = build_aggregator(config).resolve_token(str(config["quote_token"]))
        api_key = load_secret(
            DEFAULT_SERVICE_NAME, config, key="taptools_api_key", env_var=TAPTOOLS_ENV
        )
        client = CandleClient(build_taptools_rest(api_key))
        candles = client.fetch_ohlcv(
            unit,
            interval=args.interval or str(config.get("interval", "1h")),
            limit=args.limit or int(config.get("max_points", 3000)),
            start_ms=args.start_ms,
            end_ms=args.end_ms,
        )
        written = write_candles_csv(Path(args.out).expanduser(), from_ohlcv(candles))
        LOGGER.info("Wrote %s candles to %s", written, args.out)
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        LOGGER.exception("Unexpected error while fetching candles: %s", exc)
        return 3
    return 0


def run_summarize(args: argparse.Namespace) -> int:
    configure_logging(args)
    try:
        summary = summarize_fills(Path(args.fills).expanduser())
    except (FileNotFoundError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    print(f"trades: {summary.trades} (sells {summary.sells}, buys {summary.buys})")
    print(f"base_spent: {summary.base_spent}")
    print(f"base_received: {summary.base_received}")
    print(f"total_pnl: {summary.total_pnl}")
    return 0


def run_store_secret(args: argparse.Namespace) -> int:
    configure_logging(args)
    env_hint = BLOCKFROST_ENV if args.key == "blockfrost_project_id" else TAPTOOLS_ENV
    value = getpass.getpass(f"{args.key} (or set {env_hint}): ")
    try:
        store_secret(DEFAULT_SERVICE_NAME, args.key, value)
    except (RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    LOGGER.info("Stored %s in keychain service '%s'", args.key, DEFAULT_SERVICE_NAME)
    return 0


def configure_logging(args: argparse.Namespace) -> None:
    """Configure logging with sanitization and proper formatting."""
    setup_logging(
        level=args.log_level,
        sanitize=True,
        structured=args.log_format == "json",
        log_file=args.log_file,
    )


def load_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. Ensure the path is correct and readable."
        )
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        supported = ", ".join(SUPPORTED_FORMATS)
        raise ValueError(
            f"Unsupported config format '{suffix}'. Supported formats: {supported}."
        )
    try:
        if suffix == ".json":
            data = json.loads(config_path.read_text(encoding="utf-8"))
        elif suffix == ".toml":
            data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        else:
            data = load_yaml(config_path)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config file {config_path}: {exc}. Validate the file format."
        ) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file {config_path}: {exc}.") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in config file {config_path}: {exc}.") from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON/TOML/YAML object mapping."
        )
    return data


def load_yaml(config_path: Path) -> dict[str, Any]:
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"YAML config file {config_path} must contain a mapping at the top level."
        )
    return data


def resolve_config_dir(config_dir: str | None, config_path: Path) -> Path:
    base = Path(config_dir).expanduser() if config_dir else config_path.parent
    base.mkdir(parents=True, exist_ok=True)
    return base


def normalize_instance_id(instance_id: str) -> str:
    cleaned = instance_id.strip()
    if not cleaned:
        raise ValueError("Instance ID cannot be empty. Use --instance-id to set one.")
    if Path(cleaned).name != cleaned:
        raise ValueError(
            "Instance ID must be a simple name without path separators (e.g. 'ada-min')."
        )
    return cleaned


def prepare_instance_dir(config_dir: Path, instance_id: str) -> Path:
    instance_dir = config_dir / "instances" / instance_id
    instance_dir.mkdir(parents=True, exist_ok=True)
    return instance_dir


def ensure_pid_file(pid_file: Path) -> None:
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    if pid_file.exists():
        existing_pid = pid_file.read_text(encoding="utf-8").strip()
        if existing_pid.isdigit() and is_pid_running(int(existing_pid)):
            raise RuntimeError(
                f"PID file {pid_file} already exists with running process {existing_pid}. "
                "Stop the existing instance or pass a different --pid-file."
            )
    pid_file.write_text(str(os.getpid()), encoding="utf-8")


def is_pid_running(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


if __name__ == "__main__":
    raise SystemExit(main())
