"""Candle CSV files and price series for replays."""

from __future__ import annotations

import csv
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Sequence

from aggregator_client.models import OhlcvCandle
from engine.candles import Candle

LOGGER = logging.getLogger("emaband.backtest.candles")

CANDLE_HEADER = ("timestamp_utc", "open", "high", "low", "close", "volume")


def parse_timestamp(value: str) -> int:
    """Epoch seconds, epoch milliseconds or ISO-8601 text to epoch ms."""
    text = value.strip()
    if text.lstrip("-").isdigit():
        parsed = int(text)
        return parsed * 1000 if len(text.lstrip("-")) < 13 else parsed
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def format_timestamp(ts_ms: int) -> str:
    moment = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def load_candles_csv(path: str | Path) -> list[Candle]:
    """Read a candle CSV, skipping malformed rows; result is sorted by time."""
    target = Path(path)
    if not target.exists():
        raise FileNotFoundError(f"Candle file not found: {target}")
    candles: list[Candle] = []
    skipped = 0
    with target.open(newline="", encoding="utf-8") as handle:
        for row in csv.DictReader(handle):
            try:
                volume = (row.get("volume") or "").strip()
                candles.append(
                    Candle(
                        ts=parse_timestamp(row["timestamp_utc"]),
                        open=Decimal(row["open"]),
                        high=Decimal(row["high"]),
                        low=Decimal(row["low"]),
                        close=Decimal(row["close"]),
                        volume=Decimal(volume) if volume else None,
                    )
                )
            except (KeyError, ValueError, InvalidOperation):
                skipped += 1
    if skipped:
        LOGGER.warning("Skipped %s malformed rows in %s", skipped, target)
    candles.sort(key=lambda candle: candle.ts)
    return candles


def write_candles_csv(path: str | Path, candles: Iterable[Candle]) -> int:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with target.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(CANDLE_HEADER)
        for candle in candles:
            writer.writerow(
                [
                    format_timestamp(candle.ts),
                    str(candle.open),
                    str(candle.high),
                    str(candle.low),
                    str(candle.close),
                    "" if candle.volume is None else str(candle.volume),
                ]
            )
            count += 1
    return count


def from_ohlcv(rows: Iterable[OhlcvCandle]) -> list[Candle]:
    return [
        Candle(
            ts=row.ts,
            open=row.open,
            high=row.high,
            low=row.low,
            close=row.close,
            volume=row.volume,
        )
        for row in rows
    ]


def to_series(
    candles: Sequence[Candle],
    *,
    invert: bool = False,
    max_points: int | None = None,
) -> list[tuple[int, Decimal]]:
    """Close prices as ``(ts_ms, quote per base)``, oldest first.

    Non-positive closes are dropped. ``max_points`` keeps the most recent points.
    """
    series: list[tuple[int, Decimal]] = []
    for candle in sorted(candles, key=lambda c: c.ts):
        if candle.close <= 0:
            continue
        price = Decimal("1") / candle.close if invert else candle.close
        series.append((candle.ts, price))
    if max_points is not None and len(series) > max_points:
        series = series[-max_points:]
    return series
