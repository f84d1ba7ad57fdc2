"""OHLC candles and live tick-to-candle rolling."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Candle:
    ts: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal | None = None


@dataclass
class _OpenCandle:
    start: int
    end: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal

    def freeze(self) -> Candle:
        return Candle(
            ts=self.start, open=self.open, high=self.high, low=self.low, close=self.close
        )


class CandleRoller:
    """Aggregate ticks into fixed, epoch-aligned candles.

    ``push`` returns the candle closed by the tick, if any.
    """

    def __init__(self, candle_ms: int) -> None:
        if candle_ms <= 0:
            raise ValueError("candle_ms must be positive")
        self.candle_ms = candle_ms
        self._current: _OpenCandle | None = None
        self.last_closed: Candle | None = None

    def push(self, ts_ms: int, price: Decimal) -> list[Candle]:
        closed: list[Candle] = []
        if self._current is None:
            start = ts_ms // self.candle_ms * self.candle_ms
            self._current = self._new(start, price)
            return closed
        if ts_ms >= self._current.end:
            finished = self._current.freeze()
            closed.append(finished)
            self.last_closed = finished
            # gaps produce no empty candles
            start = ts_ms // self.candle_ms * self.candle_ms
            self._current = self._new(start, price)
            return closed
        self._current.high = max(self._current.high, price)
        self._current.low = min(self._current.low, price)
        self._current.close = price
        return closed

    def _new(self, start: int, price: Decimal) -> _OpenCandle:
        return _OpenCandle(
            start=start,
            end=start + self.candle_ms,
            open=price,
            high=price,
            low=price,
            close=price,
        )
