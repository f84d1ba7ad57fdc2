"""Single-pass replay of a price series through a trading session."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping, Sequence

from backtest.metrics import Summary, summarize
from backtest.simulator import SimulatedExecutor, SimulatedWallet
from engine.errors import TransientError
from engine.ledger import FillRecord, Ledger, mark_to_market
from engine.risk_guard import RiskGuard
from engine.session import TradingSession
from engine.settings import (
    band_center_seed,
    build_risk_guard_config,
    build_session_config,
    normalize_config,
    strategy_config_id,
)
from engine.state import SessionState

LOGGER = logging.getLogger("emaband.backtest.replay")

BACKTEST_DEFAULTS: dict[str, Any] = {
    "start_base": "1000",
    "start_quote": "0",
    "pool_fee_bps": "30",
    "agg_fee_bps": "0",
    # replays are driven by candle timestamps, so no cooldown unless asked
    "cooldown_ms": 0,
}


@dataclass
class BacktestResult:
    config_id: str
    summary: Summary
    fills: list[FillRecord]
    equity_curve: list[Decimal]
    final_base: Decimal
    final_quote: Decimal
    statuses: Counter = field(default_factory=Counter)


def backtest_config(config: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(BACKTEST_DEFAULTS)
    merged.update(config)
    return normalize_config(merged)


def run_backtest(
    series: Sequence[tuple[int, Decimal]],
    config: Mapping[str, Any],
    *,
    trades_path: str | Path | None = None,
) -> BacktestResult:
    """Replay ``series`` with the live decision core and a simulated wallet."""
    if not series:
        raise ValueError("cannot backtest an empty price series")
    normalized = backtest_config(config)
    wallet = SimulatedWallet(
        Decimal(str(normalized["start_base"])),
        Decimal(str(normalized["start_quote"])),
    )
    executor = SimulatedExecutor(
        wallet,
        pool_fee_bps=Decimal(str(normalized["pool_fee_bps"])),
        agg_fee_bps=Decimal(str(normalized["agg_fee_bps"])),
        slippage_pct=Decimal(str(normalized["slippage_pct"])),
    )
    identifier = strategy_config_id(normalized)
    ledger = Ledger(trades_path, config_id=identifier)
    session = TradingSession(
        build_session_config(normalized),
        executor=executor,
        balances=wallet,
        risk_guard=RiskGuard(build_risk_guard_config(normalized)),
        ledger=ledger,
        state=SessionState(center=band_center_seed(normalized)),
    )

    statuses: Counter = Counter()
    equity_curve: list[Decimal] = []
    timestamps: list[int] = []
    for ts, price in series:
        executor.mark(price)
        try:
            outcome = session.on_price(ts, price)
            statuses[outcome.status] += 1
        except TransientError as exc:
            statuses["error"] += 1
            LOGGER.warning("Replay tick %s failed: %s", ts, exc)
        equity_curve.append(mark_to_market(wallet.base, wallet.quote, price))
        timestamps.append(ts)

    last_mid = series[-1][1]
    summary = summarize(
        [fill.realized_pnl for fill in ledger.fills],
        equity_curve,
        last_mid=last_mid,
        timestamps=timestamps,
    )
    LOGGER.info(
        "Backtest %s: %s points, %s trades, pnl=%s, final equity=%s",
        identifier,
        len(series),
        summary.trades,
        summary.total_pnl,
        summary.final_equity,
    )
    return BacktestResult(
        config_id=identifier,
        summary=summary,
        fills=list(ledger.fills),
        equity_curve=equity_curve,
        final_base=wallet.base,
        final_quote=wallet.quote,
        statuses=statuses,
    )
