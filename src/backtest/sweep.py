"""Grid search over strategy parameters with a leaderboard CSV."""

from __future__ import annotations

import csv
import itertools
import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from backtest.replay import run_backtest

LOGGER = logging.getLogger("emaband.backtest.sweep")

METRIC_COLUMNS = (
    "trades",
    "wins",
    "losses",
    "win_rate",
    "total_pnl",
    "median_pnl",
    "mean_pnl",
    "profit_factor",
    "max_drawdown",
    "max_drawdown_pct",
    "final_equity",
    "last_mid",
    "sharpe",
)


@dataclass(frozen=True)
class SweepRow:
    params: dict[str, Any]
    config_id: str
    metrics: dict[str, str]
    total_pnl: Decimal
    final_equity: Decimal

    def to_row(self) -> dict[str, Any]:
        return {**self.params, "config_id": self.config_id, **self.metrics}


def expand_grid(grid: Mapping[str, Sequence[Any]]) -> list[dict[str, Any]]:
    """Cartesian product of the parameter lists, in key order."""
    keys = list(grid.keys())
    values = [list(grid[key]) for key in keys]
    return [dict(zip(keys, combo)) for combo in itertools.product(*values)]


def _run_combo(
    series: Sequence[tuple[int, Decimal]],
    base_config: Mapping[str, Any],
    params: dict[str, Any],
) -> SweepRow:
    config = {**base_config, **params}
    config.pop("sweep", None)
    result = run_backtest(series, config)
    return SweepRow(
        params=params,
        config_id=result.config_id,
        metrics=result.summary.to_row(),
        total_pnl=result.summary.total_pnl,
        final_equity=result.summary.final_equity,
    )


def run_sweep(
    series: Sequence[tuple[int, Decimal]],
    base_config: Mapping[str, Any],
    grid: Mapping[str, Sequence[Any]],
    *,
    workers: int = 1,
) -> list[SweepRow]:
    """Backtest every combination; rows are sorted by final equity, best first."""
    combos = expand_grid(grid)
    if not combos:
        return []
    LOGGER.info("Sweeping %s combinations with %s worker(s)", len(combos), workers)
    if workers > 1:
        with ProcessPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(_run_combo, series, dict(base_config), combo)
                for combo in combos
            ]
            rows = [future.result() for future in futures]
    else:
        rows = [_run_combo(series, base_config, combo) for combo in combos]
    rows.sort(key=lambda row: (row.final_equity, row.total_pnl), reverse=True)
    return rows


def write_leaderboard(path: str | Path, rows: Iterable[SweepRow]) -> int:
    rendered = [row.to_row() for row in rows]
    if not rendered:
        return 0
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fieldnames = list(rendered[0].keys())
    with target.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rendered)
    return len(rendered)


def log_best(rows: Sequence[SweepRow]) -> SweepRow | None:
    if not rows:
        LOGGER.warning("Sweep produced no rows")
        return None
    best = rows[0]
    LOGGER.info(
        "Best %s: %s",
        best.config_id,
        ", ".join(f"{key}={value}" for key, value in best.to_row().items()),
    )
    return best
