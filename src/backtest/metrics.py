"""Replay performance metrics."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from statistics import mean, median, pstdev
from typing import Sequence

ZERO = Decimal("0")


@dataclass(frozen=True)
class Summary:
    trades: int
    wins: int
    losses: int
    win_rate: Decimal
    total_pnl: Decimal
    median_pnl: Decimal
    mean_pnl: Decimal
    profit_factor: Decimal
    max_drawdown: Decimal
    max_drawdown_pct: Decimal
    final_equity: Decimal
    last_mid: Decimal
    sharpe: float

    def to_row(self) -> dict[str, str]:
        return {
            "trades": str(self.trades),
            "wins": str(self.wins),
            "losses": str(self.losses),
            "win_rate": f"{self.win_rate:.4f}",
            "total_pnl": f"{self.total_pnl:.6f}",
            "median_pnl": f"{self.median_pnl:.6f}",
            "mean_pnl": f"{self.mean_pnl:.6f}",
            "profit_factor": format_profit_factor(self.profit_factor),
            "max_drawdown": f"{self.max_drawdown:.6f}",
            "max_drawdown_pct": f"{self.max_drawdown_pct:.4f}",
            "final_equity": f"{self.final_equity:.6f}",
            "last_mid": f"{self.last_mid:.8f}",
            "sharpe": f"{self.sharpe:.4f}",
        }


def format_profit_factor(value: Decimal) -> str:
    return "Inf" if value.is_infinite() else f"{value:.4f}"


def profit_factor(pnls: Sequence[Decimal]) -> Decimal:
    gross_win = sum((p for p in pnls if p > 0), ZERO)
    gross_loss = -sum((p for p in pnls if p < 0), ZERO)
    if gross_loss <= 0:
        return Decimal("Infinity") if gross_win > 0 else ZERO
    return gross_win / gross_loss


def max_drawdown(equity_curve: Sequence[Decimal]) -> tuple[Decimal, Decimal]:
    """Largest peak-to-trough drop as (absolute, percent of peak)."""
    if not equity_curve:
        return ZERO, ZERO
    peak = equity_curve[0]
    worst = ZERO
    worst_pct = ZERO
    for value in equity_curve:
        peak = max(peak, value)
        drop = peak - value
        worst = max(worst, drop)
        if peak > 0:
            worst_pct = max(worst_pct, drop / peak * Decimal("100"))
    return worst, worst_pct


def sharpe_ratio(equity_curve: Sequence[Decimal], periods_per_year: float = 0.0) -> float:
    """Mean over deviation of step returns, annualised when a factor is given."""
    returns = [
        float(curr / prev - 1)
        for prev, curr in zip(equity_curve, equity_curve[1:])
        if prev > 0
    ]
    if len(returns) < 2:
        return 0.0
    sigma = pstdev(returns)
    if sigma == 0:
        return 0.0
    ratio = mean(returns) / sigma
    return ratio * math.sqrt(periods_per_year) if periods_per_year > 0 else ratio


def periods_per_year(timestamps: Sequence[int]) -> float:
    """Annualisation factor from the median spacing of ms timestamps."""
    deltas = [b - a for a, b in zip(timestamps, timestamps[1:]) if b > a]
    if not deltas:
        return 0.0
    return 365 * 86_400_000 / median(deltas)


def summarize(
    pnls: Sequence[Decimal],
    equity_curve: Sequence[Decimal],
    *,
    last_mid: Decimal,
    timestamps: Sequence[int] = (),
) -> Summary:
    trades = len(pnls)
    wins = sum(1 for p in pnls if p >= 0)
    losses = sum(1 for p in pnls if p < 0)
    total = sum(pnls, ZERO)
    drawdown, drawdown_pct = max_drawdown(equity_curve)
    return Summary(
        trades=trades,
        wins=wins,
        losses=losses,
        win_rate=Decimal(wins) / Decimal(trades) if trades else ZERO,
        total_pnl=total,
        median_pnl=median(pnls) if pnls else ZERO,
        mean_pnl=total / trades if trades else ZERO,
        profit_factor=profit_factor(pnls),
        max_drawdown=drawdown,
        max_drawdown_pct=drawdown_pct,
        final_equity=equity_curve[-1] if equity_curve else ZERO,
        last_mid=last_mid,
        sharpe=sharpe_ratio(equity_curve, periods_per_year(timestamps)),
    )
