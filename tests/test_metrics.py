from decimal import Decimal

from backtest.metrics import (
    format_profit_factor,
    max_drawdown,
    periods_per_year,
    profit_factor,
    sharpe_ratio,
    summarize,
)


def _d(*values: str) -> list[Decimal]:
    return [Decimal(v) for v in values]


def test_profit_factor_ratio_and_infinite() -> None:
    assert profit_factor(_d("2", "-1", "1")) == Decimal("3")
    assert format_profit_factor(profit_factor(_d("1", "2"))) == "Inf"
    assert profit_factor([]) == Decimal("0")


def test_max_drawdown_absolute_and_percent() -> None:
    absolute, percent = max_drawdown(_d("100", "120", "90", "130", "117"))

    assert absolute == Decimal("30")
    assert percent == Decimal("25")


def test_sharpe_is_zero_for_flat_curve() -> None:
    assert sharpe_ratio(_d("100", "100", "100")) == 0.0


def test_sharpe_sign_follows_returns() -> None:
    assert sharpe_ratio(_d("100", "101", "103", "104")) > 0
    assert sharpe_ratio(_d("100", "99", "97", "96")) < 0


def test_periods_per_year_from_hourly_spacing() -> None:
    hourly = [0, 3_600_000, 7_200_000, 10_800_000]

    assert periods_per_year(hourly) == 8760
    assert periods_per_year([5]) == 0.0


def test_summarize_counts_wins_and_losses() -> None:
    summary = summarize(
        _d("1", "-0.5", "2", "0"),
        _d("100", "101", "100.5", "102.5"),
        last_mid=Decimal("0.4"),
    )

    assert summary.trades == 4
    assert summary.wins == 3
    assert summary.losses == 1
    assert summary.win_rate == Decimal("0.75")
    assert summary.total_pnl == Decimal("2.5")
    assert summary.median_pnl == Decimal("0.5")
    assert summary.final_equity == Decimal("102.5")
    row = summary.to_row()
    assert row["profit_factor"] == "6.0000"
    assert row["trades"] == "4"


def test_summarize_empty_run() -> None:
    summary = summarize([], [], last_mid=Decimal("1"))

    assert summary.trades == 0
    assert summary.win_rate == Decimal("0")
    assert summary.to_row()["profit_factor"] == "0.0000"


def test_break_even_trades_count_as_wins() -> None:
    summary = summarize(
        _d("0", "0"),
        _d("100", "100"),
        last_mid=Decimal("1"),
    )

    assert summary.wins == 2
    assert summary.losses == 0
    assert summary.win_rate == Decimal("1")
