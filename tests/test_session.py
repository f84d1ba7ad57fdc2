from decimal import Decimal

import pytest

from backtest.simulator import SimulatedExecutor, SimulatedWallet
from engine.errors import BalanceUnavailable
from engine.ledger import Ledger
from engine.risk_guard import RiskGuard
from engine.session import TradingSession
from engine.settings import build_risk_guard_config, build_session_config
from engine.state import SessionState
from strategies.decision import Action
from strategies.position import PositionMode

BASE_CONFIG = {
    "band_alpha": "0",
    "band_bps": "50",
    "edge_bps": "0",
    "cooldown_ms": 0,
    "reserve_asset": "none",
}


def _session(
    *,
    agg_fee_bps: str = "0",
    center: str | None = "100",
    balances=None,
    **overrides,
) -> tuple[TradingSession, SimulatedWallet, SimulatedExecutor]:
    config = {**BASE_CONFIG, **overrides}
    wallet = SimulatedWallet(Decimal("1000"), Decimal("0"))
    executor = SimulatedExecutor(
        wallet, pool_fee_bps=Decimal("30"), agg_fee_bps=Decimal(agg_fee_bps)
    )
    session = TradingSession(
        build_session_config(config),
        executor=executor,
        balances=balances or wallet,
        risk_guard=RiskGuard(build_risk_guard_config(config)),
        ledger=Ledger(),
        state=SessionState(center=Decimal(center) if center else None),
    )
    return session, wallet, executor


def _tick(session, executor, ts: int, price: str):
    executor.mark(Decimal(price))
    return session.on_price(ts, price)


def test_fee_guard_leaves_wallet_untouched() -> None:
    session, wallet, executor = _session(agg_fee_bps="50")

    outcome = _tick(session, executor, 1, "101")

    assert outcome.status == "guarded"
    assert outcome.detail == "fee_cap"
    assert wallet.base == Decimal("1000")
    assert wallet.quote == Decimal("0")
    assert not session.position.is_open
    assert session.engine.last_trade_at is None


def test_round_trip_opens_then_closes_single_position() -> None:
    session, wallet, executor = _session()

    opened = _tick(session, executor, 1, "101")
    assert opened.status == "filled"
    assert opened.decision.action is Action.SELL_BASE
    assert opened.amount == Decimal("150")
    assert session.position.mode is PositionMode.LONG_QUOTE
    assert wallet.base == Decimal("850")

    repeated = _tick(session, executor, 2, "102")
    assert repeated.status == "hold"
    assert repeated.detail == "same_side"

    closed = _tick(session, executor, 3, "99")
    assert closed.status == "filled"
    assert closed.decision.action is Action.SELL_QUOTE
    assert not session.position.is_open
    assert session.fill_count == 2
    assert [fill.side for fill in session.ledger.fills] == ["SELL", "BUY"]
    # fills at the decision price only lose the pool fee
    assert all(fill.realized_pnl < 0 for fill in session.ledger.fills)


def test_price_inside_band_holds() -> None:
    session, wallet, executor = _session()

    outcome = _tick(session, executor, 1, "100.1")

    assert outcome.status == "hold"
    assert outcome.detail == "in_band"
    assert wallet.base == Decimal("1000")


def test_no_size_when_balance_is_empty() -> None:
    session, wallet, executor = _session()

    outcome = _tick(session, executor, 1, "99")

    assert outcome.status == "no_size"
    assert wallet.quote == Decimal("0")


def test_first_tick_seeds_center_without_state() -> None:
    session, _, executor = _session(center=None, band_alpha="0.1")

    outcome = _tick(session, executor, 1, "2")

    assert session.center == Decimal("2")
    assert outcome.status == "hold"


def test_candle_mode_warms_until_first_close() -> None:
    session, _, executor = _session(center=None, band_alpha="0.5", candle_ms=60_000)

    assert _tick(session, executor, 0, "2").status == "warming"
    assert _tick(session, executor, 30_000, "2.2").status == "warming"
    after_close = _tick(session, executor, 60_000, "2.4")

    assert session.center == Decimal("2.2")
    assert after_close.decision.price == Decimal("2.2")


def test_transient_balance_errors_propagate() -> None:
    class FailingBalances:
        def get_balances(self):
            raise BalanceUnavailable("indexer down")

    session, _, executor = _session(balances=FailingBalances())

    with pytest.raises(BalanceUnavailable):
        _tick(session, executor, 1, "101")
    assert not session.position.is_open


def test_snapshot_carries_position_and_last_trade() -> None:
    session, _, executor = _session()
    _tick(session, executor, 5, "101")

    snapshot = session.snapshot()

    assert snapshot.center == Decimal("100")
    assert snapshot.position.mode is PositionMode.LONG_QUOTE
    assert snapshot.last_trade_at == 5


def test_non_positive_price_is_rejected() -> None:
    session, _, _ = _session()

    with pytest.raises(ValueError):
        session.on_price(1, "0")
