from decimal import Decimal

from strategies.decision import Action, DecisionConfig, DecisionEngine
from strategies.ema_band import band_from_center
from strategies.position import PositionMode, PositionState

BAND = band_from_center(Decimal("100"), Decimal("50"))


def _engine(**overrides) -> DecisionEngine:
    params = {"band_bps": Decimal("50"), "edge_bps": Decimal("0")}
    params.update(overrides)
    return DecisionEngine(DecisionConfig(**params))


def test_inside_band_holds() -> None:
    decision = _engine().decide(Decimal("100.2"), BAND, PositionState(), 0)

    assert decision.action is Action.HOLD
    assert decision.reason == "in_band"


def test_above_band_sells_base_and_below_sells_quote() -> None:
    engine = _engine()

    above = engine.decide(Decimal("101"), BAND, PositionState(), 0)
    below = engine.decide(Decimal("99"), BAND, PositionState(), 1)

    assert above.action is Action.SELL_BASE
    assert above.action.side == "SELL"
    assert above.action.opens is PositionMode.LONG_QUOTE
    assert below.action is Action.SELL_QUOTE
    assert below.action.side == "BUY"


def test_edge_requirement_is_monotonic() -> None:
    price = Decimal("100.6")
    actions = [
        _engine(edge_bps=Decimal(edge)).decide(price, BAND, PositionState(), 0).action
        for edge in ("0", "5", "9", "10", "50")
    ]

    firing = [action is Action.SELL_BASE for action in actions]
    assert firing == sorted(firing, reverse=True)
    assert actions[0] is Action.SELL_BASE
    assert actions[-1] is Action.HOLD


def test_cooldown_blocks_new_signal() -> None:
    engine = _engine(cooldown_ms=90_000)
    engine.record_trade(1_000)

    held = engine.decide(Decimal("99"), BAND, PositionState(), 50_000)
    fired = engine.decide(Decimal("99"), BAND, PositionState(), 91_000)

    assert held.reason == "cooldown"
    assert fired.action is Action.SELL_QUOTE


def test_forced_close_overrides_cooldown() -> None:
    engine = _engine(cooldown_ms=90_000, hard_stop_bps=Decimal("100"))
    engine.record_trade(0)
    position = PositionState()
    position.open(PositionMode.LONG_BASE, "100")

    decision = engine.decide(Decimal("98.5"), BAND, position, 10)

    assert decision.forced
    assert decision.stop_reason == "hard_stop"
    assert decision.action is Action.SELL_BASE


def test_trailing_stop_closes_long_quote() -> None:
    engine = _engine(trail_bps=Decimal("100"))
    position = PositionState()
    position.open(PositionMode.LONG_QUOTE, "100")
    position.update("95")

    decision = engine.decide(Decimal("96"), BAND, position, 0)

    assert decision.stop_reason == "trailing_stop"
    assert decision.action is Action.SELL_QUOTE


def test_same_side_signal_is_held() -> None:
    position = PositionState()
    position.open(PositionMode.LONG_QUOTE, "101")

    decision = _engine().decide(Decimal("102"), BAND, position, 0)

    assert decision.action is Action.HOLD
    assert decision.reason == "same_side"
    assert decision.raw_action is Action.SELL_BASE


def test_cadence_gate_uses_time_buckets() -> None:
    engine = _engine(decision_every_ms=3_600_000)

    first = engine.decide(Decimal("101"), BAND, PositionState(), 3_600_000)
    same_bucket = engine.decide(Decimal("101"), BAND, PositionState(), 7_199_999)
    next_bucket = engine.decide(Decimal("101"), BAND, PositionState(), 7_200_000)

    assert first.action is Action.SELL_BASE
    assert same_bucket.reason == "cadence"
    assert next_bucket.action is Action.SELL_BASE


def test_cycle_filter_requires_favorable_move() -> None:
    engine = _engine(
        cycle_filter=True,
        min_cycle_pnl_bps=Decimal("50"),
        round_trip_fee_bps=Decimal("60"),
    )
    position = PositionState()
    position.open(PositionMode.LONG_QUOTE, "100")

    held = engine.decide(Decimal("99.4"), BAND, position, 0)
    closed = engine.decide(Decimal("98.8"), BAND, position, 1)

    assert held.reason == "cycle_filter"
    assert closed.action is Action.SELL_QUOTE
