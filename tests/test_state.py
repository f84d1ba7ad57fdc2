import json
from decimal import Decimal

from engine.state import SessionState, StateStore
from strategies.position import PositionMode, PositionState


def test_missing_state_file_loads_empty(tmp_path) -> None:
    state = StateStore(tmp_path / "state.json").load()

    assert state.center is None
    assert not state.position.is_open


def test_first_center_is_saved(tmp_path) -> None:
    path = tmp_path / "state.json"
    store = StateStore(path)
    store.load()

    assert store.maybe_save(SessionState(center=Decimal("2.5")))

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["center"] == 2.5
    assert payload["updatedAt"] is not None


def test_small_center_moves_are_not_persisted(tmp_path) -> None:
    store = StateStore(tmp_path / "state.json", epsilon=Decimal("0.0001"))
    store.load()
    store.maybe_save(SessionState(center=Decimal("100")))

    assert not store.maybe_save(SessionState(center=Decimal("100.005")))
    assert store.maybe_save(SessionState(center=Decimal("100.02")))


def test_force_save_ignores_epsilon(tmp_path) -> None:
    store = StateStore(tmp_path / "state.json")
    store.load()
    store.maybe_save(SessionState(center=Decimal("100")))

    assert store.maybe_save(SessionState(center=Decimal("100")), force=True)


def test_position_change_triggers_save_and_round_trips(tmp_path) -> None:
    path = tmp_path / "state.json"
    store = StateStore(path)
    store.load()
    store.maybe_save(SessionState(center=Decimal("2")))

    position = PositionState()
    position.open(PositionMode.LONG_BASE, "1.98")
    state = SessionState(center=Decimal("2"), position=position, last_trade_at=42)

    assert store.maybe_save(state)
    restored = StateStore(path).load()
    assert restored.position.mode is PositionMode.LONG_BASE
    assert restored.position.entry_price == Decimal("1.98")
    assert restored.last_trade_at == 42
