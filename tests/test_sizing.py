from decimal import Decimal

import pytest

from engine.balances import Balances
from strategies.decision import Action
from strategies.sizing import SideSizing, SizingConfig, SizingEngine, spendable_balance


def _config(**overrides) -> SizingConfig:
    params = {
        "base": SideSizing(max_pct=Decimal("15")),
        "quote": SideSizing(max_pct=Decimal("15")),
    }
    params.update(overrides)
    return SizingConfig(**params)


def test_size_is_percentage_of_balance() -> None:
    engine = SizingEngine(_config())

    amount = engine.size(Action.SELL_BASE, Balances(Decimal("100"), Decimal("0")))

    assert amount == Decimal("15")


def test_size_respects_min_and_max_trade() -> None:
    engine = SizingEngine(
        _config(
            base=SideSizing(
                max_pct=Decimal("1"),
                min_trade=Decimal("5"),
                max_trade=Decimal("50"),
            ),
            quote=SideSizing(max_pct=Decimal("100"), max_trade=Decimal("50")),
        )
    )
    balances = Balances(Decimal("100"), Decimal("200"))

    assert engine.size(Action.SELL_BASE, balances) == Decimal("5")
    assert engine.size(Action.SELL_QUOTE, balances) == Decimal("50")


def test_size_never_exceeds_spendable() -> None:
    engine = SizingEngine(
        _config(quote=SideSizing(max_pct=Decimal("15"), min_trade=Decimal("3")))
    )

    assert engine.size(Action.SELL_QUOTE, Balances(Decimal("0"), Decimal("2"))) is None


def test_reserve_guard_can_block_trade() -> None:
    engine = SizingEngine(
        _config(
            reserve_asset="base",
            reserve_floor=Decimal("8"),
            fee_buffer=Decimal("2"),
        )
    )

    assert engine.spendable(Action.SELL_BASE, Balances(Decimal("10"), Decimal("0"))) == 0
    assert engine.size(Action.SELL_BASE, Balances(Decimal("10"), Decimal("0"))) is None


def test_reserve_only_applies_to_reserve_asset() -> None:
    engine = SizingEngine(
        _config(reserve_asset="base", reserve_floor=Decimal("100"))
    )

    amount = engine.size(Action.SELL_QUOTE, Balances(Decimal("0"), Decimal("40")))

    assert amount == Decimal("6")


def test_unconstrained_balances_need_max_trade() -> None:
    capped = SizingEngine(
        _config(base=SideSizing(max_pct=Decimal("15"), max_trade=Decimal("25")))
    )
    uncapped = SizingEngine(_config())

    assert capped.size(Action.SELL_BASE, Balances.unconstrained()) == Decimal("25")
    assert uncapped.size(Action.SELL_BASE, Balances.unconstrained()) is None


def test_hold_has_no_size() -> None:
    engine = SizingEngine(_config())

    assert engine.size(Action.HOLD, Balances(Decimal("1"), Decimal("1"))) is None


def test_spendable_balance_floors_at_zero() -> None:
    assert spendable_balance(
        Decimal("1"), reserve_floor=Decimal("2"), fee_buffer=Decimal("1")
    ) == Decimal("0")


def test_unknown_reserve_asset_rejected() -> None:
    with pytest.raises(ValueError):
        _config(reserve_asset="both")
