from decimal import Decimal

import pytest

from engine.errors import GuardRejection
from engine.exchange_client import SwapQuote
from engine.risk_guard import RiskGuard, RiskGuardConfig
from strategies.decision import Action


def _quote(**overrides) -> SwapQuote:
    params = {
        "action": Action.SELL_BASE,
        "token_in": "lovelace",
        "token_out": "min",
        "amount_in": Decimal("10"),
        "amount_out": Decimal("20"),
        "min_amount_out": Decimal("19.9"),
        "fee_pct": Decimal("0.05"),
        "slippage_pct": Decimal("0.5"),
    }
    params.update(overrides)
    return SwapQuote(**params)


def test_quote_within_limits_passes() -> None:
    RiskGuard(RiskGuardConfig(fee_cap_pct=Decimal("0.2"))).validate(_quote())


def test_fee_above_cap_is_rejected() -> None:
    guard = RiskGuard(RiskGuardConfig(fee_cap_pct=Decimal("0.2")))

    with pytest.raises(GuardRejection) as excinfo:
        guard.validate(_quote(fee_pct=Decimal("0.5")))

    assert excinfo.value.reason == "fee_cap"


def test_min_notional_rejects_small_output() -> None:
    guard = RiskGuard(
        RiskGuardConfig(fee_cap_pct=Decimal("1"), min_notional_out=Decimal("25"))
    )

    with pytest.raises(GuardRejection) as excinfo:
        guard.validate(_quote())

    assert excinfo.value.reason == "min_notional"


def test_slippage_ceiling() -> None:
    guard = RiskGuard(
        RiskGuardConfig(fee_cap_pct=Decimal("1"), max_slippage_pct=Decimal("0.3"))
    )

    with pytest.raises(GuardRejection) as excinfo:
        guard.validate(_quote())

    assert excinfo.value.reason == "slippage"
