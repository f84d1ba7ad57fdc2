import sys
import types
from decimal import Decimal

import pytest

from aggregator_client.models import BuildTxResponse, SubmitTxResponse, SwapEstimate
from aggregator_client.rest import RestError
from engine.errors import ExecutionFailed, QuoteUnavailable
from engine.executor import AggregatorExecutor, load_signer
from strategies.decision import Action


class FakeAggregator:
    def __init__(self, *, fail_submit: bool = False) -> None:
        self.fail_submit = fail_submit
        self.built: list[str] = []
        self.submitted: list[tuple[str, str]] = []

    def estimate(self, token_in, token_out, amount, *, slippage_pct):
        if amount <= 0:
            raise ValueError("Amount rounds to zero")
        return SwapEstimate(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount,
            amount_out=amount * 2,
            min_amount_out=amount * Decimal("1.99"),
            aggregator_fee_percent="0.05",
        )

    def build_tx(self, sender, estimate, *, slippage_pct):
        self.built.append(sender)
        return BuildTxResponse(cbor="84a4")

    def finalize_and_submit(self, cbor, witness_set):
        if self.fail_submit:
            raise RestError("HTTP error 400: bad witness", status=400)
        self.submitted.append((cbor, witness_set))
        return SubmitTxResponse(tx_id="tx-1")


class FakeConfirmer:
    def __init__(self) -> None:
        self.waited: list[str] = []

    def wait_for_confirmation(self, tx_id, *, timeout_sec, poll_sec):
        self.waited.append(tx_id)
        return True


def _executor(client, **overrides) -> AggregatorExecutor:
    params = {
        "base_id": "lovelace",
        "quote_id": "min",
        "slippage_pct": Decimal("0.5"),
    }
    params.update(overrides)
    return AggregatorExecutor(client, **params)


def test_quote_maps_direction_and_fee() -> None:
    executor = _executor(FakeAggregator())

    sell = executor.quote(Action.SELL_BASE, Decimal("10"))
    buy = executor.quote(Action.SELL_QUOTE, Decimal("10"))

    assert (sell.token_in, sell.token_out) == ("lovelace", "min")
    assert (buy.token_in, buy.token_out) == ("min", "lovelace")
    assert sell.fee_pct == Decimal("0.05")
    assert sell.min_amount_out == Decimal("19.90")


def test_quote_failure_is_quote_unavailable() -> None:
    with pytest.raises(QuoteUnavailable):
        _executor(FakeAggregator()).quote(Action.SELL_BASE, Decimal("0"))


def test_dry_run_returns_min_out_without_submitting() -> None:
    client = FakeAggregator()
    executor = _executor(client)

    result = executor.execute(executor.quote(Action.SELL_BASE, Decimal("10")))

    assert result.simulated
    assert result.amount_out == Decimal("19.90")
    assert client.built == []


def test_live_requires_sender_and_signer() -> None:
    with pytest.raises(ValueError):
        _executor(FakeAggregator(), dry_run=False, sender="addr1")


def test_live_builds_signs_submits_and_confirms() -> None:
    client = FakeAggregator()
    confirmer = FakeConfirmer()
    executor = _executor(
        client,
        dry_run=False,
        sender="addr1",
        signer=lambda cbor: f"witness-for-{cbor}",
        confirmer=confirmer,
        wait_for_confirmations=True,
    )

    result = executor.execute(executor.quote(Action.SELL_QUOTE, Decimal("5")))

    assert client.built == ["addr1"]
    assert client.submitted == [("84a4", "witness-for-84a4")]
    assert result.tx_id == "tx-1"
    assert result.confirmed is True
    assert confirmer.waited == ["tx-1"]


def test_live_submit_error_is_execution_failed() -> None:
    executor = _executor(
        FakeAggregator(fail_submit=True),
        dry_run=False,
        sender="addr1",
        signer=lambda cbor: "w",
    )

    with pytest.raises(ExecutionFailed):
        executor.execute(executor.quote(Action.SELL_BASE, Decimal("1")))


def test_load_signer_imports_callable(monkeypatch) -> None:
    module = types.ModuleType("fake_signer_mod")
    module.sign = lambda cbor: "w"
    module.not_callable = 3
    monkeypatch.setitem(sys.modules, "fake_signer_mod", module)

    assert load_signer("fake_signer_mod:sign")("84") == "w"
    with pytest.raises(ValueError):
        load_signer("fake_signer_mod:not_callable")
    with pytest.raises(ValueError):
        load_signer("fake_signer_mod")
