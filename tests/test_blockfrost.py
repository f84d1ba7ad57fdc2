from typing import Any

import pytest

from aggregator_client.blockfrost import BlockfrostClient, build_blockfrost_rest
from aggregator_client.constants import blockfrost_base_url
from aggregator_client.rest import NotFoundError, TransientApiError


class FakeRest:
    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses

    def get(self, path: str, params: Any = None) -> Any:
        response = self.responses[path]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, list):
            item = response.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return response


def test_base_url_per_network() -> None:
    assert "cardano-mainnet" in blockfrost_base_url("Mainnet")
    assert "cardano-preprod" in blockfrost_base_url("Preprod")
    with pytest.raises(ValueError):
        blockfrost_base_url("Testnet")


def test_rest_carries_project_id_header() -> None:
    rest = build_blockfrost_rest("Preview", "preview123")

    assert rest.default_headers["project_id"] == "preview123"
    assert "cardano-preview" in rest.base_url


def test_address_amounts_sums_units() -> None:
    client = BlockfrostClient(
        FakeRest(
            {
                "/addresses/addr1": {
                    "amount": [
                        {"unit": "lovelace", "quantity": "5000000"},
                        {"unit": "abc", "quantity": "7"},
                        {"unit": "abc", "quantity": "3"},
                    ]
                }
            }
        )
    )

    assert client.address_amounts("addr1") == {"lovelace": 5_000_000, "abc": 10}


def test_unused_address_has_no_amounts() -> None:
    client = BlockfrostClient(
        FakeRest({"/addresses/addr1": NotFoundError("missing", status=404)})
    )

    assert client.address_amounts("addr1") == {}


def test_wait_for_confirmation_polls_until_indexed() -> None:
    sleeps: list[float] = []
    ticks = iter(range(100))
    client = BlockfrostClient(
        FakeRest(
            {
                "/txs/tx1": [
                    NotFoundError("pending", status=404),
                    TransientApiError("flaky"),
                    {"hash": "tx1"},
                ]
            }
        ),
        sleep=sleeps.append,
        clock=lambda: float(next(ticks)),
    )

    assert client.wait_for_confirmation("tx1", timeout_sec=50, poll_sec=5)
    assert sleeps == [5, 5]


def test_wait_for_confirmation_times_out() -> None:
    ticks = iter(range(0, 1000, 10))
    client = BlockfrostClient(
        FakeRest({"/txs/tx1": NotFoundError("pending", status=404)}),
        sleep=lambda _: None,
        clock=lambda: float(next(ticks)),
    )

    assert not client.wait_for_confirmation("tx1", timeout_sec=30, poll_sec=5)
