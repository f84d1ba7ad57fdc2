"""Chain indexer client: address balances and transaction confirmation."""

from __future__ import annotations

import logging
import time
from typing import Callable

from aggregator_client.constants import blockfrost_base_url
from aggregator_client.rest import NotFoundError, RestClient, RestError

LOGGER = logging.getLogger("emaband.blockfrost")


def build_blockfrost_rest(
    network: str,
    project_id: str,
    *,
    timeout: float = 10.0,
    max_retries: int = 3,
    backoff_factor: float = 0.5,
) -> RestClient:
    return RestClient(
        blockfrost_base_url(network),
        headers={"project_id": project_id},
        timeout=timeout,
        max_retries=max_retries,
        backoff_factor=backoff_factor,
    )


class BlockfrostClient:
    def __init__(
        self,
        rest: RestClient,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rest = rest
        self._sleep = sleep
        self._clock = clock

    def address_amounts(self, address: str) -> dict[str, int]:
        """Return unit -> quantity in smallest units; unused addresses are empty."""
        try:
            payload = self.rest.get(f"/addresses/{address}")
        except NotFoundError:
            LOGGER.info("Address %s has no on-chain history yet", address)
            return {}
        amounts: dict[str, int] = {}
        for item in payload.get("amount", []) if isinstance(payload, dict) else []:
            unit = item.get("unit")
            if not unit:
                continue
            amounts[unit] = amounts.get(unit, 0) + int(item.get("quantity", 0))
        return amounts

    def is_confirmed(self, tx_id: str) -> bool:
        try:
            payload = self.rest.get(f"/txs/{tx_id}")
        except NotFoundError:
            return False
        return isinstance(payload, dict) and bool(payload.get("hash"))

    def wait_for_confirmation(
        self, tx_id: str, *, timeout_sec: float, poll_sec: float
    ) -> bool:
        """Poll until the transaction is indexed or the timeout elapses."""
        deadline = self._clock() + timeout_sec
        while self._clock() < deadline:
            try:
                if self.is_confirmed(tx_id):
                    LOGGER.info("Transaction %s confirmed", tx_id)
                    return True
            except RestError as exc:
                LOGGER.warning("Confirmation check for %s failed: %s", tx_id, exc)
            self._sleep(poll_sec)
        LOGGER.warning(
            "Transaction %s not confirmed within %ss", tx_id, timeout_sec
        )
        return False
