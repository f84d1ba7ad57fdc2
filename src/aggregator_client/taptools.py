"""Historical OHLCV candles from the market data provider."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from aggregator_client.constants import TAPTOOLS_URL
from aggregator_client.models import OhlcvCandle
from aggregator_client.rest import RestClient, RestError

LOGGER = logging.getLogger("emaband.taptools")

OHLCV_PATH = "/api/v1/token/ohlcv"


def build_taptools_rest(api_key: str, *, base_url: str = TAPTOOLS_URL) -> RestClient:
    return RestClient(base_url, headers={"x-api-key": api_key}, timeout=60.0)


class CandleClient:
    def __init__(self, rest: RestClient) -> None:
        self.rest = rest

    def fetch_ohlcv(
        self,
        unit: str,
        *,
        interval: str = "1h",
        limit: int = 3000,
        start_ms: int | None = None,
        end_ms: int | None = None,
    ) -> list[OhlcvCandle]:
        """Fetch candles for ``unit`` priced in the native asset, oldest first."""
        params: dict[str, object] = {
            "unit": unit,
            "interval": interval,
            "numIntervals": limit,
        }
        if start_ms:
            params["start"] = start_ms // 1000
        if end_ms:
            params["end"] = end_ms // 1000
        payload = self.rest.get(OHLCV_PATH, params)
        rows = payload.get("data", payload) if isinstance(payload, dict) else payload
        if not isinstance(rows, list) or not rows:
            raise RestError(
                "No candle data returned (check unit, interval and time window)"
            )
        candles: list[OhlcvCandle] = []
        for row in rows:
            try:
                candles.append(OhlcvCandle.from_raw(row))
            except ValidationError as exc:
                LOGGER.debug("Skipping malformed candle %s: %s", row, exc)
        candles.sort(key=lambda candle: candle.ts)
        LOGGER.info("Fetched %s %s candles for %s", len(candles), interval, unit)
        return candles
