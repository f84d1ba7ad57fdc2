"""Endpoints for the swap aggregator and the chain indexer."""

AGGREGATOR_URL = "https://agg-api.minswap.org/aggregator"
TAPTOOLS_URL = "https://openapi.taptools.io"

BLOCKFROST_URLS = {
    "Mainnet": "https://cardano-mainnet.blockfrost.io/api/v0",
    "Preprod": "https://cardano-preprod.blockfrost.io/api/v0",
    "Preview": "https://cardano-preview.blockfrost.io/api/v0",
}

NATIVE_UNIT = "lovelace"
NATIVE_TICKER = "ADA"
NATIVE_DECIMALS = 6


def blockfrost_base_url(network: str) -> str:
    """Return the indexer base URL for a network name."""
    try:
        return BLOCKFROST_URLS[network]
    except KeyError as exc:
        raise ValueError(
            f"Unknown network {network!r}; expected one of {sorted(BLOCKFROST_URLS)}"
        ) from exc
