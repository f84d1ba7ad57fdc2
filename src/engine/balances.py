"""Pair balances and the wallet-backed balance service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Mapping

from engine.errors import BalanceUnavailable

LOGGER = logging.getLogger("emaband.engine.balances")

INFINITE = Decimal("Infinity")


@dataclass(frozen=True)
class Balances:
    base: Decimal
    quote: Decimal

    @classmethod
    def unconstrained(cls) -> "Balances":
        """Unlimited balances, only for simulated runs without an address."""
        return cls(base=INFINITE, quote=INFINITE)


class WalletBalanceService:
    """Read base/quote balances for one address from a raw-unit fetcher.

    ``fetcher`` returns a mapping of on-chain unit -> integer amount in
    smallest units; decimals convert them to human units.
    """

    def __init__(
        self,
        fetcher: Callable[[str], Mapping[str, int]],
        address: str,
        *,
        base_unit: str,
        quote_unit: str,
        base_decimals: int,
        quote_decimals: int,
    ) -> None:
        self.fetcher = fetcher
        self.address = address
        self.base_unit = base_unit
        self.quote_unit = quote_unit
        self.base_decimals = base_decimals
        self.quote_decimals = quote_decimals

    def get_balances(self) -> Balances:
        try:
            amounts = self.fetcher(self.address)
        except BalanceUnavailable:
            raise
        except Exception as exc:
            raise BalanceUnavailable(f"Failed to read balances: {exc}") from exc
        base_raw = amounts.get(self.base_unit, 0)
        quote_raw = amounts.get(self.quote_unit, 0)
        return Balances(
            base=Decimal(int(base_raw)).scaleb(-self.base_decimals),
            quote=Decimal(int(quote_raw)).scaleb(-self.quote_decimals),
        )


class StaticBalanceService:
    """Fixed balances, used for dry runs without a wallet address."""

    def __init__(self, balances: Balances | None = None) -> None:
        self.balances = balances or Balances.unconstrained()

    def get_balances(self) -> Balances:
        return self.balances
