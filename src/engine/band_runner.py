"""Live polling loop for the EMA band strategy."""

from __future__ import annotations

import logging
import signal
import time
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Mapping

from aggregator_client.aggregator import AggregatorClient
from aggregator_client.blockfrost import BlockfrostClient, build_blockfrost_rest
from aggregator_client.constants import AGGREGATOR_URL
from aggregator_client.rest import RestClient
from engine.balances import StaticBalanceService, WalletBalanceService
from engine.errors import TransientError
from engine.exchange_client import BalanceService, PriceSource
from engine.executor import AggregatorExecutor, load_signer
from engine.ledger import Ledger
from engine.price_source import AggregatorPriceSource
from engine.risk_guard import RiskGuard
from engine.session import TickOutcome, TradingSession
from engine.settings import (
    band_center_seed,
    build_risk_guard_config,
    build_session_config,
    normalize_config,
    strategy_config_id,
)
from engine.state import StateStore, now_ms
from utils.credentials import BLOCKFROST_ENV, DEFAULT_SERVICE_NAME, load_secret

LOGGER = logging.getLogger("emaband.engine.band_runner")


def build_aggregator(config: Mapping[str, Any]) -> AggregatorClient:
    rest = RestClient(
        str(config.get("aggregator_url") or AGGREGATOR_URL),
        timeout=float(config["rest_timeout_sec"]),
        max_retries=int(config["rest_retries"]),
        backoff_factor=float(config["rest_backoff_factor"]),
    )
    return AggregatorClient(rest, only_verified=bool(config["only_verified"]))


def build_blockfrost(config: Mapping[str, Any]) -> BlockfrostClient:
    project_id = load_secret(
        DEFAULT_SERVICE_NAME,
        config,
        key="blockfrost_project_id",
        env_var=BLOCKFROST_ENV,
    )
    rest = build_blockfrost_rest(
        str(config["network"]),
        project_id,
        timeout=float(config["rest_timeout_sec"]),
        max_retries=int(config["rest_retries"]),
        backoff_factor=float(config["rest_backoff_factor"]),
    )
    return BlockfrostClient(rest)


class BandBot:
    """Drive a :class:`TradingSession` from live prices.

    One cycle fetches a mid price and feeds it to the session. Transient
    I/O failures are logged and retried after ``error_backoff_sec``; any
    other error in a cycle is logged with its traceback and the loop goes on.
    """

    def __init__(
        self,
        session: TradingSession,
        price_source: PriceSource,
        state_store: StateStore,
        *,
        poll_interval_sec: float = 30.0,
        error_backoff_sec: float = 15.0,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session
        self.price_source = price_source
        self.state_store = state_store
        self.poll_interval_sec = poll_interval_sec
        self.error_backoff_sec = error_backoff_sec
        self._clock = clock
        self._sleep = sleep
        self._running = False
        self.cycles = 0
        self.errors = 0

    @classmethod
    def from_config(cls, config: Mapping[str, Any], instance_dir: Path) -> "BandBot":
        normalized = normalize_config(config)
        aggregator = build_aggregator(normalized)
        base_id = aggregator.resolve_token(str(normalized["base_token"]))
        quote_id = aggregator.resolve_token(str(normalized["quote_token"]))
        slippage = Decimal(str(normalized["slippage_pct"]))
        dry_run = bool(normalized["dry_run"])
        address = normalized.get("address")

        needs_indexer = bool(address) and (
            not dry_run or normalized.get("blockfrost_project_id")
        )
        blockfrost = build_blockfrost(normalized) if needs_indexer else None
        balances: BalanceService
        if blockfrost is not None and address:
            balances = WalletBalanceService(
                blockfrost.address_amounts,
                str(address),
                base_unit=base_id,
                quote_unit=quote_id,
                base_decimals=aggregator.get_decimals(base_id),
                quote_decimals=aggregator.get_decimals(quote_id),
            )
        else:
            LOGGER.info("No wallet balances available, using unconstrained balances")
            balances = StaticBalanceService()

        signer_spec = normalized.get("signer")
        executor = AggregatorExecutor(
            aggregator,
            base_id=base_id,
            quote_id=quote_id,
            slippage_pct=slippage,
            dry_run=dry_run,
            sender=str(address) if address else None,
            signer=load_signer(str(signer_spec)) if signer_spec else None,
            confirmer=blockfrost,
            wait_for_confirmations=bool(normalized["wait_for_confirmations"]),
            confirm_timeout_sec=float(normalized["confirm_timeout_sec"]),
            confirm_poll_sec=float(normalized["confirm_poll_sec"]),
        )
        probe_quote = normalized.get("probe_quote")
        price_source = AggregatorPriceSource(
            aggregator,
            base_id=base_id,
            quote_id=quote_id,
            slippage_pct=slippage,
            mode=str(normalized["mid_mode"]),
            probe_base=Decimal(str(normalized["probe_base"])),
            probe_quote=Decimal(str(probe_quote)) if probe_quote else None,
        )

        state_path = Path(normalized.get("state_path") or instance_dir / "state.json")
        store = StateStore(state_path, epsilon=Decimal(str(normalized["state_epsilon"])))
        state = store.load()
        seed = band_center_seed(normalized)
        if seed is not None:
            LOGGER.info("Seeding band center from config: %s", seed)
            state.center = seed

        fill_log = normalized.get("fill_log") or instance_dir / "fills.csv"
        ledger = Ledger(
            fill_log,
            tick_path=normalized.get("tick_log"),
            config_id=strategy_config_id(normalized),
        )
        session = TradingSession(
            build_session_config(normalized),
            executor=executor,
            balances=balances,
            risk_guard=RiskGuard(build_risk_guard_config(normalized)),
            ledger=ledger,
            state=state,
        )
        LOGGER.info(
            "Pair %s (%s) / %s (%s) | dry_run=%s | band=%sbps alpha=%s edge=%sbps "
            "| config_id=%s",
            normalized["base_token"],
            base_id,
            normalized["quote_token"],
            quote_id,
            dry_run,
            normalized["band_bps"],
            normalized["band_alpha"],
            normalized["edge_bps"],
            ledger.config_id,
        )
        return cls(
            session,
            price_source,
            store,
            poll_interval_sec=float(normalized["poll_interval_sec"]),
            error_backoff_sec=float(normalized["error_backoff_sec"]),
        )

    def run_cycle(self) -> TickOutcome | None:
        """Run one tick; returns None when the cycle failed."""
        self.cycles += 1
        try:
            mid = self.price_source.get_mid_price()
            outcome = self.session.on_price(self._clock(), mid)
        except TransientError as exc:
            self.errors += 1
            LOGGER.warning("Transient error, backing off: %s", exc)
            return None
        except Exception as exc:
            self.errors += 1
            LOGGER.error("Error in band cycle: %s", exc, exc_info=True)
            return None
        finally:
            # a failed tick may still have moved the center or filled
            self.state_store.maybe_save(self.session.snapshot())
        if outcome.decision is not None:
            band = outcome.decision.band
            LOGGER.info(
                "[tick] mid=%s band=[%s, %s] center=%s -> %s",
                outcome.price,
                band.lower,
                band.upper,
                band.center,
                outcome.status,
            )
        return outcome

    def stop(self, *_: Any) -> None:
        self._running = False

    def run(self, *, max_cycles: int | None = None) -> None:
        LOGGER.info("Starting band bot, poll every %ss", self.poll_interval_sec)
        self._running = True
        previous = {
            sig: signal.signal(sig, self.stop) for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            while self._running:
                started = time.monotonic()
                outcome = self.run_cycle()
                if max_cycles is not None and self.cycles >= max_cycles:
                    break
                if not self._running:
                    break
                delay = self.poll_interval_sec if outcome is not None else self.error_backoff_sec
                self._sleep(max(0.0, delay - (time.monotonic() - started)))
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            self.state_store.maybe_save(self.session.snapshot(), force=True)
            LOGGER.info(
                "Stopped after %s cycles (%s fills, %s errors); state saved to %s",
                self.cycles,
                self.session.fill_count,
                self.errors,
                self.state_store.path,
            )
