"""Fill and tick recording with realized PnL in base-asset terms."""

from __future__ import annotations

import csv
import hashlib
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

from strategies.decision import Action, Decision

LOGGER = logging.getLogger("emaband.engine.ledger")

FILL_HEADER = (
    "timestamp",
    "side",
    "price",
    "amountIn",
    "amountOut",
    "center",
    "bandLower",
    "bandUpper",
    "realizedPnl",
    "stopReason",
    "configId",
    "txId",
)

TICK_HEADER = (
    "timestamp",
    "price",
    "center",
    "bandLower",
    "bandUpper",
    "rawAction",
    "action",
    "reason",
    "excessBps",
    "status",
)


def realized_pnl(
    action: Action, price: Decimal, amount_in: Decimal, amount_out: Decimal
) -> Decimal:
    """PnL in base units, valuing the quote leg at the decision-time price."""
    if price <= 0:
        raise ValueError("price must be positive")
    if action is Action.SELL_BASE:
        return amount_out / price - amount_in
    if action is Action.SELL_QUOTE:
        return amount_out - amount_in / price
    raise ValueError("HOLD has no realized PnL")


def mark_to_market(base: Decimal, quote: Decimal, price: Decimal) -> Decimal:
    """Portfolio value in base units."""
    if price <= 0:
        raise ValueError("price must be positive")
    return base + quote / price


def config_id(params: Mapping[str, Any]) -> str:
    """Short stable hash of strategy parameters for auditing fills."""
    encoded = json.dumps(
        {key: str(value) for key, value in params.items()}, sort_keys=True
    )
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:12]


@dataclass(frozen=True)
class FillRecord:
    timestamp: int
    action: Action
    price: Decimal
    amount_in: Decimal
    amount_out: Decimal
    center: Decimal
    band_lower: Decimal
    band_upper: Decimal
    realized_pnl: Decimal
    stop_reason: str | None = None
    config_id: str = ""
    tx_id: str | None = None

    @property
    def side(self) -> str:
        return self.action.side

    def to_row(self) -> list[str]:
        return [
            str(self.timestamp),
            self.side,
            str(self.price),
            str(self.amount_in),
            str(self.amount_out),
            str(self.center),
            str(self.band_lower),
            str(self.band_upper),
            str(self.realized_pnl),
            self.stop_reason or "",
            self.config_id,
            self.tx_id or "",
        ]


def _append_row(path: Path, header: tuple[str, ...], row: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    write_header = not path.exists() or path.stat().st_size == 0
    with path.open("a", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        if write_header:
            writer.writerow(header)
        writer.writerow(row)


class Ledger:
    """Append-only fill log plus optional per-tick log.

    Fills are kept in memory as well so replays can aggregate without
    re-reading the CSV.
    """

    def __init__(
        self,
        fill_path: str | Path | None = None,
        *,
        tick_path: str | Path | None = None,
        config_id: str = "",
    ) -> None:
        self.fill_path = Path(fill_path) if fill_path else None
        self.tick_path = Path(tick_path) if tick_path else None
        self.config_id = config_id
        self.fills: list[FillRecord] = []

    def record_tick(self, timestamp: int, decision: Decision, status: str) -> None:
        LOGGER.debug(
            "tick price=%s band=[%s, %s] center=%s action=%s reason=%s status=%s",
            decision.price,
            decision.band.lower,
            decision.band.upper,
            decision.band.center,
            decision.action.value,
            decision.reason,
            status,
        )
        if self.tick_path is None:
            return
        _append_row(
            self.tick_path,
            TICK_HEADER,
            [
                str(timestamp),
                str(decision.price),
                str(decision.band.center),
                str(decision.band.lower),
                str(decision.band.upper),
                decision.raw_action.value,
                decision.action.value,
                decision.reason,
                str(decision.excess_bps),
                status,
            ],
        )

    def record_fill(
        self,
        timestamp: int,
        decision: Decision,
        amount_in: Decimal,
        amount_out: Decimal,
        *,
        tx_id: str | None = None,
    ) -> FillRecord:
        pnl = realized_pnl(decision.action, decision.price, amount_in, amount_out)
        record = FillRecord(
            timestamp=timestamp,
            action=decision.action,
            price=decision.price,
            amount_in=amount_in,
            amount_out=amount_out,
            center=decision.band.center,
            band_lower=decision.band.lower,
            band_upper=decision.band.upper,
            realized_pnl=pnl,
            stop_reason=decision.stop_reason,
            config_id=self.config_id,
            tx_id=tx_id,
        )
        self.fills.append(record)
        if self.fill_path is not None:
            _append_row(self.fill_path, FILL_HEADER, record.to_row())
        LOGGER.info(
            "Fill %s in=%s out=%s price=%s pnl=%s%s",
            record.side,
            amount_in,
            amount_out,
            decision.price,
            pnl,
            f" stop={decision.stop_reason}" if decision.stop_reason else "",
        )
        return record


@dataclass(frozen=True)
class FillSummary:
    trades: int
    sells: int
    buys: int
    base_spent: Decimal
    base_received: Decimal
    total_pnl: Decimal


def summarize_fills(path: str | Path) -> FillSummary:
    """Aggregate a fill CSV written by :class:`Ledger`."""
    target = Path(path)
    if not target.exists():
        raise FileNotFoundError(f"Fill log not found: {target}")
    sells = buys = 0
    base_spent = Decimal("0")
    base_received = Decimal("0")
    total_pnl = Decimal("0")
    with target.open(newline="", encoding="utf-8") as handle:
        for row in csv.DictReader(handle):
            if row["side"] == "SELL":
                sells += 1
                base_spent += Decimal(row["amountIn"])
            elif row["side"] == "BUY":
                buys += 1
                base_received += Decimal(row["amountOut"])
            if row.get("realizedPnl"):
                total_pnl += Decimal(row["realizedPnl"])
    return FillSummary(
        trades=sells + buys,
        sells=sells,
        buys=buys,
        base_spent=base_spent,
        base_received=base_received,
        total_pnl=total_pnl,
    )
