"""Persisted band center, open position and last trade time."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

from strategies.position import PositionState

LOGGER = logging.getLogger("emaband.engine.state")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SessionState:
    center: Decimal | None = None
    updated_at: int | None = None
    position: PositionState = field(default_factory=PositionState)
    last_trade_at: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "center": float(self.center) if self.center is not None else None,
            "updatedAt": self.updated_at,
            "position": self.position.to_payload(),
            "lastTradeAt": self.last_trade_at,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionState":
        raw_center = payload.get("center")
        return cls(
            center=Decimal(str(raw_center)) if raw_center is not None else None,
            updated_at=payload.get("updatedAt"),
            position=PositionState.from_payload(payload.get("position")),
            last_trade_at=payload.get("lastTradeAt"),
        )

    def save(self, path: str | Path) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            json.dumps(self.to_payload(), indent=2, sort_keys=True), encoding="utf-8"
        )

    @classmethod
    def load(cls, path: str | Path) -> "SessionState":
        target = Path(path)
        if not target.exists():
            return cls()
        payload = json.loads(target.read_text(encoding="utf-8"))
        return cls.from_payload(payload)


class StateStore:
    """Write session state only when it changed materially."""

    def __init__(self, path: str | Path, *, epsilon: Decimal = Decimal("0.0001")) -> None:
        self.path = Path(path)
        self.epsilon = epsilon
        self._saved: dict[str, Any] | None = None
        self._saved_center: Decimal | None = None

    def load(self) -> SessionState:
        state = SessionState.load(self.path)
        self._remember(state)
        if state.center is not None:
            LOGGER.info(
                "Loaded band center %s (position %s) from %s",
                state.center,
                state.position.mode.value,
                self.path,
            )
        return state

    def needs_save(self, state: SessionState) -> bool:
        if self._saved is None:
            return state.center is not None
        if state.center is not None:
            previous = self._saved_center
            if previous is None or previous == 0:
                return True
            if abs(state.center - previous) / previous > self.epsilon:
                return True
        payload = state.to_payload()
        return (
            payload["position"] != self._saved["position"]
            or payload["lastTradeAt"] != self._saved["lastTradeAt"]
        )

    def maybe_save(self, state: SessionState, *, force: bool = False) -> bool:
        if not force and not self.needs_save(state):
            return False
        if state.center is None and not state.position.is_open:
            return False
        state.updated_at = now_ms()
        state.save(self.path)
        self._remember(state)
        return True

    def _remember(self, state: SessionState) -> None:
        self._saved = state.to_payload()
        self._saved_center = state.center
