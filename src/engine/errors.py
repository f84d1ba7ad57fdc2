"""Error taxonomy for the trading loop."""

from __future__ import annotations


class TransientError(Exception):
    """Recoverable I/O failure; the loop logs, backs off and retries."""


class QuoteUnavailable(TransientError):
    """The price or quote provider could not answer."""


class BalanceUnavailable(TransientError):
    """The balance service could not answer."""


class ExecutionFailed(TransientError):
    """Building, signing or submitting a transaction failed."""


class GuardRejection(Exception):
    """A proposed trade failed a pre-execution risk check."""

    def __init__(self, reason: str, detail: str) -> None:
        super().__init__(f"{reason}: {detail}")
        self.reason = reason
        self.detail = detail


class InvariantViolation(RuntimeError):
    """The engine was about to act on inconsistent state."""
