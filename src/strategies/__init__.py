"""Strategy implementations for the EMA band bot."""

from .ema_band import describe as ema_band_describe

__all__ = ["ema_band_describe"]
