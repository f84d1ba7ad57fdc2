from decimal import Decimal

import pytest

from strategies.ema_band import (
    BandTracker,
    band_from_center,
    bps_over,
    next_ema,
)


def test_next_ema_seeds_with_first_price() -> None:
    assert next_ema(None, Decimal("2.5"), Decimal("0.1")) == Decimal("2.5")


def test_next_ema_blends_with_alpha() -> None:
    value = next_ema(Decimal("100"), Decimal("110"), Decimal("0.1"))

    assert value == Decimal("101.0")


def test_alpha_one_tracks_last_price_and_zero_freezes() -> None:
    follower = BandTracker("1", center=Decimal("1"))
    frozen = BandTracker("0", center=Decimal("1"))

    follower.update("3")
    frozen.update("3")

    assert follower.center == Decimal("3")
    assert frozen.center == Decimal("1")


def test_constant_price_pulls_center_to_price() -> None:
    tracker = BandTracker("0.1", center=Decimal("50"))

    for _ in range(200):
        tracker.update("2")

    assert abs(tracker.center - Decimal("2")) < Decimal("1e-6")


def test_first_update_seeds_center_exactly() -> None:
    tracker = BandTracker("0.1")

    assert tracker.update("1.2345") == Decimal("1.2345")
    assert tracker.center == Decimal("1.2345")


def test_tracker_rejects_alpha_out_of_range() -> None:
    with pytest.raises(ValueError):
        BandTracker("1.5")


def test_tracker_rejects_non_positive_price() -> None:
    tracker = BandTracker("0.1")

    with pytest.raises(ValueError):
        tracker.update("0")
    assert not tracker.initialized


def test_band_is_symmetric_around_center() -> None:
    band = band_from_center(Decimal("100"), Decimal("50"))

    assert band.lower == Decimal("99.5")
    assert band.center == Decimal("100")
    assert band.upper == Decimal("100.5")


def test_band_with_zero_width_collapses() -> None:
    band = band_from_center(Decimal("2"), 0)

    assert band.lower == band.center == band.upper == Decimal("2")


def test_bounds_require_initialized_center() -> None:
    with pytest.raises(ValueError):
        BandTracker("0.1").bounds(50)


def test_bps_over_is_signed() -> None:
    assert bps_over(Decimal("101"), Decimal("100")) == Decimal("100")
    assert bps_over(Decimal("99"), Decimal("100")) == Decimal("-100")
