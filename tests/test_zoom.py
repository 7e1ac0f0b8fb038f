import pytest

from surf_tracking.common import TrustMetrics, ZoomMode
from surf_tracking.config import LensModel, ZoomConfig
from surf_tracking.zoom import AutoZoomRegulator, distance_gate

from conftest import FakeZoomDevice


def make_regulator(mode: ZoomMode, **cfg_kw) -> AutoZoomRegulator:
    return AutoZoomRegulator(FakeZoomDevice(), ZoomConfig(**cfg_kw), LensModel(), mode=mode)


def test_fixed_mode_applies_factor_once():
    reg = make_regulator(ZoomMode.FIXED, fixed_factor=2.0)
    assert reg.update() == 2.0
    reg.update()
    assert reg.device.applied == [2.0]


def test_fixed_factor_clamped_to_device():
    reg = make_regulator(ZoomMode.FIXED, fixed_factor=10.0)
    assert reg.update() == 6.0


def test_off_mode_never_touches_device():
    reg = make_regulator(ZoomMode.OFF)
    reg.update(subject_width=0.01, tracking=True)
    assert reg.device.applied == []


def test_width_zooms_in_after_persistence():
    reg = make_regulator(ZoomMode.AUTO_SUBJECT_WIDTH)
    for _ in range(4):
        assert reg.update(subject_width=0.03, tracking=True) == 1.0
    assert reg.update(subject_width=0.03, tracking=True) > 1.0


def test_width_requires_tracking():
    reg = make_regulator(ZoomMode.AUTO_SUBJECT_WIDTH, persistence_frames=1)
    assert reg.update(subject_width=0.03, tracking=False) == 1.0


def test_width_persistence_restarts_after_losing_track():
    reg = make_regulator(ZoomMode.AUTO_SUBJECT_WIDTH)
    for _ in range(4):
        reg.update(subject_width=0.03, tracking=True)
    reg.update(subject_width=0.03, tracking=False)
    assert reg.out_of_band_frames == 0
    for _ in range(4):
        assert reg.update(subject_width=0.03, tracking=True) == 1.0
    assert reg.update(subject_width=0.03, tracking=True) > 1.0


def test_width_zoom_out_when_subject_large():
    reg = make_regulator(ZoomMode.AUTO_SUBJECT_WIDTH, persistence_frames=1)
    reg.set_mode(ZoomMode.FIXED, 3.0)
    reg.update()
    reg.set_mode(ZoomMode.AUTO_SUBJECT_WIDTH)
    assert reg.update(subject_width=0.2, tracking=True) < 3.0


def test_dead_zone_holds_factor():
    reg = make_regulator(ZoomMode.AUTO_SUBJECT_WIDTH, persistence_frames=1)
    for _ in range(10):
        reg.update(subject_width=0.03, tracking=True)
    held = reg.factor
    assert held > 1.0
    for _ in range(10):
        factor = reg.update(subject_width=0.065, tracking=True)
        assert abs(factor - held) < 0.01
    assert reg.out_of_band_frames == 0


def test_step_limited_per_tick_and_slower_at_high_zoom():
    reg = make_regulator(ZoomMode.AUTO_DISTANCE)
    prev = reg.factor
    for _ in range(60):
        factor = reg.update(distance_m=150.0, gps_trusted=True)
        cap = 0.08 * (0.5 if prev >= 3.0 else 1.0)
        assert factor - prev <= cap + 1e-9
        prev = factor
    assert prev == pytest.approx(4.0, abs=0.2)


def test_distance_curve_and_gate():
    reg = make_regulator(ZoomMode.AUTO_DISTANCE, max_delta_per_tick=10.0, smoothing_alpha=1.0)
    assert reg.update(distance_m=80.0, gps_trusted=False) == 1.0
    assert reg.update(distance_m=80.0, gps_trusted=True) == pytest.approx(2.0)
    # Within the distance deadband the previous range is reused
    assert reg.update(distance_m=82.0, gps_trusted=True) == pytest.approx(2.0)
    assert reg.update(distance_m=10.0, gps_trusted=True) == pytest.approx(1.0)


def test_small_changes_are_not_applied():
    reg = make_regulator(ZoomMode.FIXED, fixed_factor=2.0)
    reg.update()
    reg.set_mode(ZoomMode.FIXED, 2.005)
    reg.update()
    assert reg.device.applied == [2.0]


def test_hfov_tracks_factor():
    reg = make_regulator(ZoomMode.FIXED, fixed_factor=3.0)
    assert reg.hfov_deg == pytest.approx(78.0)
    reg.update()
    assert reg.hfov_deg == pytest.approx(28.0)


@pytest.mark.parametrize(
    "receiving, accuracy, trust, expected",
    [
        (False, 5.0, TrustMetrics(0.0, 0.0, 0, 0.0), False),
        (True, 20.0, TrustMetrics(0.0, 0.0, 0, 0.0), False),
        (True, None, TrustMetrics(0.0, 0.0, 0, 0.0), False),
        (True, 5.0, TrustMetrics(0.0, 0.0, 3, 0.0), True),
        (True, -1.0, TrustMetrics(0.0, 0.0, 3, 0.0), False),
        (True, 0.0, TrustMetrics(0.0, 0.05, 30, 0.9), False),
        (True, 5.0, TrustMetrics(0.0, 0.3, 30, 0.4), False),
        (True, 5.0, TrustMetrics(0.0, 0.05, 30, 0.9), True),
    ],
)
def test_distance_gate(receiving, accuracy, trust, expected):
    assert distance_gate(receiving, accuracy, trust, ZoomConfig(), 0.6, 20) is expected
