import time

import numpy as np
import pytest

from surf_tracking.common import Authority, Axis, GeodeticFix, TrackingMode, TrackState
from surf_tracking.processor import Calibration, TrackingProcessor
from surf_tracking.scheduler import TickScheduler

from conftest import FakeDetector, offset_coordinate, person

TICK = 0.05


@pytest.fixture
def calibration(rig_position):
    return Calibration(rig=rig_position, center=offset_coordinate(rig_position, 0.0, 300.0))


@pytest.fixture
def make(cfg, actuator, zoom_device, clock):
    def _make(mode, detector=None, calibration=None):
        return TrackingProcessor(
            cfg,
            detector or FakeDetector(),
            actuator,
            zoom_device,
            mode=mode,
            calibration=calibration,
            clock=clock,
        )

    return _make


def subject_fix(rig_position, clock, bearing_deg, distance=150.0):
    coord = offset_coordinate(rig_position, bearing_deg, distance)
    return GeodeticFix(coord.latitude, coord.longitude, 5.0, clock())


def test_off_mode_is_idle(make, actuator):
    proc = make(TrackingMode.OFF)
    proc.publish_detections([person(1, x=0.9)])
    snap = proc.tick()
    assert snap.authority is Authority.IDLE
    assert actuator.calls == []


def test_vision_only_locks_on_twelfth_frame(make, clock):
    proc = make(TrackingMode.VISION_ONLY)
    for frame in range(1, 13):
        proc.publish_detections([person(1, x=0.5)])
        snap = proc.tick()
        clock.advance(TICK)
        expected = TrackState.LOCKED if frame == 12 else TrackState.SEARCHING
        assert snap.state is expected, frame


def test_same_frame_is_consumed_once(make, clock):
    proc = make(TrackingMode.VISION_ONLY)
    proc.publish_detections([person(1)])
    for _ in range(4):
        proc.tick()
        clock.advance(TICK)
    assert proc.fusion.consecutive_lock_frames == 1


def test_stale_detections_count_as_no_vision(make, clock):
    proc = make(TrackingMode.VISION_ONLY)
    proc.publish_detections([person(1)])
    assert proc.tick().track_center is not None
    clock.advance(0.6)
    snap = proc.tick()
    assert snap.track_center is None
    assert snap.authority is Authority.IDLE
    assert proc.fusion.consecutive_lock_frames == 0


def test_vision_follow_moves_pan(make, actuator):
    proc = make(TrackingMode.VISION_ONLY)
    proc.publish_detections([person(1, x=0.8)])
    snap = proc.tick()
    assert snap.authority is Authority.VISION
    assert actuator.pan > 90
    assert proc.last_commands[0].axis is Axis.PAN


def test_gps_only_drives_toward_bearing(make, actuator, calibration, rig_position, clock):
    proc = make(TrackingMode.GPS_ONLY, calibration=calibration)
    proc.submit_fix(subject_fix(rig_position, clock, 40.0))
    snap = proc.tick()
    assert snap.authority is Authority.GPS
    assert snap.gps_receiving
    assert snap.bearing.filtered_bearing == pytest.approx(40.0, abs=0.5)
    # 40° off: biggest step (8°), smoothed with alpha .6
    assert actuator.pan == 95.0


def test_gps_only_ignores_vision(make, actuator, calibration, rig_position, clock):
    proc = make(TrackingMode.GPS_ONLY, calibration=calibration)
    proc.publish_detections([person(1, x=0.1)])
    proc.submit_fix(subject_fix(rig_position, clock, 0.0))
    snap = proc.tick()
    assert snap.track_center is None
    assert actuator.calls == []


def test_gps_without_calibration_is_idle(make, actuator, rig_position, clock):
    proc = make(TrackingMode.GPS_ONLY)
    proc.submit_fix(subject_fix(rig_position, clock, 40.0))
    assert proc.tick().authority is Authority.IDLE
    assert actuator.calls == []


def test_fusion_expected_x_and_gps_authority(make, calibration, rig_position, clock):
    proc = make(TrackingMode.FUSION, calibration=calibration)
    proc.submit_fix(subject_fix(rig_position, clock, 20.0))
    proc.publish_detections([])
    snap = proc.tick()
    assert snap.expected_x == pytest.approx(0.5 + 20.0 / 78.0, abs=0.01)
    assert snap.authority is Authority.GPS


def test_fusion_aligned_vision_takes_authority(make, actuator, calibration, rig_position, clock):
    proc = make(TrackingMode.FUSION, calibration=calibration)
    proc.submit_fix(subject_fix(rig_position, clock, 20.0))
    proc.publish_detections([person(1, x=0.2), person(2, x=0.75)])
    snap = proc.tick()
    assert snap.chosen.id == 2
    assert snap.authority is Authority.VISION
    assert actuator.pan > 90


def test_fusion_out_of_fov_uses_absolute_follower(make, actuator, calibration, rig_position, clock):
    proc = make(TrackingMode.FUSION, calibration=calibration)
    proc.submit_fix(subject_fix(rig_position, clock, 60.0))
    proc.publish_detections([])
    snap = proc.tick()
    assert snap.expected_x is None
    assert snap.authority is Authority.GPS
    assert actuator.pan == 95.0


def test_fusion_gps_goes_stale(make, calibration, rig_position, clock):
    proc = make(TrackingMode.FUSION, calibration=calibration)
    proc.submit_fix(subject_fix(rig_position, clock, 20.0))
    proc.tick()
    clock.advance(2.5)
    snap = proc.tick()
    assert not snap.gps_receiving
    assert snap.expected_x is None
    assert snap.authority is Authority.IDLE


def test_lock_request_uses_detector_colour(make, clock):
    red = np.array([0.9, 0.1, 0.1])
    detector = FakeDetector(colors={3: red})
    detector.queue.append([person(3, x=0.4), person(8, x=0.6)])
    proc = make(TrackingMode.VISION_ONLY, detector=detector)
    proc.submit_frame(np.zeros((72, 128, 3), dtype=np.uint8))
    proc.tick()
    assert proc.request_lock()
    snap = proc.snapshot()
    assert snap.hard_locked
    assert snap.locked_id == snap.chosen.id == 3
    assert snap.locked_color == pytest.approx((0.9, 0.1, 0.1))


def test_lock_request_without_subject_is_dropped(make, clock):
    detector = FakeDetector(colors={7: np.array([0.1, 0.1, 0.9])})
    proc = make(TrackingMode.VISION_ONLY, detector=detector)
    assert not proc.request_lock()
    for _ in range(200):
        proc.submit_frame(np.zeros((72, 128, 3), dtype=np.uint8))
        proc.tick()
        clock.advance(TICK)
    detector.queue.append([person(7)])
    proc.submit_frame(np.zeros((72, 128, 3), dtype=np.uint8))
    snap = proc.tick()
    assert snap.chosen.id == 7
    assert not snap.hard_locked
    assert snap.locked_id is None


def test_lock_request_after_subject_went_stale_is_dropped(make, clock):
    detector = FakeDetector(colors={3: np.array([0.9, 0.1, 0.1])})
    detector.queue.append([person(3)])
    proc = make(TrackingMode.VISION_ONLY, detector=detector)
    proc.submit_frame(np.zeros((72, 128, 3), dtype=np.uint8))
    proc.tick()
    clock.advance(0.6)
    proc.tick()
    assert not proc.request_lock()
    assert not proc.snapshot().hard_locked


def test_hard_lock_survives_better_candidate(make, clock):
    detector = FakeDetector(colors={3: np.array([0.9, 0.1, 0.1])})
    proc = make(TrackingMode.VISION_ONLY, detector=detector)
    detector.queue.append([person(3, x=0.5)])
    proc.submit_frame(np.zeros((72, 128, 3), dtype=np.uint8))
    proc.tick()
    assert proc.request_lock()
    clock.advance(TICK)
    detector.queue.append([person(9, x=0.5, w=0.2, h=0.4), person(3, x=0.7, w=0.03, h=0.1)])
    proc.submit_frame(np.zeros((72, 128, 3), dtype=np.uint8))
    assert proc.tick().chosen.id == 3


def test_mode_switch_resets_session(make, clock):
    proc = make(TrackingMode.VISION_ONLY)
    for _ in range(12):
        proc.publish_detections([person(1)])
        proc.tick()
        clock.advance(TICK)
    proc.selector.lock_on(person(1), np.array([1.0, 0.0, 0.0]))
    proc.set_mode(TrackingMode.FUSION)
    snap = proc.snapshot()
    assert snap.mode is TrackingMode.FUSION
    assert snap.state is TrackState.SEARCHING
    assert not snap.hard_locked
    assert snap.track_center is None
    # The frame published before the switch is not replayed
    proc.tick()
    assert proc.fusion.consecutive_lock_frames == 0


def test_manual_nudge_and_override(make, actuator, clock):
    proc = make(TrackingMode.VISION_ONLY)
    cmd = proc.nudge(Axis.PAN, -10.0)
    assert cmd.immediate and actuator.pan == 80.0
    proc.publish_detections([person(1, x=0.9)])
    proc.tick()
    assert actuator.pan == 80.0


def test_runtime_params_reach_components(make):
    proc = make(TrackingMode.VISION_ONLY)
    applied = proc.apply_runtime_params({"fusion.lock_frames": "3", "bogus.key": 1})
    assert applied == ["fusion.lock_frames"]
    assert proc.fusion.cfg.lock_frames == 3


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


def test_scheduler_ticks_periodically(make):
    proc = make(TrackingMode.VISION_ONLY)
    with TickScheduler(proc, hz=100.0) as sched:
        assert wait_for(lambda: sched.tick_count >= 3)


def test_scheduler_event_tick_on_fix(make, calibration, rig_position, clock):
    proc = make(TrackingMode.GPS_ONLY, calibration=calibration)
    with TickScheduler(proc, hz=0.01) as sched:
        sched.on_fix(subject_fix(rig_position, clock, 40.0))
        assert wait_for(lambda: sched.tick_count >= 1)
    assert proc.snapshot().authority is Authority.GPS


def test_scheduler_no_event_tick_in_vision_mode(make, rig_position, clock):
    proc = make(TrackingMode.VISION_ONLY)
    with TickScheduler(proc, hz=0.01) as sched:
        sched.on_fix(subject_fix(rig_position, clock, 40.0))
        time.sleep(0.1)
        assert sched.tick_count == 0


def test_center_bias_shifts_projection(make, calibration, rig_position, clock):
    proc = make(TrackingMode.FUSION, calibration=calibration)
    proc.submit_fix(subject_fix(rig_position, clock, 0.0))
    assert proc.tick().expected_x == pytest.approx(0.5, abs=0.01)
    assert proc.adjust_center_bias(7.8) == pytest.approx(7.8)
    assert proc.tick().expected_x == pytest.approx(0.6, abs=0.01)
