# processor.py
"""Glue logic: detections + GPS → fusion → pan/tilt rig and zoom."""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Sequence

import numpy as np

from surf_tracking.actuation import ActuationController
from surf_tracking.color import pad_box
from surf_tracking.common import (
    ActuatorCommand,
    Authority,
    Axis,
    Coordinate,
    Detection,
    DetectionFrame,
    GeodeticFix,
    TrackingMode,
    TrackingSnapshot,
    TrackState,
    ZoomMode,
)
from surf_tracking.config import TrackingConfig
from surf_tracking.fusion import FusionStateMachine
from surf_tracking.geometry import (
    actuator_angle_from_heading,
    bearing,
    expected_screen_x,
    heading_from_actuator_angle,
)
from surf_tracking.gps import BearingTracker, GpsFixFilter
from surf_tracking.hard_lock import FrameChoice, HardLockSelector
from surf_tracking.interfaces import Actuator, Detector, ZoomDevice
from surf_tracking.live_tuning import apply_runtime_params
from surf_tracking.scoring import DetectionEngine
from surf_tracking.trust import TrustEstimator
from surf_tracking.zoom import AutoZoomRegulator, distance_gate

LOGGER = logging.getLogger(__name__)

_NO_CHOICE = FrameChoice(None, None, None)


@dataclass
class Calibration:
    rig: Optional[Coordinate] = None
    center: Optional[Coordinate] = None

    @property
    def center_bearing(self) -> Optional[float]:
        if self.rig is None or self.center is None:
            return None
        return bearing(self.rig, self.center)

    @property
    def ready(self) -> bool:
        return self.rig is not None and self.center is not None


class TrackingProcessor:
    """
    The main high-level orchestrator.

    Producer threads call :meth:`publish_detections` / :meth:`submit_frame`
    and :meth:`submit_fix`; they only touch ``_input_lock``. The control side
    calls :meth:`tick` (periodic or event-driven), which works on a snapshot
    of those inputs under ``_tick_lock`` so a mode switch never interleaves
    with a half-finished tick.
    """

    def __init__(
        self,
        cfg: TrackingConfig,
        detector: Detector,
        actuator: Actuator,
        zoom_device: ZoomDevice,
        *,
        mode: TrackingMode = TrackingMode.OFF,
        zoom_mode: ZoomMode = ZoomMode.FIXED,
        calibration: Optional[Calibration] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cfg = cfg
        self.detector = detector
        self.clock = clock
        self.mode = mode
        self.calibration = calibration or Calibration()

        # Core pipeline objects ----------------------------------------
        self.trust = TrustEstimator(cfg.trust)
        self.fusion = FusionStateMachine(cfg.fusion, self.trust)
        self.engine = DetectionEngine(cfg.scoring)
        self.selector = HardLockSelector(self.engine, cfg.hard_lock)
        self.actuation = ActuationController(actuator, cfg.actuation, clock=clock)
        self.zoom = AutoZoomRegulator(zoom_device, cfg.zoom, cfg.lens, mode=zoom_mode)
        self.gps = GpsFixFilter(cfg.gps, clock=clock)
        self.bearing_tracker = BearingTracker(cfg.gps)

        # Shared inputs -------------------------------------------------
        self._input_lock = threading.Lock()
        self._tick_lock = threading.RLock()
        self._frame_seq = 0
        self._latest_frame: Optional[DetectionFrame] = None
        self._fixes: Deque[GeodeticFix] = deque(maxlen=32)

        # Tick bookkeeping ---------------------------------------------
        self._consumed_seq = 0
        self._choice: FrameChoice = _NO_CHOICE
        self._choice_frame: Optional[DetectionFrame] = None
        self._expected_x: Optional[float] = None
        self._authority = Authority.IDLE
        self.last_commands: List[ActuatorCommand] = []
        self._snapshot = self._build_snapshot()

    # ------------------------------------------------------------------ #
    #   P R O D U C E R   S I D E
    # ------------------------------------------------------------------ #
    def submit_frame(self, frame: np.ndarray, timestamp: Optional[float] = None) -> DetectionFrame:
        """Run the detector on the calling (worker) thread and publish the result."""
        detections = self.detector.detect(frame)
        return self.publish_detections(detections, frame, timestamp)

    def publish_detections(
        self,
        detections: Sequence[Detection],
        frame: Optional[np.ndarray] = None,
        timestamp: Optional[float] = None,
    ) -> DetectionFrame:
        with self._input_lock:
            self._frame_seq += 1
            published = DetectionFrame(
                seq=self._frame_seq,
                timestamp=self.clock() if timestamp is None else timestamp,
                detections=tuple(detections),
                frame=frame,
            )
            self._latest_frame = published
        return published

    def submit_fix(self, fix: GeodeticFix) -> None:
        with self._input_lock:
            self._fixes.append(fix)

    def gps_driven(self) -> bool:
        return self.mode in (TrackingMode.GPS_ONLY, TrackingMode.FUSION)

    # ------------------------------------------------------------------ #
    #   C O M M A N D S
    # ------------------------------------------------------------------ #
    def set_mode(self, mode: TrackingMode) -> None:
        with self._tick_lock:
            if mode is not self.mode:
                LOGGER.info("[Processor] mode %s -> %s", self.mode.value, mode.value)
            self.mode = mode
            self.reset_session()

    def set_zoom_mode(self, mode: ZoomMode, fixed_factor: Optional[float] = None) -> None:
        with self._tick_lock:
            self.zoom.set_mode(mode, fixed_factor)

    def set_calibration(
        self, rig: Optional[Coordinate] = None, center: Optional[Coordinate] = None
    ) -> None:
        with self._tick_lock:
            if rig is not None:
                self.calibration.rig = rig
            if center is not None:
                self.calibration.center = center
            if self.calibration.ready:
                LOGGER.info(
                    "[Processor] Calibrated bearing = %.1f° (rig -> centre)",
                    self.calibration.center_bearing,
                )
            self.bearing_tracker.reset()

    def request_lock(self) -> bool:
        """
        Hard-lock the subject chosen on the last processed frame, sampling its
        colour from that same frame. With nothing chosen the request is dropped.
        """
        with self._tick_lock:
            chosen = self._choice.chosen
            if chosen is None or self._choice_frame is None:
                LOGGER.warning("[Processor] Lock requested with no subject chosen; ignored")
                return False
            lookup = self._color_lookup(self._choice_frame)
            locked = self.selector.lock_on(chosen, lookup(chosen) if lookup else None)
            self._snapshot = self._build_snapshot()
            return locked

    def release_lock(self) -> None:
        with self._tick_lock:
            self.selector.release()

    def nudge(self, axis: Axis, delta_deg: float) -> ActuatorCommand:
        with self._tick_lock:
            return self.actuation.nudge(axis, delta_deg)

    def adjust_center_bias(self, delta_deg: float) -> float:
        """Trim the GPS projection for the lens preset currently in use."""
        with self._tick_lock:
            bias = self.cfg.lens.adjust_bias(self.zoom.factor, delta_deg)
            LOGGER.info(
                "[Processor] Centre bias for %s = %+.1f°",
                self.cfg.lens.preset_for(self.zoom.factor).name, bias,
            )
            return bias

    def apply_runtime_params(self, params: Dict[str, object]) -> List[str]:
        """Live-tune the config between ticks, never during one."""
        with self._tick_lock:
            return apply_runtime_params(self.cfg, params)

    def reset_session(self) -> None:
        """Forget everything tied to the current tracking session."""
        with self._tick_lock:
            self.selector.reset()
            self.engine.reset()
            self.fusion.reset()
            self.trust.reset()
            self.zoom.reset()
            self.actuation.reset()
            self.gps.reset()
            self.bearing_tracker.reset()
            with self._input_lock:
                self._consumed_seq = self._frame_seq
                self._fixes.clear()
            self._choice = _NO_CHOICE
            self._choice_frame = None
            self._expected_x = None
            self._authority = Authority.IDLE
            self.last_commands = []
            self._snapshot = self._build_snapshot()

    # ------------------------------------------------------------------ #
    #   T I C K
    # ------------------------------------------------------------------ #
    def tick(self) -> TrackingSnapshot:
        with self._tick_lock:
            now = self.clock()
            with self._input_lock:
                frame = self._latest_frame
                fixes = list(self._fixes)
                self._fixes.clear()

            self._ingest_fixes(fixes)
            self.last_commands = []

            if self.mode is TrackingMode.OFF:
                self._authority = Authority.IDLE
                self._snapshot = self._build_snapshot()
                return self._snapshot

            zoom = self.zoom.factor
            gps_usable = self._gps_usable()
            expected_x = self._compute_expected_x(zoom) if gps_usable else None
            self._expected_x = expected_x
            gating_x = expected_x if self.mode is TrackingMode.FUSION else None

            # -------- vision --------
            advance = False
            if self.mode is TrackingMode.GPS_ONLY:
                self._choice = _NO_CHOICE
                self._choice_frame = None
            elif frame is None or now - frame.timestamp > self.cfg.fusion.vision_stale_s:
                # Detector silent: every tick is a frame without a target
                self.selector.note_empty_frame()
                self.engine.reset()
                self._choice = _NO_CHOICE
                self._choice_frame = None
                advance = True
            elif frame.seq != self._consumed_seq:
                self._consumed_seq = frame.seq
                self._choice_frame = frame
                self._choice = self.selector.process(
                    frame.detections, gating_x, self._color_lookup(frame)
                )
                advance = True

            center = self._choice.center
            vision_x = center.x if center else None
            if advance:
                self.fusion.update(vision_x, gating_x)

            # -------- authority + actuation --------
            self._authority = self._decide_authority(vision_x, gating_x, gps_usable)
            if self._authority is Authority.VISION and center is not None:
                self.last_commands = self.actuation.follow(center.x, center.y, zoom)
            elif self._authority is Authority.GPS:
                self.last_commands = self._drive_by_gps(gating_x, zoom)

            # -------- zoom --------
            self._update_zoom(gps_usable)

            self._snapshot = self._build_snapshot()
            return self._snapshot

    def snapshot(self) -> TrackingSnapshot:
        return self._snapshot

    # ------------------------------------------------------------------ #
    #   H E L P E R S
    # ------------------------------------------------------------------ #
    def _ingest_fixes(self, fixes: List[GeodeticFix]) -> None:
        for fix in fixes:
            smoothed = self.gps.on_fix(fix)
            if self.calibration.rig is not None:
                self.bearing_tracker.update(self.calibration.rig, smoothed, raw=fix)

    def _gps_usable(self) -> bool:
        return (
            self.mode is not TrackingMode.VISION_ONLY
            and self.calibration.ready
            and self.gps.smoothed is not None
            and self.gps.is_receiving()
        )

    def _compute_expected_x(self, zoom: float) -> Optional[float]:
        center_bearing = self.calibration.center_bearing
        heading = heading_from_actuator_angle(
            self.actuation.current_angle(Axis.PAN), center_bearing, self.cfg.rig
        )
        return expected_screen_x(
            self.calibration.rig,
            self.gps.smoothed.coordinate,
            center_bearing,
            heading,
            self.zoom.hfov_deg,
            self.cfg.lens.bias_for(zoom),
        )

    def _color_lookup(self, frame: DetectionFrame) -> Optional[Callable[[Detection], Optional[np.ndarray]]]:
        if frame.frame is None:
            return None
        cache: Dict[int, Optional[np.ndarray]] = {}
        padding = self.cfg.scoring.color_padding

        def lookup(det: Detection) -> Optional[np.ndarray]:
            if det.id not in cache:
                cache[det.id] = self.detector.sample_average_color(frame.frame, pad_box(det.box, padding))
            return cache[det.id]

        return lookup

    def _decide_authority(
        self, vision_x: Optional[float], gating_x: Optional[float], gps_usable: bool
    ) -> Authority:
        if self.mode is TrackingMode.VISION_ONLY:
            return Authority.VISION if vision_x is not None else Authority.IDLE
        if self.mode is TrackingMode.GPS_ONLY:
            return Authority.GPS if gps_usable else Authority.IDLE
        return self.fusion.authority(vision_x, gating_x, gps_usable)

    def _drive_by_gps(self, gating_x: Optional[float], zoom: float) -> List[ActuatorCommand]:
        # Subject should be in frame but vision has not confirmed: creep toward it
        if gating_x is not None:
            return self.actuation.pan_toward_x(gating_x, zoom)
        estimate = self.bearing_tracker.estimate
        if estimate is None:
            return []
        target = actuator_angle_from_heading(
            estimate.filtered_bearing, self.calibration.center_bearing, self.cfg.rig
        )
        return self.actuation.drive_pan_to(target, zoom)

    def _update_zoom(self, gps_usable: bool) -> None:
        chosen = self._choice.chosen
        tracking = self.fusion.state is TrackState.LOCKED or self.selector.state.hard_locked
        estimate = self.bearing_tracker.estimate
        raw = self.gps.raw
        trusted = gps_usable and distance_gate(
            self.gps.is_receiving(),
            raw.accuracy if raw else None,
            self.trust.metrics(),
            self.cfg.zoom,
            self.cfg.fusion.gps_trust_threshold,
            self.cfg.trust.min_samples,
        )
        self.zoom.update(
            subject_width=chosen.width if chosen else None,
            tracking=tracking,
            distance_m=estimate.distance_m if estimate else None,
            gps_trusted=trusted,
        )

    def _build_snapshot(self) -> TrackingSnapshot:
        lock = self.selector.state
        color = None
        if lock.color_signature is not None:
            color = tuple(float(c) for c in lock.color_signature[:3])
        return TrackingSnapshot(
            mode=self.mode,
            state=self.fusion.state,
            authority=self._authority,
            track_center=self._choice.center,
            chosen=self._choice.chosen,
            expected_x=self._expected_x,
            hard_locked=lock.hard_locked,
            locked_id=lock.locked_id,
            locked_color=color,
            reacquiring=self._choice.reacquiring,
            trust=self.trust.metrics(),
            zoom_factor=self.zoom.factor,
            zoom_mode=self.zoom.state.mode,
            hfov_deg=self.zoom.hfov_deg,
            pan_angle=self.actuation.current_angle(Axis.PAN),
            tilt_angle=self.actuation.current_angle(Axis.TILT),
            gps_receiving=self.gps.is_receiving(),
            bearing=self.bearing_tracker.estimate,
        )
