# gps.py
"""Wearable fix intake: smoothing, staleness, Kalman-filtered bearing, calibration."""
from __future__ import annotations

import logging
import math
import time
from typing import Callable, List, Optional

import numpy as np
from filterpy.common import Q_discrete_white_noise
from filterpy.kalman import KalmanFilter

from surf_tracking.common import BearingEstimate, Coordinate, GeodeticFix
from surf_tracking.config import GpsConfig
from surf_tracking.geometry import averaged_coordinate, bearing, distance_m, normalize_delta, normalize_heading
from surf_tracking.helpers import ema

LOGGER = logging.getLogger(__name__)


class GpsFixFilter:
    """Keeps the newest raw fix, an EMA-smoothed copy and receipt bookkeeping."""

    def __init__(self, cfg: GpsConfig, clock: Callable[[], float] = time.monotonic):
        self.cfg = cfg
        self.clock = clock
        self.raw: Optional[GeodeticFix] = None
        self.smoothed: Optional[GeodeticFix] = None
        self.received_at: Optional[float] = None
        self.update_rate_hz = 0.0
        self._rate_count = 0
        self._rate_window_start = clock()

    def on_fix(self, fix: GeodeticFix) -> GeodeticFix:
        prev = self.smoothed
        lat = ema(prev.latitude if prev else None, fix.latitude, self.cfg.smoothing_alpha)
        lon = ema(prev.longitude if prev else None, fix.longitude, self.cfg.smoothing_alpha)
        self.raw = fix
        self.smoothed = GeodeticFix(lat, lon, fix.accuracy, fix.timestamp)

        now = self.clock()
        self.received_at = now
        self._rate_count += 1
        elapsed = now - self._rate_window_start
        if elapsed > 1.0:
            self.update_rate_hz = self._rate_count / elapsed
            self._rate_count = 0
            self._rate_window_start = now
        return self.smoothed

    def latency(self) -> float:
        if self.received_at is None:
            return math.inf
        return self.clock() - self.received_at

    def is_receiving(self) -> bool:
        return self.latency() < self.cfg.max_stale_age_s

    def reset(self) -> None:
        """Drop smoothing history (new tracking session)."""
        self.smoothed = None
        self.raw = None
        self.received_at = None


class BearingTracker:
    """
    2-state (bearing, bearing-rate) linear Kalman filter with variable Δt.
    Bearings are unwrapped so a subject crossing north does not spin the
    filter through 360°.
    """

    def __init__(self, cfg: GpsConfig):
        self.cfg = cfg
        self.kf = KalmanFilter(dim_x=2, dim_z=1)
        self.kf.F = np.array([[1.0, 1.0], [0.0, 1.0]])
        self.kf.H = np.array([[1.0, 0.0]])
        self.kf.R = np.array([[cfg.bearing_measurement_std ** 2]])
        self.kf.x = np.zeros((2, 1))
        self.initialized = False
        self.last_time: Optional[float] = None
        self._last_raw: Optional[GeodeticFix] = None
        self._unwrapped: Optional[float] = None
        self.estimate: Optional[BearingEstimate] = None

    def _set_dt(self, dt: float) -> None:
        self.kf.F[0, 1] = dt
        self.kf.Q = Q_discrete_white_noise(dim=2, dt=dt, var=self.cfg.bearing_process_std ** 2)

    def update(
        self, rig: Coordinate, fix: GeodeticFix, raw: Optional[GeodeticFix] = None
    ) -> BearingEstimate:
        """Feed one (smoothed) fix. Speed comes from ``raw`` fixes when given."""
        if raw is None:
            raw = fix
        instant = bearing(rig, fix.coordinate)
        if self._unwrapped is None:
            self._unwrapped = instant
        else:
            self._unwrapped += normalize_delta(instant - normalize_heading(self._unwrapped))

        if not self.initialized:
            self.kf.x[0, 0] = self._unwrapped
            self.kf.x[1, 0] = 0.0
            self.kf.P = np.diag([self.cfg.bearing_measurement_std ** 2, self.cfg.initial_rate_std ** 2])
            self.initialized = True
        else:
            dt = fix.timestamp - self.last_time if self.last_time is not None else 0.0
            if dt > 1e-6:
                self._set_dt(dt)
                self.kf.predict()
            self.kf.update(np.array([[self._unwrapped]]))

        speed = 0.0
        if self._last_raw is not None:
            dt = raw.timestamp - self._last_raw.timestamp
            if dt > 1e-6:
                speed = distance_m(self._last_raw.coordinate, raw.coordinate) / dt

        filtered = self.kf.x[0, 0] + self.kf.x[1, 0] * self.cfg.predict_lead_time_s
        self.estimate = BearingEstimate(
            instant_bearing=instant,
            filtered_bearing=normalize_heading(filtered),
            distance_m=distance_m(rig, fix.coordinate),
            speed_mps=speed,
        )
        self.last_time = fix.timestamp
        self._last_raw = raw
        return self.estimate

    def reset(self) -> None:
        self.kf.x = np.zeros((2, 1))
        self.initialized = False
        self.last_time = None
        self._last_raw = None
        self._unwrapped = None
        self.estimate = None


class CalibrationSampler:
    """Collects fixes while standing still and averages them into one coordinate."""

    def __init__(self, cfg: GpsConfig, clock: Callable[[], float] = time.time):
        self.cfg = cfg
        self.clock = clock
        self.samples: List[GeodeticFix] = []

    def add(self, fix: GeodeticFix) -> bool:
        if fix.accuracy <= 0 or fix.accuracy > self.cfg.calibration_max_accuracy_m:
            return False
        if abs(self.clock() - fix.timestamp) > self.cfg.calibration_max_age_s:
            return False
        self.samples.append(fix)
        return True

    def finish(self) -> Optional[Coordinate]:
        coord = averaged_coordinate(self.samples, self.cfg.calibration_min_accuracy_m)
        if coord is None:
            LOGGER.warning("[Calibration] Not enough good samples (%d)", len(self.samples))
        else:
            LOGGER.info(
                "[Calibration] %.6f, %.6f from %d samples",
                coord.latitude, coord.longitude, len(self.samples),
            )
        return coord

    def clear(self) -> None:
        self.samples.clear()
