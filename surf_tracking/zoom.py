# zoom.py
"""Auto-zoom by apparent subject width or by GPS range."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from surf_tracking.common import TrustMetrics, ZoomMode
from surf_tracking.config import LensModel, ZoomConfig
from surf_tracking.helpers import clamp
from surf_tracking.interfaces import ZoomDevice

LOGGER = logging.getLogger(__name__)


@dataclass
class ZoomState:
    factor: float
    mode: ZoomMode


def distance_gate(
    receiving: bool,
    accuracy_m: Optional[float],
    trust: TrustMetrics,
    cfg: ZoomConfig,
    trust_threshold: float,
    min_trust_samples: int,
) -> bool:
    """
    Range-driven zoom needs a fresh, reasonably accurate fix. Once the trust
    estimator has enough samples to have an opinion, it must agree too.
    """
    # Non-positive accuracy means the wearable did not report one
    if not receiving or accuracy_m is None or not 0.0 < accuracy_m <= cfg.max_fix_accuracy_m:
        return False
    if trust.sample_count < min_trust_samples:
        return True
    return trust.trust >= trust_threshold


class AutoZoomRegulator:
    def __init__(
        self,
        device: ZoomDevice,
        cfg: ZoomConfig,
        lens: LensModel,
        mode: ZoomMode = ZoomMode.FIXED,
    ):
        self.device = device
        self.cfg = cfg
        self.lens = lens
        lo, _ = self.device.get_min_max_zoom()
        self.state = ZoomState(factor=max(lo, cfg.logical_min), mode=mode)
        self.out_of_band_frames = 0
        self._last_distance: Optional[float] = None

    # ------------------------------------------------------------------ #
    #   P U B L I C   A P I
    # ------------------------------------------------------------------ #
    @property
    def factor(self) -> float:
        return self.state.factor

    @property
    def hfov_deg(self) -> float:
        return self.lens.hfov_for(self.state.factor)

    def set_mode(self, mode: ZoomMode, fixed_factor: Optional[float] = None) -> None:
        if fixed_factor is not None:
            self.cfg.fixed_factor = fixed_factor
        if mode is not self.state.mode:
            LOGGER.info("[Zoom] mode %s -> %s", self.state.mode.value, mode.value)
        self.state.mode = mode
        self.reset()

    def update(
        self,
        *,
        subject_width: Optional[float] = None,
        tracking: bool = False,
        distance_m: Optional[float] = None,
        gps_trusted: bool = False,
    ) -> float:
        """Run one regulator step; returns the factor now in effect."""
        mode = self.state.mode
        if mode is ZoomMode.OFF:
            return self.state.factor

        if mode is ZoomMode.FIXED:
            self._apply(self.cfg.fixed_factor)
            return self.state.factor

        desired: Optional[float] = None
        if mode is ZoomMode.AUTO_SUBJECT_WIDTH:
            if tracking and subject_width is not None and subject_width > 0:
                desired = self._desired_for_width(subject_width)
            else:
                # Persistence restarts from zero on the next lock
                self.out_of_band_frames = 0
        elif mode is ZoomMode.AUTO_DISTANCE:
            if gps_trusted and distance_m is not None:
                desired = self._desired_for_distance(distance_m)

        if desired is not None:
            self._apply(self._step_toward(desired))
        return self.state.factor

    def reset(self) -> None:
        self.out_of_band_frames = 0
        self._last_distance = None

    # ------------------------------------------------------------------ #
    #   P O L I C I E S
    # ------------------------------------------------------------------ #
    def _desired_for_width(self, width: float) -> Optional[float]:
        error = self.cfg.target_width - width
        if abs(error) <= self.cfg.inner_band:
            self.out_of_band_frames = 0
            return None

        self.out_of_band_frames += 1
        if self.out_of_band_frames < self.cfg.persistence_frames:
            return None

        span = max(self.cfg.outer_band - self.cfg.inner_band, 1e-6)
        reach = min(1.0, (abs(error) - self.cfg.inner_band) / span)
        direction = 1.0 if error > 0 else -1.0   # too small -> zoom in
        return self.state.factor * (1.0 + direction * reach * self.cfg.max_step)

    def _desired_for_distance(self, distance_m: float) -> float:
        if (
            self._last_distance is not None
            and abs(distance_m - self._last_distance) < self.cfg.distance_deadband_m
        ):
            distance_m = self._last_distance
        else:
            self._last_distance = distance_m

        xs = [p[0] for p in self.cfg.distance_points]
        ys = [p[1] for p in self.cfg.distance_points]
        return max(self.cfg.min_factor, float(np.interp(distance_m, xs, ys)))

    def _step_toward(self, desired: float) -> float:
        current = self.state.factor
        delta = self.cfg.smoothing_alpha * (desired - current)
        cap = self.cfg.max_delta_per_tick
        if current >= self.cfg.high_zoom_threshold:
            cap *= self.cfg.high_zoom_slowdown
        delta = clamp(delta, -cap, cap)
        return clamp(current + delta, self.cfg.logical_min, self.cfg.logical_max)

    # ------------------------------------------------------------------ #
    #   D E V I C E
    # ------------------------------------------------------------------ #
    def _apply(self, factor: float) -> None:
        lo, hi = self.device.get_min_max_zoom()
        target = clamp(factor, lo, hi)
        if abs(target - self.state.factor) < self.cfg.min_change:
            return
        applied = self.device.set_zoom(target)
        self.state.factor = clamp(applied, lo, hi)
        LOGGER.debug("[Zoom] %.2fx", self.state.factor)
