# actuation.py
"""Normalized target position → bounded, smoothed pan/tilt commands."""
from __future__ import annotations

import logging
import math
import time
from typing import Callable, Dict, List, Optional

from surf_tracking.common import ActuatorCommand, Axis
from surf_tracking.config import ActuationConfig, AxisConfig
from surf_tracking.helpers import clamp
from surf_tracking.interfaces import Actuator

LOGGER = logging.getLogger(__name__)


class ActuationController:
    """
    Proportional follower with deadband and per-tick step cap, one axis at a
    time (pan first, tilt only if pan stayed put). Gain and step cap shrink
    as zoom increases so narrow FOVs do not overshoot; the deadband stays at
    its configured width.
    """

    def __init__(
        self,
        actuator: Actuator,
        cfg: ActuationConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.actuator = actuator
        self.cfg = cfg
        self.clock = clock
        self.last_commanded: Dict[Axis, Optional[float]] = {Axis.PAN: None, Axis.TILT: None}
        self._last_sent: Dict[Axis, Optional[int]] = {Axis.PAN: None, Axis.TILT: None}
        self._override_until = 0.0

    # ------------------------------------------------------------------ #
    #   D E V I C E   A C C E S S
    # ------------------------------------------------------------------ #
    def _axis_cfg(self, axis: Axis) -> AxisConfig:
        return self.cfg.pan if axis is Axis.PAN else self.cfg.tilt

    def current_angle(self, axis: Axis) -> float:
        if axis is Axis.PAN:
            return float(self.actuator.get_current_pan_angle())
        return float(self.actuator.get_current_tilt_angle())

    def _send(self, axis: Axis, angle: int, immediate: bool) -> ActuatorCommand:
        if axis is Axis.PAN:
            self.actuator.set_pan_angle(angle)
        else:
            self.actuator.set_tilt_angle(angle)
        self._last_sent[axis] = angle
        return ActuatorCommand(axis=axis, angle=angle, immediate=immediate)

    @staticmethod
    def _bounded_int(angle: float, cfg: AxisConfig) -> int:
        lo = math.ceil(cfg.min_angle)
        hi = math.floor(cfg.max_angle)
        return int(clamp(round(angle), lo, hi))

    def _send_smoothed(self, axis: Axis, raw: float, zoom: float) -> Optional[ActuatorCommand]:
        cfg = self._axis_cfg(axis)
        z = max(zoom, 1.0)
        alpha = max(cfg.min_smoothing_alpha, cfg.smoothing_alpha / z)
        last = self.last_commanded[axis]
        if last is None:
            last = self.current_angle(axis)
        commanded = clamp(last + alpha * (raw - last), cfg.min_angle, cfg.max_angle)
        self.last_commanded[axis] = commanded

        angle = self._bounded_int(commanded, cfg)
        last_sent = self._last_sent[axis]
        if last_sent is None:
            last_sent = round(self.current_angle(axis))
        if angle == last_sent:
            return None
        return self._send(axis, angle, immediate=False)

    # ------------------------------------------------------------------ #
    #   M A N U A L   O V E R R I D E
    # ------------------------------------------------------------------ #
    def manual_override_active(self) -> bool:
        return self.clock() < self._override_until

    def nudge(self, axis: Axis, delta_deg: float) -> ActuatorCommand:
        """Immediate, unsmoothed manual move; pauses automatic control briefly."""
        cfg = self._axis_cfg(axis)
        target = clamp(self.current_angle(axis) + delta_deg, cfg.min_angle, cfg.max_angle)
        self.last_commanded[axis] = target
        self._override_until = self.clock() + self.cfg.manual_override_s
        LOGGER.debug("[Actuation] manual %s nudge %+.1f -> %.1f", axis.value, delta_deg, target)
        return self._send(axis, self._bounded_int(target, cfg), immediate=True)

    # ------------------------------------------------------------------ #
    #   F O L L O W E R S
    # ------------------------------------------------------------------ #
    def axis_target(self, axis: Axis, coordinate: float, zoom: float) -> Optional[float]:
        """New raw angle for one axis, or None inside the deadband."""
        cfg = self._axis_cfg(axis)
        z = max(zoom, 1.0)
        offset = coordinate - cfg.setpoint
        if abs(offset) < cfg.deadband:
            return None
        max_step = cfg.max_step / z
        step = clamp(offset * (cfg.gain / z) * cfg.mirror, -max_step, max_step)
        return clamp(self.current_angle(axis) + step, cfg.min_angle, cfg.max_angle)

    def follow(self, x: float, y: Optional[float], zoom: float = 1.0) -> List[ActuatorCommand]:
        """Keep a normalized (x, y) target at the pan/tilt setpoints."""
        if self.manual_override_active():
            return []

        pan_target = self.axis_target(Axis.PAN, x, zoom)
        if pan_target is not None:
            cmd = self._send_smoothed(Axis.PAN, pan_target, zoom)
            # Never move both axes in one tick
            return [cmd] if cmd else []

        if y is None:
            return []
        tilt_target = self.axis_target(Axis.TILT, y, zoom)
        if tilt_target is None:
            return []
        cmd = self._send_smoothed(Axis.TILT, tilt_target, zoom)
        return [cmd] if cmd else []

    def pan_toward_x(self, expected_x: float, zoom: float = 1.0) -> List[ActuatorCommand]:
        """Slow pan toward where GPS says the subject should be on screen."""
        if self.manual_override_active():
            return []
        offset = expected_x - 0.5
        if abs(offset) < self.cfg.gps_nudge_deadband:
            return []
        z = max(zoom, 1.0)
        max_step = self.cfg.gps_nudge_max_step / z
        step = clamp(offset * (self.cfg.gps_nudge_gain / z) * self.cfg.pan.mirror, -max_step, max_step)
        target = clamp(self.current_angle(Axis.PAN) + step, self.cfg.pan.min_angle, self.cfg.pan.max_angle)
        cmd = self._send_smoothed(Axis.PAN, target, zoom)
        return [cmd] if cmd else []

    def drive_pan_to(self, target_angle: float, zoom: float = 1.0) -> List[ActuatorCommand]:
        """Absolute GPS follower: bigger steps for bigger errors."""
        if self.manual_override_active():
            return []
        current = self.current_angle(Axis.PAN)
        diff = target_angle - current
        if abs(diff) < self.cfg.gps_follow_deadband_deg:
            return []

        max_step = self.cfg.gps_follow_steps[-1][1]
        for threshold, step_cap in self.cfg.gps_follow_steps:
            if abs(diff) > threshold:
                max_step = step_cap
                break
        target = clamp(current + clamp(diff, -max_step, max_step), self.cfg.pan.min_angle, self.cfg.pan.max_angle)
        cmd = self._send_smoothed(Axis.PAN, target, zoom)
        return [cmd] if cmd else []

    def reset(self) -> None:
        self.last_commanded = {Axis.PAN: None, Axis.TILT: None}
        self._last_sent = {Axis.PAN: None, Axis.TILT: None}
        self._override_until = 0.0
