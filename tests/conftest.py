from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import numpy as np
import pytest

from surf_tracking.common import Coordinate, Detection
from surf_tracking.config import TrackingConfig


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeActuator:
    def __init__(self, pan: float = 90.0, tilt: float = 90.0):
        self.pan = pan
        self.tilt = tilt
        self.calls: List[Tuple[str, int]] = []

    def set_pan_angle(self, deg: int) -> None:
        self.calls.append(("pan", deg))
        self.pan = float(deg)

    def set_tilt_angle(self, deg: int) -> None:
        self.calls.append(("tilt", deg))
        self.tilt = float(deg)

    def get_current_pan_angle(self) -> float:
        return self.pan

    def get_current_tilt_angle(self) -> float:
        return self.tilt


class FakeZoomDevice:
    def __init__(self, lo: float = 1.0, hi: float = 6.0):
        self.lo = lo
        self.hi = hi
        self.applied: List[float] = []

    def set_zoom(self, factor: float) -> float:
        factor = max(self.lo, min(self.hi, factor))
        self.applied.append(factor)
        return factor

    def get_min_max_zoom(self) -> Tuple[float, float]:
        return self.lo, self.hi


class FakeDetector:
    """Returns queued detections; colours come from a per-id table."""

    def __init__(self, colors: Optional[Dict[int, np.ndarray]] = None):
        self.queue: List[List[Detection]] = []
        self.colors: Dict[int, np.ndarray] = colors or {}
        self.current: List[Detection] = []

    def detect(self, frame: np.ndarray) -> List[Detection]:
        self.current = self.queue.pop(0) if self.queue else []
        return self.current

    def sample_average_color(self, frame, box) -> Optional[np.ndarray]:
        # Identify the detection by its (padded) box centre
        cx = box[0] + box[2] / 2.0
        cy = box[1] + box[3] / 2.0
        for det in self.current:
            if abs(det.center_x - cx) < 1e-6 and abs(det.center_y - cy) < 1e-6:
                return self.colors.get(det.id)
        return None


def person(
    id: int,
    x: float = 0.5,
    y: float = 0.5,
    w: float = 0.06,
    h: float = 0.2,
    confidence: float = 0.9,
) -> Detection:
    return Detection(id=id, center_x=x, center_y=y, width=w, height=h, confidence=confidence)


def offset_coordinate(origin: Coordinate, bearing_deg: float, distance_m: float) -> Coordinate:
    """Small-distance flat-earth offset, good enough for a few hundred metres."""
    d_north = distance_m * np.cos(np.radians(bearing_deg))
    d_east = distance_m * np.sin(np.radians(bearing_deg))
    lat = origin.latitude + np.degrees(d_north / 6_371_000.0)
    lon = origin.longitude + np.degrees(d_east / (6_371_000.0 * np.cos(np.radians(origin.latitude))))
    return Coordinate(float(lat), float(lon))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cfg() -> TrackingConfig:
    return TrackingConfig()


@pytest.fixture
def actuator() -> FakeActuator:
    return FakeActuator()


@pytest.fixture
def zoom_device() -> FakeZoomDevice:
    return FakeZoomDevice()


@pytest.fixture
def rig_position() -> Coordinate:
    return Coordinate(36.9519, -122.0253)
