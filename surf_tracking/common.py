# common.py
"""Objects that are shared across multiple modules."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class TrackState(str, Enum):
    SEARCHING = "searching"
    LOCKED = "locked"
    LOST = "lost"


class TrackingMode(str, Enum):
    OFF = "off"
    VISION_ONLY = "vision_only"
    GPS_ONLY = "gps_only"
    FUSION = "fusion"


class Authority(str, Enum):
    IDLE = "idle"
    VISION = "vision"
    GPS = "gps"


class ZoomMode(str, Enum):
    FIXED = "fixed"
    AUTO_SUBJECT_WIDTH = "auto_subject_width"
    AUTO_DISTANCE = "auto_distance"
    OFF = "off"


class Axis(str, Enum):
    PAN = "pan"
    TILT = "tilt"


@dataclass(frozen=True)
class Detection:
    """
    One person candidate for one frame.
    Positions are normalized to [0, 1], origin top-left, y pointing down.
    """
    id: int
    center_x: float
    center_y: float
    width: float
    height: float
    confidence: float

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / max(self.height, 1e-4)

    @property
    def box(self) -> Tuple[float, float, float, float]:
        """(x, y, w, h) with x/y at the top-left corner."""
        return (
            self.center_x - self.width / 2.0,
            self.center_y - self.height / 2.0,
            self.width,
            self.height,
        )


@dataclass(frozen=True)
class TrackCenter:
    x: float
    y: float


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class GeodeticFix:
    latitude: float
    longitude: float
    accuracy: float
    timestamp: float

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


@dataclass(frozen=True)
class BearingEstimate:
    instant_bearing: float
    filtered_bearing: float
    distance_m: float
    speed_mps: float


@dataclass(frozen=True)
class TrustMetrics:
    bias_ema: float
    rms_ema: float
    sample_count: int
    trust: float
    excluded_count: int = 0


@dataclass(frozen=True)
class ActuatorCommand:
    axis: Axis
    angle: int
    immediate: bool = False


@dataclass(frozen=True)
class DetectionFrame:
    """What the detector worker publishes for the control tick."""
    seq: int
    timestamp: float
    detections: Tuple[Detection, ...]
    frame: Optional[np.ndarray] = None


@dataclass(frozen=True)
class TrackingSnapshot:
    """
    Read-only telemetry for the UI layer.
    Not part of the control contract.
    """
    mode: TrackingMode
    state: TrackState
    authority: Authority
    track_center: Optional[TrackCenter]
    chosen: Optional[Detection]
    expected_x: Optional[float]
    hard_locked: bool
    locked_id: Optional[int]
    locked_color: Optional[Tuple[float, float, float]]
    reacquiring: bool
    trust: TrustMetrics
    zoom_factor: float
    zoom_mode: ZoomMode
    hfov_deg: float
    pan_angle: float
    tilt_angle: float
    gps_receiving: bool
    bearing: Optional[BearingEstimate]
