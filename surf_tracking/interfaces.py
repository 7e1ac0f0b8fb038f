# interfaces.py
"""Capabilities the tracking core is constructed with."""
from __future__ import annotations

from typing import List, Optional, Protocol, Tuple

import numpy as np

from surf_tracking.common import Detection, GeodeticFix


class Detector(Protocol):
    def detect(self, frame: np.ndarray) -> List[Detection]:
        ...

    def sample_average_color(
        self, frame: np.ndarray, box: Tuple[float, float, float, float]
    ) -> Optional[np.ndarray]:
        ...


class Actuator(Protocol):
    def set_pan_angle(self, deg: int) -> None:
        ...

    def set_tilt_angle(self, deg: int) -> None:
        ...

    def get_current_pan_angle(self) -> float:
        ...

    def get_current_tilt_angle(self) -> float:
        ...


class ZoomDevice(Protocol):
    def set_zoom(self, factor: float) -> float:
        ...

    def get_min_max_zoom(self) -> Tuple[float, float]:
        ...


class FixSink(Protocol):
    """What a location source pushes into."""

    def on_fix(self, fix: GeodeticFix) -> None:
        ...
