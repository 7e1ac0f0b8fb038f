# surf_tracking/__init__.py
"""Surf-tracking package – re-export high-level API."""
from .processor import Calibration, TrackingProcessor    # noqa: F401
from .scheduler import TickScheduler                     # noqa: F401
from .common import (                                    # noqa: F401
    Authority, Axis, Detection, GeodeticFix, TrackingMode,
    TrackingSnapshot, TrackState, ZoomMode,
)
from .config import (                                    # noqa: F401
    CameraConfig, DetectorConfig, PanTiltConfig,
    TrackingConfig, WearableConfig,
)
