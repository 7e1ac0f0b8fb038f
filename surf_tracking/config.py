# config.py
"""Typed configuration blobs for the whole system."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


# ---------------------- Scoring ---------------------
@dataclass
class ScoreWeights:
    gps: float
    continuity: float
    size: float
    color: float


@dataclass
class ScoringConfig:
    min_confidence: float = 0.5
    gps_gate: float = 0.30             # fraction of frame width
    continuity_radius: float = 0.20    # normalized distance
    prone_aspect_ratio: float = 0.6    # width / height below this uses the width rule
    prone_width_cap: float = 0.10
    upright_area_cap: float = 0.02
    min_color_strength: float = 0.1
    color_padding: float = 0.10
    tracking_weights: ScoreWeights = field(
        default_factory=lambda: ScoreWeights(gps=0.20, continuity=0.25, size=0.20, color=0.35)
    )
    reacquire_weights: ScoreWeights = field(
        default_factory=lambda: ScoreWeights(gps=0.15, continuity=0.10, size=0.30, color=0.45)
    )
    # Center smoothing: horizontal more reactive than vertical
    alpha_x: float = 0.5
    alpha_y: float = 0.3


# --------------------- Hard lock --------------------
@dataclass
class HardLockConfig:
    grace_frames: int = 20   # ~1 s at 20 Hz


# ---------------------- Fusion ----------------------
@dataclass
class FusionConfig:
    lock_frames: int = 12
    lost_frames: int = 8
    drift_threshold: float = 0.30
    drift_frames: int = 15
    match_threshold: float = 0.08
    gps_trust_threshold: float = 0.6
    vision_stale_s: float = 0.5


@dataclass
class TrustConfig:
    alpha: float = 0.05
    max_error_for_zero_trust: float = 0.5
    min_samples: int = 20


# --------------------- Actuation --------------------
@dataclass
class AxisConfig:
    min_angle: float = 10.0
    max_angle: float = 170.0
    setpoint: float = 0.5
    deadband: float = 0.05
    gain: float = 16.0          # degrees per unit of normalized offset
    max_step: float = 4.0       # degrees per tick
    mirror: float = 1.0         # +1 when a larger angle turns toward larger screen coordinates
    smoothing_alpha: float = 0.6
    min_smoothing_alpha: float = 0.2


@dataclass
class ActuationConfig:
    pan: AxisConfig = field(default_factory=AxisConfig)
    tilt: AxisConfig = field(
        default_factory=lambda: AxisConfig(
            min_angle=60.0,
            max_angle=120.0,
            setpoint=0.55,
            deadband=0.06,
            gain=10.0,
            max_step=2.0,
        )
    )
    manual_override_s: float = 0.5
    # Gentle pan toward where GPS says the subject should be
    gps_nudge_gain: float = 2.0
    gps_nudge_max_step: float = 2.0
    gps_nudge_deadband: float = 0.05
    # Absolute GPS follower
    gps_follow_deadband_deg: float = 0.5
    gps_follow_steps: List[Tuple[float, float]] = field(
        default_factory=lambda: [(30.0, 8.0), (10.0, 5.0), (0.0, 3.0)]
    )


# ----------------------- Zoom -----------------------
@dataclass
class ZoomConfig:
    fixed_factor: float = 1.0
    logical_min: float = 1.0
    logical_max: float = 6.0
    min_change: float = 0.01
    smoothing_alpha: float = 0.35
    max_delta_per_tick: float = 0.08
    high_zoom_threshold: float = 3.0
    high_zoom_slowdown: float = 0.5
    # Subject-width policy
    target_width: float = 0.06
    inner_band: float = 0.01
    outer_band: float = 0.02
    persistence_frames: int = 5
    max_step: float = 0.25
    # Distance policy
    distance_points: List[Tuple[float, float]] = field(
        default_factory=lambda: [(0.0, 1.0), (30.0, 1.0), (80.0, 2.0), (150.0, 4.0)]
    )
    min_factor: float = 1.0
    distance_deadband_m: float = 3.0
    max_fix_accuracy_m: float = 15.0


# ------------------------ GPS -----------------------
@dataclass
class GpsConfig:
    smoothing_alpha: float = 0.4
    max_stale_age_s: float = 2.0
    # Bearing Kalman filter
    bearing_measurement_std: float = 2.0     # deg
    bearing_process_std: float = 5.0         # deg/s²
    initial_rate_std: float = 10.0           # deg/s
    predict_lead_time_s: float = 0.0
    # Calibration sampling
    calibration_max_accuracy_m: float = 20.0
    calibration_max_age_s: float = 3.0
    calibration_min_accuracy_m: float = 3.0


# ---------------------- Geometry --------------------
@dataclass
class RigGeometry:
    """Mechanical span of the pan axis and the bearing range it covers."""
    min_angle: float = 0.0
    max_angle: float = 180.0
    center_angle: float = 90.0
    coverage_deg: float = 180.0     # negative for a servo that turns counter-clockwise

    @property
    def degrees_per_unit(self) -> float:
        return self.coverage_deg / (self.max_angle - self.min_angle)


@dataclass
class ZoomPreset:
    name: str
    factor: float
    hfov_deg: float


@dataclass
class LensModel:
    """Zoom presets (lens switch points) plus per-preset centre bias."""
    presets: List[ZoomPreset] = field(
        default_factory=lambda: [
            ZoomPreset("wide", 1.0, 78.0),
            ZoomPreset("tele", 3.0, 28.0),
        ]
    )
    # Positive = nudge tracking to the right, degrees
    center_bias_deg: Dict[str, float] = field(default_factory=dict)

    def preset_for(self, zoom: float) -> ZoomPreset:
        ordered = sorted(self.presets, key=lambda p: p.factor)
        chosen = ordered[0]
        for preset in ordered:
            if preset.factor <= zoom + 1e-9:
                chosen = preset
        return chosen

    def hfov_for(self, zoom: float) -> float:
        """Pinhole-scale the active preset's HFOV by the residual digital zoom."""
        preset = self.preset_for(zoom)
        residual = max(zoom / preset.factor, 1.0)
        half = math.radians(preset.hfov_deg) / 2.0
        return math.degrees(2.0 * math.atan(math.tan(half) / residual))

    def bias_for(self, zoom: float) -> float:
        return self.center_bias_deg.get(self.preset_for(zoom).name, 0.0)

    def adjust_bias(self, zoom: float, delta: float) -> float:
        name = self.preset_for(zoom).name
        self.center_bias_deg[name] = self.center_bias_deg.get(name, 0.0) + delta
        return self.center_bias_deg[name]


# ---------------------- Aggregate -------------------
@dataclass
class TrackingConfig:
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    hard_lock: HardLockConfig = field(default_factory=HardLockConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    trust: TrustConfig = field(default_factory=TrustConfig)
    actuation: ActuationConfig = field(default_factory=ActuationConfig)
    zoom: ZoomConfig = field(default_factory=ZoomConfig)
    gps: GpsConfig = field(default_factory=GpsConfig)
    rig: RigGeometry = field(default_factory=RigGeometry)
    lens: LensModel = field(default_factory=LensModel)
    tick_hz: float = 20.0


# ---------------------- Adapters --------------------
@dataclass
class CameraConfig:
    device_index: int = 0
    width: int = 1280
    height: int = 720
    fps_request: int = 30
    use_v4l2: bool = True
    fourcc_str: str = "MJPG"
    # Logical zoom range and the raw CAP_PROP_ZOOM values it maps onto
    zoom_min: float = 1.0
    zoom_max: float = 4.0
    zoom_raw_min: int = 100
    zoom_raw_max: int = 400


@dataclass
class DetectorConfig:
    model_path: str = "efficientdet_lite0.tflite"
    min_detection_confidence: float = 0.5
    max_results: int = 8
    min_bbox_size_px: int = 12
    iou_match_threshold: float = 0.3


@dataclass
class PanTiltConfig:
    port: Optional[str] = None          # Set to "/dev/ttyUSB0" or COM-port to enable
    baudrate: int = 115_200
    center_on_startup: bool = True
    center_on_shutdown: bool = True


@dataclass
class WearableConfig:
    host: str = "0.0.0.0"
    port: int = 5005
