# scoring.py
"""Per-frame candidate scoring and smoothed track center."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from surf_tracking.color import color_similarity
from surf_tracking.common import Detection, TrackCenter
from surf_tracking.config import ScoreWeights, ScoringConfig
from surf_tracking.helpers import CenterSmoother

LOGGER = logging.getLogger(__name__)

ColorLookup = Callable[[Detection], Optional[np.ndarray]]


@dataclass(frozen=True)
class ScoreBreakdown:
    gps: float
    continuity: float
    size: float
    color: float
    total: float


# ------------------------------------------------------------------ #
#   S U B - S C O R E S
# ------------------------------------------------------------------ #
def gps_score(x: float, expected_x: Optional[float], gate: float) -> float:
    if expected_x is None:
        return 0.0
    dx = abs(x - expected_x)
    if dx >= gate:
        return 0.0
    return 1.0 - dx / gate


def continuity_score(
    det: Detection, previous_center: Optional[TrackCenter], radius: float
) -> float:
    if previous_center is None:
        return 0.0
    dist = math.hypot(det.center_x - previous_center.x, det.center_y - previous_center.y)
    if dist >= radius:
        return 0.0
    return 1.0 - dist / radius


def size_score(det: Detection, cfg: ScoringConfig) -> float:
    # Narrow boxes (aspect below the cutoff) are scored on width alone
    if det.aspect_ratio < cfg.prone_aspect_ratio:
        return min(1.0, det.width / cfg.prone_width_cap)
    return min(1.0, det.area / cfg.upright_area_cap)


def color_score(
    candidate_color: Optional[np.ndarray],
    signature: Optional[np.ndarray],
    strength: float,
    min_strength: float,
) -> float:
    if signature is None or candidate_color is None or strength <= min_strength:
        return 0.0
    return color_similarity(signature, candidate_color) * strength


def weights_for(
    cfg: ScoringConfig, previous_center: Optional[TrackCenter], color_active: bool
) -> ScoreWeights:
    """Re-acquire weights only when there is no prior position to lean on."""
    if previous_center is None and color_active:
        return cfg.reacquire_weights
    return cfg.tracking_weights


def score_person(
    det: Detection,
    cfg: ScoringConfig,
    *,
    expected_x: Optional[float] = None,
    previous_center: Optional[TrackCenter] = None,
    color_signature: Optional[np.ndarray] = None,
    color_strength: float = 0.0,
    candidate_color: Optional[np.ndarray] = None,
    weights: Optional[ScoreWeights] = None,
) -> ScoreBreakdown:
    color_active = color_signature is not None and color_strength > cfg.min_color_strength
    if weights is None:
        weights = weights_for(cfg, previous_center, color_active)

    g = gps_score(det.center_x, expected_x, cfg.gps_gate)
    c = continuity_score(det, previous_center, cfg.continuity_radius)
    s = size_score(det, cfg)
    k = color_score(candidate_color, color_signature, color_strength, cfg.min_color_strength)
    total = weights.gps * g + weights.continuity * c + weights.size * s + weights.color * k
    return ScoreBreakdown(gps=g, continuity=c, size=s, color=k, total=total)


# ------------------------------------------------------------------ #
#   E N G I N E
# ------------------------------------------------------------------ #
class DetectionEngine:
    """Chooses one candidate per frame and keeps the smoothed center."""

    def __init__(self, cfg: ScoringConfig):
        self.cfg = cfg
        self.smoother = CenterSmoother(cfg.alpha_x, cfg.alpha_y)

    @property
    def center(self) -> Optional[TrackCenter]:
        return self.smoother.state

    def filter(self, detections: Sequence[Detection]) -> list:
        return [d for d in detections if d.confidence >= self.cfg.min_confidence]

    def choose(
        self,
        candidates: Sequence[Detection],
        expected_x: Optional[float],
        previous_center: Optional[TrackCenter],
        *,
        color_signature: Optional[np.ndarray] = None,
        color_strength: float = 0.0,
        color_of: Optional[ColorLookup] = None,
    ) -> Optional[Tuple[Detection, ScoreBreakdown]]:
        """Highest composite score wins; ties go to the earliest candidate."""
        if not candidates:
            return None
        color_active = (
            color_signature is not None
            and color_strength > self.cfg.min_color_strength
            and color_of is not None
        )
        weights = weights_for(self.cfg, previous_center, color_active)

        best: Optional[Tuple[Detection, ScoreBreakdown]] = None
        for det in candidates:
            sample = color_of(det) if color_active else None
            breakdown = score_person(
                det,
                self.cfg,
                expected_x=expected_x,
                previous_center=previous_center,
                color_signature=color_signature if color_active else None,
                color_strength=color_strength,
                candidate_color=sample,
                weights=weights,
            )
            if best is None or breakdown.total > best[1].total:
                best = (det, breakdown)
        LOGGER.debug("[Scoring] chose id=%s score=%.3f", best[0].id, best[1].total)
        return best

    def update_center(self, det: Detection) -> TrackCenter:
        return self.smoother.update((det.center_x, det.center_y))

    def reset(self) -> None:
        self.smoother.reset()
