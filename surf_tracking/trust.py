# trust.py
"""Running GPS/vision disagreement statistics (telemetry + fail-safe gate)."""
from __future__ import annotations

import math
from typing import Optional

from surf_tracking.common import TrustMetrics
from surf_tracking.config import TrustConfig
from surf_tracking.helpers import clamp, ema


class TrustEstimator:
    def __init__(self, cfg: TrustConfig):
        self.cfg = cfg
        self.bias_ema: Optional[float] = None
        self.sq_error_ema: Optional[float] = None
        self.sample_count = 0
        self.excluded_count = 0

    def update(self, expected_x: float, vision_x: float) -> None:
        error = expected_x - vision_x
        self.bias_ema = ema(self.bias_ema, error, self.cfg.alpha)
        self.sq_error_ema = ema(self.sq_error_ema, error * error, self.cfg.alpha)
        self.sample_count += 1

    def note_excluded(self) -> None:
        """A locked frame too far from GPS to count as a trust sample."""
        self.excluded_count += 1

    @property
    def rms(self) -> float:
        return math.sqrt(self.sq_error_ema) if self.sq_error_ema is not None else 0.0

    @property
    def trust(self) -> float:
        if self.sample_count < self.cfg.min_samples:
            return 0.0
        return clamp(1.0 - self.rms / self.cfg.max_error_for_zero_trust, 0.0, 1.0)

    def is_good(self, threshold: float) -> bool:
        return self.sample_count >= self.cfg.min_samples and self.trust >= threshold

    def metrics(self) -> TrustMetrics:
        return TrustMetrics(
            bias_ema=self.bias_ema or 0.0,
            rms_ema=self.rms,
            sample_count=self.sample_count,
            trust=self.trust,
            excluded_count=self.excluded_count,
        )

    def reset(self) -> None:
        self.bias_ema = None
        self.sq_error_ema = None
        self.sample_count = 0
        self.excluded_count = 0
