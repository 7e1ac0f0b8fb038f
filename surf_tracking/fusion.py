# fusion.py
"""
Searching / Locked / Lost state machine and control-authority arbitration.

    SEARCHING --N vision frames--> LOCKED --M empty frames--> LOST
        ^                            |                          |
        +---- drift fail-safe -------+                          |
        +---------------- any vision target --------------------+

While LOCKED, vision alone drives the rig. GPS only feeds the trust
estimator and the drift fail-safe, which abandons a track that has
disagreed with a trusted GPS bearing for too long.
"""
from __future__ import annotations

import logging
from typing import Optional

from surf_tracking.common import Authority, TrackState
from surf_tracking.config import FusionConfig
from surf_tracking.trust import TrustEstimator

LOGGER = logging.getLogger(__name__)


class FusionStateMachine:
    def __init__(self, cfg: FusionConfig, trust: TrustEstimator):
        self.cfg = cfg
        self.trust = trust
        self.state = TrackState.SEARCHING
        self.consecutive_lock_frames = 0
        self.consecutive_lost_frames = 0
        self.drift_frames = 0

    # ------------------------------------------------------------------ #
    #   T R A N S I T I O N S
    # ------------------------------------------------------------------ #
    def update(self, vision_x: Optional[float], expected_x: Optional[float]) -> TrackState:
        """Advance one frame. ``vision_x`` is None when no target was chosen."""
        has_vision = vision_x is not None

        if self.state is TrackState.SEARCHING:
            if has_vision:
                self.consecutive_lock_frames += 1
                if self.consecutive_lock_frames >= self.cfg.lock_frames:
                    self._transition(TrackState.LOCKED, "vision stable")
                    self.consecutive_lost_frames = 0
                    self.drift_frames = 0
            else:
                self.consecutive_lock_frames = 0

        elif self.state is TrackState.LOCKED:
            if has_vision:
                self.consecutive_lost_frames = 0
                self._check_drift(vision_x, expected_x)
            else:
                self.consecutive_lost_frames += 1
                if self.consecutive_lost_frames >= self.cfg.lost_frames:
                    self._transition(TrackState.LOST, "vision gone")
                    self.consecutive_lock_frames = 0
                    self.drift_frames = 0

        elif self.state is TrackState.LOST:
            if has_vision:
                self._transition(TrackState.SEARCHING, "vision reacquired")
                self.consecutive_lock_frames = 1
                self.consecutive_lost_frames = 0

        return self.state

    def _check_drift(self, vision_x: float, expected_x: Optional[float]) -> None:
        if expected_x is None:
            self.drift_frames = 0
            return

        disagreement = abs(vision_x - expected_x)
        if disagreement <= self.cfg.drift_threshold:
            # Only agreeing samples feed trust; a drifting track says
            # nothing about GPS quality.
            self.trust.update(expected_x, vision_x)
            self.drift_frames = 0
            return

        self.trust.note_excluded()
        if not self.trust.is_good(self.cfg.gps_trust_threshold):
            self.drift_frames = 0
            return

        self.drift_frames += 1
        LOGGER.debug(
            "[Fusion] drift %.3f (frame %d/%d)", disagreement, self.drift_frames, self.cfg.drift_frames
        )
        if self.drift_frames >= self.cfg.drift_frames:
            self._transition(TrackState.SEARCHING, "drift fail-safe")
            self._reset_counters()

    def _transition(self, new_state: TrackState, reason: str) -> None:
        LOGGER.info("[Fusion] %s -> %s (%s)", self.state.name, new_state.name, reason)
        self.state = new_state

    def _reset_counters(self) -> None:
        self.consecutive_lock_frames = 0
        self.consecutive_lost_frames = 0
        self.drift_frames = 0

    # ------------------------------------------------------------------ #
    #   A U T H O R I T Y
    # ------------------------------------------------------------------ #
    def gps_good(self) -> bool:
        return self.trust.is_good(self.cfg.gps_trust_threshold)

    def authority(
        self,
        vision_x: Optional[float],
        expected_x: Optional[float],
        gps_usable: bool,
    ) -> Authority:
        has_vision = vision_x is not None

        if self.state is TrackState.LOCKED:
            return Authority.VISION if has_vision else Authority.IDLE

        if not gps_usable:
            return Authority.VISION if has_vision else Authority.IDLE

        if (
            has_vision
            and expected_x is not None
            and abs(vision_x - expected_x) <= self.cfg.match_threshold
        ):
            return Authority.VISION
        return Authority.GPS

    def reset(self) -> None:
        self.state = TrackState.SEARCHING
        self._reset_counters()
