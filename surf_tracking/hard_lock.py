# hard_lock.py
"""Explicit subject lock with colour/size re-acquisition after brief dropouts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from surf_tracking.common import Detection, TrackCenter
from surf_tracking.config import HardLockConfig
from surf_tracking.scoring import ColorLookup, DetectionEngine, ScoreBreakdown

LOGGER = logging.getLogger(__name__)


@dataclass
class LockState:
    locked_id: Optional[int] = None
    color_signature: Optional[np.ndarray] = None
    color_strength: float = 0.0
    frames_since_locked_seen: int = 0
    hard_locked: bool = False

    def clear(self) -> None:
        self.locked_id = None
        self.color_signature = None
        self.color_strength = 0.0
        self.frames_since_locked_seen = 0
        self.hard_locked = False


@dataclass(frozen=True)
class FrameChoice:
    chosen: Optional[Detection]
    center: Optional[TrackCenter]
    breakdown: Optional[ScoreBreakdown]
    reacquiring: bool = False


class HardLockSelector:
    """
    Front door for per-frame selection.

    Without a lock it defers to the scoring engine. With a hard lock the
    locked id always wins while visible; when it is missing the engine runs
    in re-acquire mode (no previous center) for up to ``grace_frames``.
    """

    def __init__(self, engine: DetectionEngine, cfg: HardLockConfig):
        self.engine = engine
        self.cfg = cfg
        self.state = LockState()

    # ------------------------------------------------------------------ #
    #   L O C K   C O M M A N D S
    # ------------------------------------------------------------------ #
    def lock_on(self, det: Detection, color: Optional[np.ndarray]) -> bool:
        if color is None:
            LOGGER.warning("[HardLock] Could not sample colour for id=%s; lock dropped", det.id)
            return False
        self.state.locked_id = det.id
        self.state.color_signature = np.asarray(color, dtype=float)
        self.state.color_strength = 1.0
        self.state.frames_since_locked_seen = 0
        self.state.hard_locked = True
        LOGGER.info(
            "[HardLock] Locked id=%s colour=(%.2f, %.2f, %.2f) width=%.3f height=%.3f",
            det.id, *self.state.color_signature[:3], det.width, det.height,
        )
        return True

    def release(self) -> None:
        if self.state.hard_locked:
            LOGGER.info("[HardLock] Released id=%s", self.state.locked_id)
        self.state.clear()

    def reset(self) -> None:
        self.state.clear()

    # ------------------------------------------------------------------ #
    #   P E R - F R A M E
    # ------------------------------------------------------------------ #
    def note_empty_frame(self) -> None:
        """No detections at all: keep the lock, but the clock keeps running."""
        if not self.state.hard_locked:
            return
        self.state.frames_since_locked_seen += 1
        if self.state.frames_since_locked_seen > self.cfg.grace_frames:
            self._expire()

    def process(
        self,
        detections: Sequence[Detection],
        expected_x: Optional[float],
        color_of: Optional[ColorLookup] = None,
    ) -> FrameChoice:
        candidates = self.engine.filter(detections)
        if not candidates:
            self.note_empty_frame()
            self.engine.reset()
            return FrameChoice(None, None, None)

        chosen = None
        breakdown = None
        reacquiring = False

        if self.state.hard_locked:
            chosen = next((d for d in candidates if d.id == self.state.locked_id), None)
            if chosen is not None:
                self.state.frames_since_locked_seen = 0
            else:
                self.state.frames_since_locked_seen += 1
                if self.state.frames_since_locked_seen <= self.cfg.grace_frames:
                    picked = self.engine.choose(
                        candidates,
                        expected_x,
                        None,
                        color_signature=self.state.color_signature,
                        color_strength=self.state.color_strength,
                        color_of=color_of,
                    )
                    if picked is not None:
                        chosen, breakdown = picked
                    reacquiring = True
                else:
                    self._expire()

        if chosen is None:
            picked = self.engine.choose(
                candidates,
                expected_x,
                self.engine.center,
                color_signature=self.state.color_signature,
                color_strength=self.state.color_strength,
                color_of=color_of,
            )
            chosen, breakdown = picked

        center = self.engine.update_center(chosen)

        return FrameChoice(chosen, center, breakdown, reacquiring)

    def _expire(self) -> None:
        LOGGER.info(
            "[HardLock] Lock on id=%s expired after %d frames unseen",
            self.state.locked_id, self.state.frames_since_locked_seen,
        )
        self.state.clear()
