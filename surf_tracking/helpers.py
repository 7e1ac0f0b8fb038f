# helpers.py
"""Small utility classes that don’t fit elsewhere."""
from typing import Dict, List, Optional, Tuple

from surf_tracking.common import TrackCenter


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def ema(prev: Optional[float], sample: float, alpha: float) -> float:
    """new = prev*(1-α) + sample*α; the first sample passes through."""
    if prev is None:
        return sample
    return prev * (1.0 - alpha) + sample * alpha


class CenterSmoother:
    """
    Exponential smoother for the tracked body center.
    Separate α per axis so horizontal stays responsive while vertical bob
    (paddling, wave chop) is damped.
    """

    def __init__(self, alpha_x: float = 0.5, alpha_y: float = 0.3):
        self.alpha_x = alpha_x
        self.alpha_y = alpha_y
        self.state: Optional[TrackCenter] = None

    def update(self, raw: Tuple[float, float]) -> TrackCenter:
        prev_x = self.state.x if self.state else None
        prev_y = self.state.y if self.state else None
        self.state = TrackCenter(
            x=ema(prev_x, raw[0], self.alpha_x),
            y=ema(prev_y, raw[1], self.alpha_y),
        )
        return self.state

    def reset(self) -> None:
        self.state = None


Box = Tuple[float, float, float, float]


def iou(a: Box, b: Box) -> float:
    """Intersection-over-union of two (x, y, w, h) boxes."""
    ax1, ay1 = a[0] + a[2], a[1] + a[3]
    bx1, by1 = b[0] + b[2], b[1] + b[3]
    iw = max(0.0, min(ax1, bx1) - max(a[0], b[0]))
    ih = max(0.0, min(ay1, by1) - max(a[1], b[1]))
    inter = iw * ih
    union = a[2] * a[3] + b[2] * b[3] - inter
    return inter / union if union > 0 else 0.0


class IouIdAssigner:
    """
    Gives detector boxes ids that persist across frames.
    Greedy best-IoU matching against the previous frame; unmatched boxes get
    fresh ids. Boxes unseen for more than ``max_missed`` frames are forgotten.
    """

    def __init__(self, threshold: float = 0.3, max_missed: int = 30):
        self.threshold = threshold
        self.max_missed = max_missed
        self._next_id = 1
        self._tracks: Dict[int, Tuple[Box, int]] = {}   # id -> (box, missed)

    def assign(self, boxes: List[Box]) -> List[int]:
        pairs = sorted(
            (
                (iou(box, prev_box), i, tid)
                for i, box in enumerate(boxes)
                for tid, (prev_box, _) in self._tracks.items()
            ),
            reverse=True,
        )
        ids: List[Optional[int]] = [None] * len(boxes)
        used = set()
        for score, i, tid in pairs:
            if score < self.threshold:
                break
            if ids[i] is not None or tid in used:
                continue
            ids[i] = tid
            used.add(tid)

        for i, box in enumerate(boxes):
            if ids[i] is None:
                ids[i] = self._next_id
                self._next_id += 1
            self._tracks[ids[i]] = (box, 0)

        for tid in list(self._tracks):
            if tid in ids:
                continue
            box, missed = self._tracks[tid]
            if missed + 1 > self.max_missed:
                del self._tracks[tid]
            else:
                self._tracks[tid] = (box, missed + 1)
        return ids

    def reset(self) -> None:
        self._tracks.clear()
