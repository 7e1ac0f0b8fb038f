# color.py
"""Body colour sampling and comparison used for identity re-acquisition."""
from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

Box = Tuple[float, float, float, float]


def pad_box(box: Box, padding: float) -> Box:
    """Grow a normalized (x, y, w, h) box by ``padding`` of its size on every side."""
    x, y, w, h = box
    return (x - w * padding, y - h * padding, w * (1.0 + 2.0 * padding), h * (1.0 + 2.0 * padding))


def sample_average_color(frame_bgr: np.ndarray, box: Box) -> Optional[np.ndarray]:
    """
    Mean colour inside a normalized (x, y, w, h) box, clipped to the frame.

    Returns an RGB vector in 0..1, or ``None`` if the box is empty.
    """
    if frame_bgr is None or frame_bgr.ndim != 3 or frame_bgr.shape[2] < 3:
        return None
    ih, iw = frame_bgr.shape[:2]
    x, y, w, h = box
    x0, x1 = int(np.clip(x * iw, 0, iw)), int(np.clip((x + w) * iw, 0, iw))
    y0, y1 = int(np.clip(y * ih, 0, ih)), int(np.clip((y + h) * ih, 0, ih))
    if x1 <= x0 or y1 <= y0:
        return None

    roi = frame_bgr[y0:y1, x0:x1, :3].reshape(-1, 3).astype(np.float64)
    b, g, r = roi.mean(axis=0)
    return np.array([r, g, b]) / 255.0


def color_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of brightness-normalized colours, clipped to 0..1."""
    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))
    if na <= 1e-9 or nb <= 1e-9:
        return 0.0
    return float(np.clip(np.dot(a / na, b / nb), 0.0, 1.0))
