# detector.py
"""MediaPipe person-detection adapter."""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks import python as mp_tasks
from mediapipe.tasks.python import vision

from surf_tracking.color import sample_average_color
from surf_tracking.common import Detection
from surf_tracking.config import DetectorConfig
from surf_tracking.helpers import IouIdAssigner

LOGGER = logging.getLogger(__name__)


class MediaPipePersonDetector:
    def __init__(self, config: DetectorConfig):
        self.config = config
        options = vision.ObjectDetectorOptions(
            base_options=mp_tasks.BaseOptions(model_asset_path=config.model_path),
            running_mode=vision.RunningMode.IMAGE,
            max_results=config.max_results,
            score_threshold=config.min_detection_confidence,
            category_allowlist=["person"],
        )
        self.detector = vision.ObjectDetector.create_from_options(options)
        self.ids = IouIdAssigner(config.iou_match_threshold)
        LOGGER.info("[Detector] Loaded %s", config.model_path)

    def detect(self, frame_bgr: np.ndarray) -> List[Detection]:
        """
        Person boxes in normalized coordinates, highest confidence first,
        with ids that persist while a box keeps overlapping itself.
        """
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        ih, iw = rgb.shape[:2]
        result = self.detector.detect(mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb))

        raw: List[Tuple[Tuple[float, float, float, float], float]] = []
        for det in result.detections:
            bb = det.bounding_box
            w = float(bb.width)
            h = float(bb.height)
            # Size threshold
            if w < self.config.min_bbox_size_px or h < self.config.min_bbox_size_px:
                continue
            x = max(0.0, min(float(bb.origin_x), iw - w))
            y = max(0.0, min(float(bb.origin_y), ih - h))
            conf = float(det.categories[0].score) if det.categories else 0.0
            raw.append(((x / iw, y / ih, w / iw, h / ih), conf))

        raw.sort(key=lambda t: t[1], reverse=True)
        ids = self.ids.assign([box for box, _ in raw])
        return [
            Detection(
                id=tid,
                center_x=x + w / 2.0,
                center_y=y + h / 2.0,
                width=w,
                height=h,
                confidence=conf,
            )
            for tid, ((x, y, w, h), conf) in zip(ids, raw)
        ]

    def sample_average_color(
        self, frame_bgr: np.ndarray, box: Tuple[float, float, float, float]
    ) -> Optional[np.ndarray]:
        return sample_average_color(frame_bgr, box)

    def close(self) -> None:
        self.detector.close()
