# camera.py
"""Thin VideoCapture wrapper with reopen logic; doubles as the zoom device."""
from __future__ import annotations

import logging
import subprocess
import time
from typing import Optional, Tuple

import cv2
import numpy as np

from surf_tracking.config import CameraConfig
from surf_tracking.helpers import clamp

LOGGER = logging.getLogger(__name__)


class Camera:
    def __init__(self, config: CameraConfig) -> None:
        self.config = config
        self.cap: Optional[cv2.VideoCapture] = None

        # Exposed runtime-queryable values
        self.actual_width: int = 0
        self.actual_height: int = 0
        self.actual_fps: float = 0.0
        self.actual_fourcc_str: str = ""
        self.zoom_factor: float = config.zoom_min

    # ------------------------------------------------------------------ #
    #   I N T E R N A L   H E L P E R S
    # ------------------------------------------------------------------ #
    @staticmethod
    def _get_fourcc_str(fourcc_val: int) -> str:
        if fourcc_val == 0:
            return ""
        return "".join(chr((fourcc_val >> (8 * i)) & 0xFF) for i in range(4))

    def _raw_zoom(self, factor: float) -> int:
        cfg = self.config
        span = max(cfg.zoom_max - cfg.zoom_min, 1e-6)
        t = (factor - cfg.zoom_min) / span
        return int(round(cfg.zoom_raw_min + t * (cfg.zoom_raw_max - cfg.zoom_raw_min)))

    # ----------------  fallback to v4l2-ctl when OpenCV lacks a prop ----
    @staticmethod
    def _set_v4l2_ctrl(dev: int | str, name: str, value: int | float) -> bool:
        """Best-effort helper: returns False if v4l2-ctl is missing or refuses."""
        node = f"/dev/video{dev}" if isinstance(dev, int) else str(dev)
        cmd = ["v4l2-ctl", "-d", node, "--set-ctrl", f"{name}={value}"]
        try:
            subprocess.run(cmd, check=True, capture_output=True)
        except FileNotFoundError:
            LOGGER.warning("[Camera] v4l2-ctl not installed; skipping %s", name)
            return False
        except subprocess.CalledProcessError as exc:
            LOGGER.warning("[Camera] v4l2-ctl error: %s", exc.stderr.decode().strip())
            return False
        LOGGER.debug("[Camera] v4l2-ctl set-ctrl %s=%s", name, value)
        return True

    # ------------------------------------------------------------------ #
    #   P U B L I C   A P I
    # ------------------------------------------------------------------ #
    def open(self) -> bool:
        backend = cv2.CAP_V4L2 if self.config.use_v4l2 else 0
        self.cap = cv2.VideoCapture(self.config.device_index, backend)
        if not self.cap or not self.cap.isOpened():
            LOGGER.error("[Camera] Could not open device %s", self.config.device_index)
            self.cap = None
            return False

        if self.config.fourcc_str:
            self.cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*self.config.fourcc_str))
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        if self.config.fps_request > 0:
            self.cap.set(cv2.CAP_PROP_FPS, self.config.fps_request)

        time.sleep(0.1)  # Let driver settle

        self.actual_fourcc_str = self._get_fourcc_str(int(self.cap.get(cv2.CAP_PROP_FOURCC)))
        self.actual_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.actual_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.actual_fps = self.cap.get(cv2.CAP_PROP_FPS)

        LOGGER.info(
            "[Camera] %dx%d@%.1f FPS (FOURCC='%s')",
            self.actual_width, self.actual_height, self.actual_fps, self.actual_fourcc_str,
        )
        if self.actual_width == 0 or self.actual_height == 0:
            LOGGER.error("[Camera] Camera returned zero resolution")
            self.release()
            return False

        # Re-apply the zoom we had before a reconnect
        self.set_zoom(self.zoom_factor)
        return True

    def read(self) -> Tuple[float, Optional[np.ndarray]]:
        ts = time.monotonic()
        if not self.is_opened():
            return ts, None
        ret, frame = self.cap.read()
        return (ts, frame) if ret and frame is not None else (ts, None)

    def is_opened(self) -> bool:
        return bool(self.cap and self.cap.isOpened())

    def release(self) -> None:
        if self.cap:
            LOGGER.info("[Camera] Releasing capture device")
            self.cap.release()
            self.cap = None

    # ------------------------------------------------------------------ #
    #   Z O O M   D E V I C E
    # ------------------------------------------------------------------ #
    def get_min_max_zoom(self) -> Tuple[float, float]:
        return self.config.zoom_min, self.config.zoom_max

    def set_zoom(self, factor: float) -> float:
        """Apply a logical zoom factor; returns the factor actually in effect."""
        factor = clamp(factor, self.config.zoom_min, self.config.zoom_max)
        if not self.is_opened():
            return self.zoom_factor

        raw = self._raw_zoom(factor)
        applied = bool(self.cap.set(cv2.CAP_PROP_ZOOM, raw))
        if not applied and self.config.use_v4l2:
            applied = self._set_v4l2_ctrl(self.config.device_index, "zoom_absolute", raw)
        if applied:
            self.zoom_factor = factor
        return self.zoom_factor
