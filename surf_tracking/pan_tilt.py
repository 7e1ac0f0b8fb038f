# pan_tilt.py
"""Serial-controlled pan/tilt rig."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import serial

LOGGER = logging.getLogger(__name__)


# ------------------- Exceptions -------------------
class FirmwareError(RuntimeError):
    """Raised when the rig cannot be talked to."""


# ------------------ Internal dataclass -------------------
@dataclass
class _SerialCfg:
    port: str
    baudrate: int = 115_200
    timeout: float = 1.0


# ---------------------- Main class ----------------------
class SerialPanTiltRig:
    """
    Fire-and-forget ASCII protocol: ``PAN <deg>``, ``TILT <deg>``, ``CENTER``.
    The firmware does not report position, so the last commanded angles are
    cached and served as the current angles.
    """

    def __init__(
        self,
        port: str | Path,
        baudrate: int = 115_200,
        timeout: float = 1.0,
        *,
        eol: str = "\n",
        center_pan: int = 90,
        center_tilt: int = 90,
        serial_factory=serial.Serial,
    ):
        self._cfg = _SerialCfg(str(port), baudrate, timeout)
        self._eol = eol.encode()
        self._serial_factory = serial_factory
        self._ser: Optional[serial.Serial] = None
        self._lock = threading.Lock()
        self.center_pan = center_pan
        self.center_tilt = center_tilt
        self._pan = float(center_pan)
        self._tilt = float(center_tilt)

    # ---------------- Serial plumbing ----------------
    def open(self) -> None:
        if self._ser and self._ser.is_open:
            return
        try:
            self._ser = self._serial_factory(
                port=self._cfg.port,
                baudrate=self._cfg.baudrate,
                timeout=self._cfg.timeout,
                write_timeout=self._cfg.timeout,
            )
        except serial.SerialException as exc:
            self._ser = None
            raise FirmwareError(f"Could not open {self._cfg.port}: {exc}") from exc
        time.sleep(0.2)
        if self._ser.is_open:
            self._ser.reset_input_buffer()
        LOGGER.info("[PanTilt] Connected on %s @ %d", self._cfg.port, self._cfg.baudrate)

    def close(self) -> None:
        if self._ser and self._ser.is_open:
            self._ser.close()
        self._ser = None

    def is_open(self) -> bool:
        return bool(self._ser and self._ser.is_open)

    # ------------------ Actuator API -------------------
    def set_pan_angle(self, deg: int) -> None:
        if self._write(f"PAN {int(deg)}"):
            self._pan = float(deg)

    def set_tilt_angle(self, deg: int) -> None:
        if self._write(f"TILT {int(deg)}"):
            self._tilt = float(deg)

    def get_current_pan_angle(self) -> float:
        return self._pan

    def get_current_tilt_angle(self) -> float:
        return self._tilt

    def center(self) -> None:
        if not self._write("CENTER"):
            return
        self._pan = float(self.center_pan)
        self._tilt = float(self.center_tilt)

    # ----------------- Internal core -----------------
    def _write(self, cmd: str) -> bool:
        """Send one line; a dead port is closed and reported, never raised into the tick."""
        with self._lock:
            if not self.is_open():
                LOGGER.debug("[PanTilt] Port closed, dropped %r", cmd)
                return False
            try:
                self._ser.write(cmd.encode() + self._eol)
                self._ser.flush()
            except (serial.SerialException, OSError) as exc:
                LOGGER.error("[PanTilt] Write %r failed: %s", cmd, exc)
                self.close()
                return False
        return True

    # ---------------- Context / repr ---------------
    def __enter__(self) -> "SerialPanTiltRig":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open() else "closed"
        return f"<SerialPanTiltRig port={self._cfg.port!r} ({state})>"


class DryRunRig:
    """Stands in for the rig when no serial port is configured; only remembers angles."""

    def __init__(self, center_pan: int = 90, center_tilt: int = 90):
        self._pan = float(center_pan)
        self._tilt = float(center_tilt)

    def set_pan_angle(self, deg: int) -> None:
        LOGGER.debug("[PanTilt] (dry-run) PAN %d", deg)
        self._pan = float(deg)

    def set_tilt_angle(self, deg: int) -> None:
        LOGGER.debug("[PanTilt] (dry-run) TILT %d", deg)
        self._tilt = float(deg)

    def get_current_pan_angle(self) -> float:
        return self._pan

    def get_current_tilt_angle(self) -> float:
        return self._tilt
