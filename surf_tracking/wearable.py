# wearable.py
"""UDP/JSON intake for the surfer's wearable (location batches, centre calibration)."""
from __future__ import annotations

import json
import logging
import socket
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from surf_tracking.common import Coordinate, GeodeticFix

LOGGER = logging.getLogger(__name__)


@dataclass
class WearableMessage:
    fixes: List[GeodeticFix] = field(default_factory=list)
    center: Optional[Coordinate] = None
    center_samples: int = 0


def parse_wearable_message(payload: Dict[str, Any]) -> WearableMessage:
    """
    Decode one datagram::

        {"locations": [{"lat": .., "lon": .., "acc": .., "ts": ..}, ...]}
        {"centerCalibration": {"lat": .., "lon": .., "samples": ..}}

    Malformed entries are skipped. A missing ``acc`` becomes -1 (unknown).
    """
    msg = WearableMessage()
    for item in payload.get("locations") or []:
        try:
            msg.fixes.append(
                GeodeticFix(
                    latitude=float(item["lat"]),
                    longitude=float(item["lon"]),
                    accuracy=float(item.get("acc", -1.0)),
                    timestamp=float(item["ts"]),
                )
            )
        except (KeyError, TypeError, ValueError):
            LOGGER.debug("[Wearable] Skipping malformed location %r", item)

    cal = payload.get("centerCalibration")
    if isinstance(cal, dict):
        try:
            msg.center = Coordinate(float(cal["lat"]), float(cal["lon"]))
            msg.center_samples = int(cal.get("samples", 0))
        except (KeyError, TypeError, ValueError):
            LOGGER.warning("[Wearable] Malformed centre calibration %r", cal)
    return msg


class UdpFixReceiver:
    """Background thread that binds a UDP port and forwards decoded fixes."""

    def __init__(
        self,
        host: str,
        port: int,
        on_fix: Callable[[GeodeticFix], None],
        on_center_calibration: Optional[Callable[[Coordinate, int], None]] = None,
        bufsize: int = 65535,
    ):
        self.addr: Tuple[str, int] = (host, int(port))
        self.bufsize = bufsize
        self.on_fix = on_fix
        self.on_center_calibration = on_center_calibration
        self.sock: Optional[socket.socket] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        # Reuse before bind to avoid EADDRINUSE after quick restarts
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.settimeout(0.5)
        self.sock.bind(self.addr)
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="wearable-rx", daemon=True)
        self._thread.start()
        LOGGER.info("[Wearable] Listening on %s:%d", *self.addr)

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(1.0)
        if self.sock:
            self.sock.close()
        self._thread = None
        self.sock = None

    def handle_datagram(self, data: bytes) -> WearableMessage:
        try:
            payload = json.loads(data.decode("utf-8", errors="ignore"))
        except json.JSONDecodeError:
            LOGGER.debug("[Wearable] Dropping non-JSON datagram")
            return WearableMessage()
        if not isinstance(payload, dict):
            return WearableMessage()

        msg = parse_wearable_message(payload)
        for fix in msg.fixes:
            self.on_fix(fix)
        if msg.center is not None and self.on_center_calibration is not None:
            LOGGER.info(
                "[Wearable] Centre calibration %.6f, %.6f (%d samples)",
                msg.center.latitude, msg.center.longitude, msg.center_samples,
            )
            self.on_center_calibration(msg.center, msg.center_samples)
        return msg

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                data, _ = self.sock.recvfrom(self.bufsize)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stop.is_set():
                    break
                LOGGER.warning("[Wearable] Socket error: %s", exc)
                self._stop.wait(0.1)
                continue
            self.handle_datagram(data)

    def __enter__(self) -> "UdpFixReceiver":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
