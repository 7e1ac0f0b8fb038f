# scheduler.py
"""Fixed-period control ticks with event-driven extras on fresh GPS fixes."""
from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from surf_tracking.common import GeodeticFix
from surf_tracking.processor import TrackingProcessor

LOGGER = logging.getLogger(__name__)


class TickScheduler:
    """
    Runs ``processor.tick()`` on its own thread every ``1 / hz`` seconds.
    :meth:`trigger` requests an extra tick as soon as possible without
    shifting the periodic schedule.
    """

    def __init__(self, processor: TrackingProcessor, hz: Optional[float] = None):
        self.processor = processor
        self.period = 1.0 / (hz or processor.cfg.tick_hz)
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.tick_count = 0

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="tick-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread:
            self._thread.join(timeout)
        self._thread = None

    def trigger(self) -> None:
        self._wake.set()

    def on_fix(self, fix: GeodeticFix) -> None:
        """Location callback: hand the fix over, tick early in GPS-driven modes."""
        self.processor.submit_fix(fix)
        if self.processor.gps_driven():
            self.trigger()

    def _run(self) -> None:
        next_due = time.monotonic() + self.period
        while not self._stop.is_set():
            triggered = self._wake.wait(max(0.0, next_due - time.monotonic()))
            if self._stop.is_set():
                break
            self._wake.clear()
            if not triggered:
                next_due += self.period
                now = time.monotonic()
                if next_due < now:
                    # Fell behind: do not burst to catch up
                    next_due = now + self.period
            try:
                self.processor.tick()
                self.tick_count += 1
            except Exception:
                LOGGER.exception("[Scheduler] tick failed")

    def __enter__(self) -> "TickScheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
