# main.py
"""
Entry-point for the surf-tracking rig.

Live-tuning
-----------
While the program is running you can edit ``runtime_params.json`` with dotted
keys (``{"fusion.lock_frames": 10, "actuation.pan.gain": 12}``) and the new
values take effect before the next control tick. See
``surf_tracking/live_tuning.py`` for details.

Calibration
-----------
``--rig LAT,LON`` and ``--center LAT,LON`` set the rig position and the point
the rig faces at its centre angle. ``--calibrate-rig SECONDS`` instead samples
the wearable's fixes (strapped to the rig) and averages them. The wearable can
send its own centre calibration at any time.
"""
from __future__ import annotations

import argparse
import logging
import time
from typing import Optional

from surf_tracking.common import Coordinate, TrackingMode, ZoomMode
from surf_tracking.config import (
    CameraConfig,
    DetectorConfig,
    PanTiltConfig,
    TrackingConfig,
    WearableConfig,
)
from surf_tracking.gps import CalibrationSampler
from surf_tracking.live_tuning import RuntimeParamWatcher
from surf_tracking.pan_tilt import DryRunRig, FirmwareError, SerialPanTiltRig
from surf_tracking.processor import Calibration, TrackingProcessor
from surf_tracking.scheduler import TickScheduler
from surf_tracking.wearable import UdpFixReceiver

LOGGER = logging.getLogger("surf_tracking.cli")

_RIG_RETRY_COOLDOWN_S = 3.0
_MAX_CAM_REOPENS = 5


def _coordinate(text: str) -> Coordinate:
    lat, lon = (float(v) for v in text.split(","))
    return Coordinate(lat, lon)


def _parse_args(argv=None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="GPS + vision surf tracking rig")
    ap.add_argument("--mode", choices=[m.value for m in TrackingMode], default=TrackingMode.FUSION.value)
    ap.add_argument("--zoom-mode", choices=[m.value for m in ZoomMode], default=ZoomMode.FIXED.value)
    ap.add_argument("--camera", type=int, default=0, help="Video device index")
    ap.add_argument("--model", default=DetectorConfig.model_path, help="MediaPipe object detector model")
    ap.add_argument("--port", default=None, help="Serial port of the pan/tilt rig (omit for dry-run)")
    ap.add_argument("--udp-port", type=int, default=WearableConfig.port)
    ap.add_argument("--rig", type=_coordinate, default=None, metavar="LAT,LON")
    ap.add_argument("--center", type=_coordinate, default=None, metavar="LAT,LON")
    ap.add_argument("--calibrate-rig", type=float, default=0.0, metavar="SECONDS")
    ap.add_argument("--params", default="runtime_params.json")
    ap.add_argument("--verbose", "-v", action="store_true")
    return ap.parse_args(argv)


def _calibrate_rig(wear_cfg: WearableConfig, trk_cfg: TrackingConfig, seconds: float) -> Optional[Coordinate]:
    sampler = CalibrationSampler(trk_cfg.gps)
    print(f"Calibrating rig position for {seconds:.0f}s - keep the wearable on the rig…")
    with UdpFixReceiver(wear_cfg.host, wear_cfg.port, on_fix=sampler.add):
        time.sleep(seconds)
    return sampler.finish()


class Runner:
    """Owns the devices, feeds frames to the processor and keeps hardware alive."""

    def __init__(
        self,
        processor: TrackingProcessor,
        camera,
        rig,
        wearable: UdpFixReceiver,
        watcher: RuntimeParamWatcher,
        scheduler: TickScheduler,
    ):
        self.processor = processor
        self.camera = camera
        self.rig = rig
        self.wearable = wearable
        self.watcher = watcher
        self.scheduler = scheduler
        self.cam_reopens = 0
        self.last_rig_error = 0.0

    def _recover_rig(self, now: float) -> None:
        if not isinstance(self.rig, SerialPanTiltRig) or self.rig.is_open():
            return
        if now - self.last_rig_error < _RIG_RETRY_COOLDOWN_S:
            return
        try:
            self.rig.open()
        except FirmwareError as exc:
            LOGGER.warning("[Runner] Rig still unavailable: %s", exc)
            self.last_rig_error = now

    def step(self) -> None:
        now = time.monotonic()
        self._recover_rig(now)

        if self.watcher.maybe_reload():
            self.processor.apply_runtime_params(self.watcher.params)

        ts, frame = self.camera.read()
        if frame is None:
            if not self.camera.is_opened() and self.cam_reopens < _MAX_CAM_REOPENS:
                if self.camera.open():
                    self.cam_reopens = 0
                else:
                    self.cam_reopens += 1
            time.sleep(0.05)
            return
        self.processor.submit_frame(frame, ts)

    def run(self) -> None:
        self.wearable.start()
        self.scheduler.start()
        try:
            while True:
                self.step()
        except KeyboardInterrupt:
            print("\n[Runner] Stopped by user.")
        finally:
            self.scheduler.stop()
            self.wearable.stop()
            self.camera.release()


# ────────────────────────────────────────────────────────────────────────────
#   M A I N
# ────────────────────────────────────────────────────────────────────────────
def main(argv=None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("Initializing Surf-Tracking System…")
    print(f"Hint: edit '{args.params}' at any time to tweak parameters.\n")

    # -------------------- Config blobs --------------------
    cam_cfg = CameraConfig(device_index=args.camera)
    det_cfg = DetectorConfig(model_path=args.model)
    trk_cfg = TrackingConfig()
    pt_cfg = PanTiltConfig(port=args.port)
    wear_cfg = WearableConfig(port=args.udp_port)

    rig_position = args.rig
    if args.calibrate_rig > 0:
        rig_position = _calibrate_rig(wear_cfg, trk_cfg, args.calibrate_rig) or rig_position

    # ------------------------ Banner ----------------------
    print(f"Camera: idx={cam_cfg.device_index}, {cam_cfg.width}x{cam_cfg.height}@{cam_cfg.fps_request} FPS")
    print(f"Detector: model={det_cfg.model_path}, conf={det_cfg.min_detection_confidence}")
    print(f"Tracking: mode={args.mode}, zoom={args.zoom_mode}, tick={trk_cfg.tick_hz:.0f} Hz")
    print(f"Wearable: udp://{wear_cfg.host}:{wear_cfg.port}")
    print(f"Calibration: rig={rig_position}, center={args.center}")
    print(f"PanTilt: port={pt_cfg.port}, baud={pt_cfg.baudrate}" if pt_cfg.port else "PanTilt: DRY-RUN")

    # ---------------------- Devices -----------------------
    # Heavy imports only once we know we are really running
    from surf_tracking.camera import Camera
    from surf_tracking.detector import MediaPipePersonDetector

    camera = Camera(cam_cfg)
    if not camera.open():
        print("Camera unavailable, giving up.")
        return
    detector = MediaPipePersonDetector(det_cfg)

    rig = DryRunRig()
    if pt_cfg.port:
        rig = SerialPanTiltRig(pt_cfg.port, pt_cfg.baudrate)
        try:
            rig.open()
            if pt_cfg.center_on_startup:
                rig.center()
        except FirmwareError as exc:
            LOGGER.error("[Runner] %s (will keep retrying)", exc)

    processor = TrackingProcessor(
        trk_cfg,
        detector,
        rig,
        camera,
        mode=TrackingMode(args.mode),
        zoom_mode=ZoomMode(args.zoom_mode),
        calibration=Calibration(rig=rig_position, center=args.center),
    )
    scheduler = TickScheduler(processor)
    wearable = UdpFixReceiver(
        wear_cfg.host,
        wear_cfg.port,
        on_fix=scheduler.on_fix,
        on_center_calibration=lambda center, _n: processor.set_calibration(center=center),
    )
    watcher = RuntimeParamWatcher(args.params)
    if watcher.params:
        processor.apply_runtime_params(watcher.params)

    # ------------------------ Run -------------------------
    try:
        Runner(processor, camera, rig, wearable, watcher, scheduler).run()
    finally:
        if isinstance(rig, SerialPanTiltRig):
            if pt_cfg.center_on_shutdown:
                rig.center()
            rig.close()
        detector.close()
    print("Main program finished.")


if __name__ == "__main__":
    main()
