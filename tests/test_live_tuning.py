import json
import os

import pytest

from surf_tracking.config import TrackingConfig
from surf_tracking.live_tuning import RuntimeParamWatcher, apply_runtime_params


def test_apply_nested_keys_with_coercion():
    cfg = TrackingConfig()
    applied = apply_runtime_params(
        cfg,
        {
            "fusion.lock_frames": 9.0,
            "actuation.pan.gain": "12",
            "actuation.pan.mirror": -1,
            "zoom.distance_points": [[0, 1], [50, 3]],
            "tick_hz": 25,
        },
    )
    assert sorted(applied) == sorted(
        ["fusion.lock_frames", "actuation.pan.gain", "actuation.pan.mirror", "zoom.distance_points", "tick_hz"]
    )
    assert cfg.fusion.lock_frames == 9 and isinstance(cfg.fusion.lock_frames, int)
    assert cfg.actuation.pan.gain == 12.0
    assert cfg.actuation.pan.mirror == -1.0
    assert cfg.zoom.distance_points == [(0, 1), (50, 3)]
    assert cfg.tick_hz == 25.0


def test_unknown_and_bad_values_are_skipped():
    cfg = TrackingConfig()
    applied = apply_runtime_params(
        cfg,
        {"fusion.nope": 1, "nothing.here": 2, "fusion": 3, "trust.min_samples": "many"},
    )
    assert applied == []
    assert cfg.trust.min_samples == 20


def test_watcher_reloads_on_change(tmp_path):
    path = tmp_path / "runtime_params.json"
    path.write_text(json.dumps({"fusion.lock_frames": 5}))
    watcher = RuntimeParamWatcher(path)
    assert watcher.get("fusion.lock_frames") == 5
    assert not watcher.maybe_reload()

    path.write_text(json.dumps({"fusion.lock_frames": 50, "zoom.max_step": 0.1}))
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))
    assert watcher.maybe_reload()
    assert watcher.get("fusion.lock_frames") == 50


def test_watcher_keeps_params_on_bad_json(tmp_path):
    path = tmp_path / "runtime_params.json"
    path.write_text(json.dumps({"a": 1}))
    watcher = RuntimeParamWatcher(path)
    path.write_text("{broken")
    assert watcher.maybe_reload()
    assert watcher.params == {"a": 1}


def test_watcher_missing_file(tmp_path):
    watcher = RuntimeParamWatcher(tmp_path / "absent.json")
    assert watcher.params == {}
    assert not watcher.maybe_reload()


@pytest.mark.parametrize("value, expected", [("true", True), ("off", False), (0, False), (1, True)])
def test_bool_coercion(value, expected):
    from surf_tracking.config import PanTiltConfig

    cfg = PanTiltConfig()
    apply_runtime_params(cfg, {"center_on_startup": value})
    assert cfg.center_on_startup is expected
