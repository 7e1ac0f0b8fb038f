# live_tuning.py
"""Hot-reload of tuning knobs from a JSON file."""
from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

LOGGER = logging.getLogger(__name__)


class RuntimeParamWatcher:
    """Watch a JSON file and hot-reload its contents when it changes."""

    def __init__(self, path: str | Path = "runtime_params.json") -> None:
        self.path = Path(path).expanduser().resolve()
        self._stamp: Tuple[float, int] = (0.0, -1)  # (mtime, size)
        self.params: Dict[str, Any] = {}

        LOGGER.info("[Runtime] Watching: %s", self.path)
        self._load(initial=True)

    # ------------------------------------------------------------------
    #   Internal helpers
    # ------------------------------------------------------------------
    def _load(self, *, initial: bool = False) -> None:
        try:
            with self.path.open("r", encoding="utf-8") as fp:
                params = json.load(fp)
            stat = self.path.stat()
            self._stamp = (stat.st_mtime, stat.st_size)
        except FileNotFoundError:
            if initial:
                LOGGER.info(
                    "[Runtime] %s not found, live-tuning disabled (create the file to enable).",
                    self.path,
                )
            else:
                LOGGER.warning("[Runtime] %s was deleted, keeping old params.", self.path)
            return
        except json.JSONDecodeError as exc:
            LOGGER.warning("[Runtime] JSON error in %s: %s", self.path, exc)
            return
        except OSError as exc:
            LOGGER.warning("[Runtime] Failed to reload %s: %s", self.path, exc)
            return

        if not isinstance(params, dict):
            LOGGER.warning("[Runtime] %s must hold a JSON object", self.path)
            return
        self.params = params
        if not initial:
            LOGGER.info("[Runtime] Reloaded parameters from %s", self.path)

    # ------------------------------------------------------------------
    #   Public API
    # ------------------------------------------------------------------
    def maybe_reload(self) -> bool:
        """
        If the watched file changed since the last call reload it and
        return **True**, else return **False**.
        """
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return False

        mtime, fsize = self._stamp
        # Some filesystems only update timestamps in 1- or 2-second ticks,
        # so any change >=1 s *or* a size change counts as modified.
        if stat.st_size != fsize or stat.st_mtime - mtime >= 1.0:
            self._load()
            return True
        return False

    def get(self, key: str, default: Any | None = None) -> Any:
        return self.params.get(key, default)


def _coerce(current: Any, value: Any) -> Any:
    if isinstance(current, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, list) and isinstance(value, list):
        return [tuple(v) if isinstance(v, list) else v for v in value]
    return value


def apply_runtime_params(cfg: Any, params: Dict[str, Any]) -> List[str]:
    """
    Write ``{"fusion.lock_frames": 10, "actuation.pan.gain": 12.0}`` style
    keys onto a nested dataclass config. Returns the keys that were applied.
    Unknown keys and uncoercible values are logged and skipped.
    """
    applied: List[str] = []
    for key, value in params.items():
        *parents, leaf = key.split(".")
        target = cfg
        try:
            for name in parents:
                target = getattr(target, name)
            if not dataclasses.is_dataclass(target) or leaf not in {
                f.name for f in dataclasses.fields(target)
            }:
                raise AttributeError(leaf)
            current = getattr(target, leaf)
            if dataclasses.is_dataclass(current):
                # Whole sections cannot be replaced, only their leaves
                raise AttributeError(leaf)
            setattr(target, leaf, _coerce(current, value))
        except AttributeError:
            LOGGER.warning("[Runtime] Unknown parameter %r ignored", key)
            continue
        except (TypeError, ValueError) as exc:
            LOGGER.warning("[Runtime] Bad value for %r (%r): %s", key, value, exc)
            continue
        applied.append(key)
    if applied:
        LOGGER.info("[Runtime] Applied %s", ", ".join(sorted(applied)))
    return applied
