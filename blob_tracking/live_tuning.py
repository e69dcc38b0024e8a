# live_tuning.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Tuple

from blob_tracking.config import ColorRange, ConfigurationError, SharedColorRange

logger = logging.getLogger(__name__)


class RuntimeParamWatcher:
    """Watch a JSON file and hot-reload its contents when it changes.

    Expected keys::

        {"hsv_lower": [33, 9, 146], "hsv_upper": [88, 255, 255]}
    """

    def __init__(self, path: str | Path = "runtime_params.json") -> None:
        self.path = Path(path).expanduser().resolve()
        self._stamp: Tuple[float, int] = (0.0, -1)  # (mtime, size)
        self.params: Dict[str, Any] = {}

        logger.info("Watching runtime params: %s", self.path)
        self._load(initial=True)

    # ------------------------------------------------------------------
    #   Internal helpers
    # ------------------------------------------------------------------
    def _load(self, *, initial: bool = False) -> None:
        try:
            with self.path.open("r", encoding="utf-8") as fp:
                self.params = json.load(fp)
            stat = self.path.stat()
            self._stamp = (stat.st_mtime, stat.st_size)
            if not initial:
                logger.info("Reloaded parameters from %s", self.path)
        except FileNotFoundError:
            if initial:
                logger.info(
                    "%s not found - live tuning disabled (create the file to enable)",
                    self.path,
                )
            else:
                logger.warning("%s was deleted - keeping old params", self.path)
        except json.JSONDecodeError as exc:
            logger.warning("JSON error in %s: %s", self.path, exc)
        except OSError as exc:
            logger.warning("Failed to reload %s: %s", self.path, exc)

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
        # so any size change or an mtime step of >= 1 s counts as modified.
        if stat.st_size != fsize or stat.st_mtime - mtime >= 1.0:
            self._load()
            return True
        return False

    def get(self, key: str, default: Any | None = None) -> Any:
        return self.params.get(key, default)

    def apply_color_range(self, shared: SharedColorRange) -> bool:
        """Publish the file's HSV bounds. Invalid ranges are rejected, old one stays."""
        if "hsv_lower" not in self.params and "hsv_upper" not in self.params:
            return False
        current = shared.get()
        try:
            new = ColorRange.from_values(
                self.params.get("hsv_lower", current.lower),
                self.params.get("hsv_upper", current.upper),
            )
        except ConfigurationError as exc:
            logger.warning("Rejected color range from %s: %s", self.path, exc)
            return False
        if new != current:
            shared.set(new)
            logger.info("Color range updated: %s", new.describe())
        return True
