"""
Calibration storage.

Thread-safe holder for the single board calibration. With a path it is
mirrored to a JSON file so the empty-board reference survives restarts;
without one it lives in memory only.
"""
import os
import json
import logging
from pathlib import Path
from threading import Lock
from typing import Optional, Union

from autoscore.core.calibration import CalibrationData

logger = logging.getLogger(__name__)


class CalibrationStore:
    """Thread-safe storage for the board calibration."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path) if path else None
        self._data: Optional[CalibrationData] = None
        self._loaded = False
        self._lock = Lock()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def load(self) -> Optional[CalibrationData]:
        """
        Get the stored calibration.

        A missing, unreadable or malformed file counts as "no calibration".
        """
        with self._lock:
            if self._loaded or self._path is None:
                return self._data

            self._loaded = True
            if not self._path.exists():
                return None

            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    self._data = CalibrationData.from_dict(json.load(f))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.error(f"[CALIBRATION] Failed to load {self._path}: {e}")
                self._data = None

            return self._data

    def save(self, data: CalibrationData) -> None:
        """Store a calibration. File write errors are logged, memory is always updated."""
        with self._lock:
            self._data = data
            self._loaded = True
            if self._path is None:
                return

            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp = self._path.with_suffix(self._path.suffix + ".tmp")
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(data.to_dict(), f)
                os.replace(tmp, self._path)
            except OSError as e:
                logger.error(f"[CALIBRATION] Failed to save {self._path}: {e}")

    def clear(self) -> None:
        """Forget the calibration (and delete its file)."""
        with self._lock:
            self._data = None
            self._loaded = True
            if self._path is None:
                return

            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"[CALIBRATION] Failed to clear {self._path}: {e}")
