"""
Frame sources and image serialization.

The tracker only needs two things from a camera: the current frame and a
compressed snapshot of it. Anything with those two methods can drive it,
which is how tests feed synthetic frames.
"""
import base64
import logging
import threading
from typing import Optional, Protocol

import cv2
import numpy as np

from autoscore.core.imaging import ensure_frame, from_bgr, to_bgr

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/jpeg;base64,"


class FrameSource(Protocol):
    def capture_frame(self) -> Optional[np.ndarray]:
        """Current RGBA frame, or None when no frame is available."""
        ...

    def capture_frame_as_data_url(self, quality: float = 0.9) -> Optional[str]:
        """Current frame as a JPEG data URL, or None."""
        ...


def encode_frame_as_data_url(frame: np.ndarray, quality: float = 0.9) -> str:
    """
    Encode an RGBA frame as a base64 JPEG data URL.

    Args:
        quality: 0.0-1.0
    """
    jpeg_quality = int(round(min(1.0, max(0.0, quality)) * 100))
    ok, buffer = cv2.imencode(".jpg", to_bgr(ensure_frame(frame)), [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality])
    if not ok:
        raise ValueError("Failed to encode frame as JPEG")
    return DATA_URL_PREFIX + base64.b64encode(buffer.tobytes()).decode("utf-8")


def load_image_from_data_url(data_url: str) -> np.ndarray:
    """
    Decode a base64 image data URL (any format OpenCV reads) into an RGBA frame.

    Raises:
        ValueError: not a data URL, bad base64 or undecodable image
    """
    if not isinstance(data_url, str) or not data_url.startswith("data:") or "," not in data_url:
        raise ValueError("Not a data URL")

    header, payload = data_url.split(",", 1)
    if not header.endswith(";base64"):
        raise ValueError("Only base64 data URLs are supported")

    try:
        img_bytes = base64.b64decode(payload, validate=True)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e

    nparr = np.frombuffer(img_bytes, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Could not decode image data")

    return from_bgr(image)


class OpenCVFrameSource:
    """
    Frame source backed by cv2.VideoCapture.

    The capture device is opened lazily and reopened after a failed read.
    """

    def __init__(self, camera_index: int = 0, width: Optional[int] = None, height: Optional[int] = None):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._cap: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()

    def _open(self) -> Optional[cv2.VideoCapture]:
        if self._cap is not None and self._cap.isOpened():
            return self._cap

        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            logger.warning(f"[CAMERA] Camera {self.camera_index} not available")
            cap.release()
            return None

        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        logger.info(
            f"[CAMERA] Opened camera {self.camera_index} "
            f"({int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))}x{int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))})"
        )
        self._cap = cap
        return cap

    def capture_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            cap = self._open()
            if cap is None:
                return None

            ret, image = cap.read()
            if not ret or image is None:
                logger.warning(f"[CAMERA] Failed to read from camera {self.camera_index}")
                cap.release()
                self._cap = None
                return None

        return from_bgr(image)

    def capture_frame_as_data_url(self, quality: float = 0.9) -> Optional[str]:
        frame = self.capture_frame()
        if frame is None:
            return None
        return encode_frame_as_data_url(frame, quality)

    def release(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
