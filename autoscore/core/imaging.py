"""
Frame helpers shared by every pipeline stage.

A frame is an (H, W, 4) uint8 RGBA array. Stages derive grayscale/HSV
buffers from it and never write to it.
"""
import cv2
import numpy as np

from autoscore.core.errors import InvalidFrameDimensions

# Luminance weights (ITU-R BT.601)
GRAY_WEIGHTS = (0.299, 0.587, 0.114)


def ensure_frame(frame: np.ndarray) -> np.ndarray:
    """Validate an RGBA frame and return a read-only view of it."""
    if not isinstance(frame, np.ndarray):
        raise InvalidFrameDimensions(f"Frame must be a numpy array, got {type(frame).__name__}")
    if frame.ndim != 3 or frame.shape[2] != 4:
        raise InvalidFrameDimensions(f"Frame must be HxWx4 RGBA, got shape {frame.shape}")
    if frame.shape[0] == 0 or frame.shape[1] == 0:
        raise InvalidFrameDimensions("Frame is empty")
    if frame.dtype != np.uint8:
        frame = frame.astype(np.uint8)

    view = frame.view()
    view.flags.writeable = False
    return view


def from_bgr(image: np.ndarray) -> np.ndarray:
    """Convert an OpenCV BGR (or grayscale) image into an RGBA frame."""
    if image.ndim == 2:
        rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    elif image.shape[2] == 4:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    return ensure_frame(rgba)


def to_bgr(frame: np.ndarray) -> np.ndarray:
    """Convert an RGBA frame back to OpenCV BGR (for encoding)."""
    return cv2.cvtColor(np.ascontiguousarray(frame), cv2.COLOR_RGBA2BGR)


def to_grayscale(frame: np.ndarray) -> np.ndarray:
    """Luminance grayscale, 0.299R + 0.587G + 0.114B, rounded to uint8."""
    return cv2.cvtColor(np.ascontiguousarray(frame), cv2.COLOR_RGBA2GRAY)


def to_hsv(frame: np.ndarray) -> np.ndarray:
    """
    Convert an RGBA frame to float HSV.

    H is in degrees [0, 360), S and V are scaled to [0, 255].
    """
    rgb = cv2.cvtColor(np.ascontiguousarray(frame), cv2.COLOR_RGBA2RGB).astype(np.float32) / 255.0
    hsv = cv2.cvtColor(rgb, cv2.COLOR_RGB2HSV)
    hsv[..., 1:] *= 255.0
    return hsv


def check_same_shape(current: np.ndarray, reference: np.ndarray) -> None:
    if current.shape[:2] != reference.shape[:2]:
        raise InvalidFrameDimensions(
            f"Frame size mismatch: {current.shape[1]}x{current.shape[0]} "
            f"vs {reference.shape[1]}x{reference.shape[0]}"
        )
