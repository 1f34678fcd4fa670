"""Frame luminance reduction for flash detection."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Hashable, NamedTuple, Union

import cv2
import numpy as np

from ..detection.state import DetectionState

PixelBuffer = Union[bytes, bytearray, memoryview, np.ndarray]

_GRAY_CODES = {
    (3, False): cv2.COLOR_RGB2GRAY,
    (3, True): cv2.COLOR_BGR2GRAY,
    (4, False): cv2.COLOR_RGBA2GRAY,
    (4, True): cv2.COLOR_BGRA2GRAY,
}


class EmptyFrame(ValueError):
    """Raised when a frame carries no usable pixel data."""


@dataclass(frozen=True)
class FrameSample:
    """One observed frame from a video source."""

    source_id: Hashable
    pixels: PixelBuffer
    width: int
    height: int
    timestamp_ms: int
    channel_order: str = "rgba"


class LuminanceReading(NamedTuple):
    brightness: float
    delta: float


def to_grayscale(
    pixels: PixelBuffer,
    width: int,
    height: int,
    channel_order: str = "rgba",
) -> np.ndarray:
    """
    Convert a raw pixel buffer into a single-channel luma image.

    Args:
        pixels: Flat buffer or ``(h, w[, c])`` array with 1, 3 or 4 channels
        width: Frame width in pixels
        height: Frame height in pixels
        channel_order: ``rgba``/``rgb`` or ``bgra``/``bgr``; ignored for gray input

    Returns:
        ``(height, width)`` uint8 image using BT.601 luma weights

    Raises:
        EmptyFrame: The buffer is empty or does not match the dimensions.
    """
    if pixels is None or width <= 0 or height <= 0:
        raise EmptyFrame(f"invalid frame dimensions {width}x{height}")

    if isinstance(pixels, np.ndarray):
        flat = pixels.reshape(-1)
    else:
        flat = np.frombuffer(pixels, dtype=np.uint8)

    if flat.size == 0:
        raise EmptyFrame("zero-length pixel buffer")

    area = width * height
    channels, remainder = divmod(flat.size, area)
    if remainder or channels not in (1, 3, 4):
        raise EmptyFrame(
            f"pixel buffer of {flat.size} values does not fit {width}x{height}"
        )

    if flat.dtype != np.uint8:
        flat = np.clip(flat, 0, 255).astype(np.uint8)

    if channels == 1:
        return flat.reshape(height, width)

    image = flat.reshape(height, width, channels)
    bgr_first = channel_order.lower().startswith("bgr")
    return cv2.cvtColor(image, _GRAY_CODES[(channels, bgr_first)])


def mean_brightness(gray: np.ndarray) -> float:
    """Average intensity of a gray image; raises EmptyFrame when undefined."""
    if gray is None or gray.size == 0:
        raise EmptyFrame("grayscale reduction produced no pixels")
    brightness = float(np.mean(gray))
    if math.isnan(brightness):
        raise EmptyFrame("grayscale reduction produced NaN")
    return brightness


class LuminanceAnalyzer:
    """Reduce frames to average brightness and a delta against the previous frame."""

    def analyze(self, sample: FrameSample, state: DetectionState) -> LuminanceReading:
        """Measure one frame and update the source's brightness baseline.

        On failure the baseline is cleared so the next valid frame starts fresh.
        """
        try:
            gray = to_grayscale(
                sample.pixels, sample.width, sample.height, sample.channel_order
            )
            brightness = mean_brightness(gray)
        except EmptyFrame:
            state.prev_brightness = None
            raise

        delta = 0.0
        if state.prev_brightness is not None:
            delta = abs(brightness - state.prev_brightness)

        state.prev_brightness = brightness
        return LuminanceReading(brightness=brightness, delta=delta)
