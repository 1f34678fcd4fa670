"""Rolling-window flash frequency estimation."""

from __future__ import annotations

from typing import NamedTuple

from ..config import DetectionConfig
from .state import DetectionState


class FlashReading(NamedTuple):
    frequency_hz: int
    hazard: bool


def prune_window(state: DetectionState, now_ms: int, window_ms: int) -> int:
    """Drop flash timestamps that fell out of the trailing window.

    Timestamps are ascending, so this only trims the oldest prefix.
    Returns the number of entries removed.
    """
    timestamps = state.flash_timestamps
    removed = 0
    while timestamps and now_ms - timestamps[0] >= window_ms:
        timestamps.popleft()
        removed += 1
    return removed


class FlashWindowDetector:
    """
    Count brightness jumps inside a trailing time window.

    The count over a one-second window approximates the flash frequency in Hz.
    The window is time-based, so variable frame rates and dropped frames do
    not skew the estimate. Recorded events are never re-evaluated when the
    threshold changes; only later frames see the new value.
    """

    def evaluate(
        self,
        delta: float,
        now_ms: int,
        state: DetectionState,
        config: DetectionConfig,
    ) -> FlashReading:
        prune_window(state, now_ms, config.window_ms)

        if delta > config.brightness_delta_threshold:
            state.flash_timestamps.append(now_ms)

        frequency_hz = len(state.flash_timestamps)
        return FlashReading(
            frequency_hz=frequency_hz,
            hazard=frequency_hz >= config.flash_frequency_threshold_hz,
        )
