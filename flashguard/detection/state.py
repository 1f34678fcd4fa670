"""Per-source detection state."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class DetectionState:
    """Mutable detection state owned by a single source pipeline."""

    prev_brightness: Optional[float] = None
    # Ascending; only entries inside the trailing window are kept.
    flash_timestamps: deque[int] = field(default_factory=deque)
    last_flash_at_ms: Optional[int] = None
    hazard_active: bool = False

    def reset(self) -> None:
        self.prev_brightness = None
        self.flash_timestamps.clear()
        self.last_flash_at_ms = None
        self.hazard_active = False
