"""Overlay appearance helpers and a headless overlay implementation."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Any

DEFAULT_OVERLAY_COLOR = "#003264"
DEFAULT_OVERLAY_OPACITY = 0.95
DEFAULT_WARNING_TEXT = "Flashing Blocked"

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


def clamp_opacity(opacity: float) -> float:
    return min(1.0, max(0.0, float(opacity)))


def parse_hex_color(color: str) -> tuple[int, int, int] | None:
    match = _HEX_COLOR.match(color.strip()) if isinstance(color, str) else None
    if match is None:
        return None
    value = match.group(1)
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def overlay_background(color: str, opacity: float) -> str:
    """CSS ``rgba()`` background for the overlay; invalid colors use the default."""
    rgb = parse_hex_color(color)
    if rgb is None:
        r, g, b = parse_hex_color(DEFAULT_OVERLAY_COLOR)
        return f"rgba({r}, {g}, {b}, {DEFAULT_OVERLAY_OPACITY})"
    r, g, b = rgb
    return f"rgba({r}, {g}, {b}, {clamp_opacity(opacity)})"


@dataclass(frozen=True)
class OverlayAppearance:
    color: str = DEFAULT_OVERLAY_COLOR
    opacity: float = DEFAULT_OVERLAY_OPACITY
    show_warning_text: bool = True
    warning_text: str = DEFAULT_WARNING_TEXT

    @property
    def background(self) -> str:
        return overlay_background(self.color, self.opacity)

    @property
    def label_text(self) -> str:
        return self.warning_text if self.show_warning_text else ""


class OverlayStateView:
    """Headless overlay that records what a renderer should display.

    Used by the HTTP service, where clients poll the overlay state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._visible = False
        self._color = overlay_background(DEFAULT_OVERLAY_COLOR, DEFAULT_OVERLAY_OPACITY)
        self._opacity = DEFAULT_OVERLAY_OPACITY
        self._label_text = DEFAULT_WARNING_TEXT
        self.show_calls = 0
        self.hide_calls = 0

    def show(self) -> None:
        with self._lock:
            self._visible = True
            self.show_calls += 1

    def hide(self) -> None:
        with self._lock:
            self._visible = False
            self.hide_calls += 1

    def set_appearance(self, color: str, opacity: float, label_text: str) -> None:
        with self._lock:
            self._color = color
            self._opacity = opacity
            self._label_text = label_text

    def state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "visible": self._visible,
                "background": self._color,
                "opacity": self._opacity,
                "label_text": self._label_text,
            }
