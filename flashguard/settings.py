"""User preferences for detection and overlay appearance, persisted as JSON."""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from .config import (
    DEFAULT_COOLDOWN_MS,
    DEFAULT_FLASH_HZ_THRESHOLD,
    DEFAULT_FLASH_THRESHOLD,
    DEFAULT_WINDOW_MS,
    DetectionConfig,
    _env,
)
from .suppression.overlay import (
    DEFAULT_OVERLAY_COLOR,
    DEFAULT_OVERLAY_OPACITY,
    DEFAULT_WARNING_TEXT,
    OverlayAppearance,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".config" / "flashguard" / "settings.json"
DEPRECATED_KEYS = ("flash_trigger_count",)


@dataclass(frozen=True)
class Settings:
    overlay_color: str = DEFAULT_OVERLAY_COLOR
    overlay_opacity: float = DEFAULT_OVERLAY_OPACITY
    cooldown_time: int = DEFAULT_COOLDOWN_MS
    flash_threshold: float = DEFAULT_FLASH_THRESHOLD
    flash_hz_threshold: int = DEFAULT_FLASH_HZ_THRESHOLD
    window_ms: int = DEFAULT_WINDOW_MS
    show_warning_text: bool = True
    warning_text: str = DEFAULT_WARNING_TEXT
    enable_debug_logging: bool = False

    @classmethod
    def defaults(cls) -> "Settings":
        """Built-in defaults with environment overrides for detection values."""
        return cls(
            cooldown_time=_env("FLASHGUARD_COOLDOWN_MS", DEFAULT_COOLDOWN_MS),
            flash_threshold=_env("FLASHGUARD_FLASH_THRESHOLD", DEFAULT_FLASH_THRESHOLD),
            flash_hz_threshold=_env("FLASHGUARD_FLASH_HZ_THRESHOLD", DEFAULT_FLASH_HZ_THRESHOLD),
            window_ms=_env("FLASHGUARD_WINDOW_MS", DEFAULT_WINDOW_MS),
        )

    def merged(self, changes: dict[str, Any]) -> "Settings":
        """Return a copy with known keys from *changes* applied."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in changes.items() if k in known})

    def to_detection_config(self) -> DetectionConfig:
        return DetectionConfig(
            brightness_delta_threshold=self.flash_threshold,
            flash_frequency_threshold_hz=_whole(self.flash_hz_threshold),
            cooldown_ms=_whole(self.cooldown_time),
            window_ms=_whole(self.window_ms),
            diagnostics_enabled=bool(self.enable_debug_logging),
        )

    def appearance(self) -> OverlayAppearance:
        return OverlayAppearance(
            color=self.overlay_color,
            opacity=self.overlay_opacity,
            show_warning_text=bool(self.show_warning_text),
            warning_text=str(self.warning_text),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _whole(value: Any) -> Any:
    # JSON round-trips may turn 500 into 500.0; keep other values for validation.
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _same_kind(value: Any, expected: Any) -> bool:
    if isinstance(expected, bool) or isinstance(value, bool):
        return isinstance(value, bool) and isinstance(expected, bool)
    if isinstance(expected, (int, float)):
        return isinstance(value, (int, float)) and math.isfinite(value)
    return isinstance(value, type(expected))


class SettingsStore:
    """Load and save Settings as a JSON document."""

    def __init__(self, path: str | os.PathLike[str] | None = None):
        env_path = os.getenv("FLASHGUARD_SETTINGS_PATH")
        self.path = Path(path or env_path or DEFAULT_SETTINGS_PATH)

    def load(self) -> Settings:
        """Stored values merged over defaults; unreadable files yield defaults."""
        defaults = Settings.defaults()
        if not self.path.is_file():
            return defaults

        try:
            stored = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            _LOGGER.error("Error loading settings from %s: %s", self.path, exc)
            return defaults

        if not isinstance(stored, dict):
            _LOGGER.error("Ignoring settings file %s: expected a JSON object", self.path)
            return defaults

        for key in DEPRECATED_KEYS:
            stored.pop(key, None)
        return defaults.merged(self._well_typed(stored, defaults))

    def _well_typed(self, stored: dict[str, Any], defaults: Settings) -> dict[str, Any]:
        """Drop stored values whose JSON type does not match the field."""
        kept = {}
        for key, value in stored.items():
            expected = getattr(defaults, key, None)
            if expected is None:
                continue
            if _same_kind(value, expected):
                kept[key] = value
            else:
                _LOGGER.error(
                    "Ignoring setting %s=%r from %s: expected %s",
                    key,
                    value,
                    self.path,
                    type(expected).__name__,
                )
        return kept

    def save(self, settings: Settings) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps(settings.to_dict(), indent=2, sort_keys=True),
                encoding="utf-8",
            )
        except OSError as exc:
            _LOGGER.error("Error saving settings to %s: %s", self.path, exc)

    def reset(self) -> Settings:
        settings = Settings.defaults()
        self.save(settings)
        return settings
