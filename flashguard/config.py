"""Detection configuration snapshots and the provider that serves them."""

from __future__ import annotations

import logging
import math
import os
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, TypeVar

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T", int, float)


def _env(name: str, default: _T) -> _T:
    """Read an environment variable, converting to the same type as *default*."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return type(default)(raw)
    except (TypeError, ValueError):
        return default


DEFAULT_FLASH_THRESHOLD = 90.0
DEFAULT_FLASH_HZ_THRESHOLD = 3
DEFAULT_COOLDOWN_MS = 500
DEFAULT_WINDOW_MS = 1000
DEFAULT_TICK_INTERVAL_MS = 100


class InvalidConfig(ValueError):
    """Raised when a detection configuration cannot be used."""


@dataclass(frozen=True)
class DetectionConfig:
    """Immutable detection parameters read once per evaluation."""

    brightness_delta_threshold: float = DEFAULT_FLASH_THRESHOLD
    flash_frequency_threshold_hz: int = DEFAULT_FLASH_HZ_THRESHOLD
    cooldown_ms: int = DEFAULT_COOLDOWN_MS
    window_ms: int = DEFAULT_WINDOW_MS
    diagnostics_enabled: bool = False

    def validate(self) -> "DetectionConfig":
        """Return self, or raise InvalidConfig describing the first bad field."""
        threshold = self.brightness_delta_threshold
        if not isinstance(threshold, (int, float)) or math.isnan(threshold) or threshold <= 0:
            raise InvalidConfig(
                f"brightness_delta_threshold must be > 0, got {threshold!r}"
            )
        if not _is_int(self.flash_frequency_threshold_hz) or self.flash_frequency_threshold_hz <= 0:
            raise InvalidConfig(
                "flash_frequency_threshold_hz must be a positive integer, "
                f"got {self.flash_frequency_threshold_hz!r}"
            )
        if not _is_int(self.cooldown_ms) or self.cooldown_ms < 0:
            raise InvalidConfig(f"cooldown_ms must be >= 0, got {self.cooldown_ms!r}")
        if not _is_int(self.window_ms) or self.window_ms <= 0:
            raise InvalidConfig(f"window_ms must be > 0, got {self.window_ms!r}")
        return self


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ConfigProvider:
    """Holds the latest valid DetectionConfig; safe to update from any thread.

    Invalid updates keep the last-known-good snapshot and are reported through
    ``on_warning``.
    """

    def __init__(
        self,
        initial: Optional[DetectionConfig] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self._lock = threading.Lock()
        self._on_warning = on_warning
        self._current = DetectionConfig()
        if initial is not None:
            self.update(initial)

    def current(self) -> DetectionConfig:
        with self._lock:
            return self._current

    def update(self, config: DetectionConfig) -> bool:
        """Install *config* if valid. Returns whether it was accepted."""
        try:
            config.validate()
        except InvalidConfig as exc:
            with self._lock:
                kept = self._current
            self._warn(f"Ignoring invalid detection config ({exc}); keeping {kept}")
            return False

        with self._lock:
            self._current = config
        return True

    def patch(self, **changes: Any) -> bool:
        """Update selected fields of the current snapshot."""
        with self._lock:
            candidate = replace(self._current, **changes)
        return self.update(candidate)

    def set_warning_handler(self, handler: Optional[Callable[[str], None]]) -> None:
        self._on_warning = handler

    def _warn(self, message: str) -> None:
        if self._on_warning is not None:
            self._on_warning(message)
        else:
            _LOGGER.warning(message)
