"""Detection pipeline bound to a single video source."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Hashable, NamedTuple, Optional

from ..config import ConfigProvider
from ..cv.luminance import EmptyFrame, FrameSample, LuminanceAnalyzer
from ..detection.cooldown import SourceCooldownController, Transition
from ..detection.flash_window import FlashWindowDetector
from ..detection.state import DetectionState
from ..diagnostics import DiagnosticSink
from ..suppression.coordinator import SuppressionCoordinator

_LOGGER = logging.getLogger(__name__)


class LifecycleEvent(str, enum.Enum):
    PAUSED = "paused"
    RESUMED = "resumed"
    ENDED = "ended"
    REMOVED = "removed"


class FrameResult(NamedTuple):
    """Outcome of one frame tick."""

    source_id: Hashable
    timestamp_ms: int
    brightness: Optional[float]
    delta: Optional[float]
    frequency_hz: int
    hazard: bool
    active: bool
    transition: Optional[Transition]
    skipped_reason: Optional[str] = None


class SourcePipeline:
    """Run luminance -> flash window -> cooldown for one source.

    Frame ticks, cooldown ticks and lifecycle events are serialized by a
    per-source lock. The detection state is never shared with other sources.
    """

    def __init__(
        self,
        source_id: Hashable,
        coordinator: SuppressionCoordinator,
        config_provider: ConfigProvider,
        diagnostics: Optional[DiagnosticSink] = None,
        playing: bool = True,
    ):
        self.source_id = source_id
        self.config_provider = config_provider
        self.diagnostics = diagnostics
        self.state = DetectionState()
        self.analyzer = LuminanceAnalyzer()
        self.detector = FlashWindowDetector()
        self.controller = SourceCooldownController(
            source_id,
            self.state,
            coordinator,
            on_transition=self._on_transition,
        )

        self._lock = threading.Lock()
        self._playing = playing
        self._torn_down = False
        self._last_timestamp_ms: Optional[int] = None

    @property
    def active(self) -> bool:
        return self.state.hazard_active

    @property
    def playing(self) -> bool:
        return self._playing and not self._torn_down

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def on_frame(self, sample: FrameSample) -> Optional[FrameResult]:
        """Process one frame. Returns None when the frame was not accepted."""
        with self._lock:
            if self._torn_down or not self._playing:
                return None

            now_ms = int(sample.timestamp_ms)
            if self._last_timestamp_ms is not None and now_ms < self._last_timestamp_ms:
                _LOGGER.debug(
                    "source %s: dropping out-of-order frame %d < %d",
                    self.source_id,
                    now_ms,
                    self._last_timestamp_ms,
                )
                return None
            self._last_timestamp_ms = now_ms

            config = self.config_provider.current()

            try:
                brightness, delta = self.analyzer.analyze(sample, self.state)
            except EmptyFrame as exc:
                _LOGGER.debug("source %s: skipping frame: %s", self.source_id, exc)
                return FrameResult(
                    source_id=self.source_id,
                    timestamp_ms=now_ms,
                    brightness=None,
                    delta=None,
                    frequency_hz=len(self.state.flash_timestamps),
                    hazard=False,
                    active=self.state.hazard_active,
                    transition=None,
                    skipped_reason=str(exc),
                )

            frequency_hz, hazard = self.detector.evaluate(delta, now_ms, self.state, config)

            if config.diagnostics_enabled and self.diagnostics is not None:
                self.diagnostics.record_frame(
                    self.source_id, brightness, delta, frequency_hz, hazard
                )

            transition = self.controller.on_reading(hazard, now_ms)
            return FrameResult(
                source_id=self.source_id,
                timestamp_ms=now_ms,
                brightness=brightness,
                delta=delta,
                frequency_hz=frequency_hz,
                hazard=hazard,
                active=self.state.hazard_active,
                transition=transition,
            )

    def reset_baseline(self) -> None:
        """Forget the previous brightness so the next frame has a zero delta."""
        with self._lock:
            self.state.prev_brightness = None

    def check_cooldown(self, now_ms: int) -> Optional[Transition]:
        """Timer tick: release the source once its cooldown has expired."""
        with self._lock:
            if self._torn_down:
                return None
            return self.controller.check_cooldown(now_ms, self.config_provider.current())

    def on_lifecycle(
        self, event: LifecycleEvent, now_ms: Optional[int] = None
    ) -> Optional[Transition]:
        if event is LifecycleEvent.REMOVED:
            return self.teardown(now_ms)

        with self._lock:
            if self._torn_down:
                return None
            if event is LifecycleEvent.RESUMED:
                self._playing = True
                return None
            self._playing = False
            return self.controller.force_idle(event.value, now_ms)

    def teardown(self, now_ms: Optional[int] = None) -> Optional[Transition]:
        """Stop tracking permanently, releasing any held suppression."""
        with self._lock:
            if self._torn_down:
                return None
            self._torn_down = True
            self._playing = False
            return self.controller.force_idle(LifecycleEvent.REMOVED.value, now_ms)

    def _on_transition(self, transition: Transition) -> None:
        if self.diagnostics is None:
            return
        if self.config_provider.current().diagnostics_enabled:
            self.diagnostics.record_transition(
                transition.source_id, transition.event.value, transition.reason
            )
