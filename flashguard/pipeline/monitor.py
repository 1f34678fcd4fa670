"""Registry of tracked sources with per-source cooldown timers."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Hashable, Optional

from ..config import DEFAULT_TICK_INTERVAL_MS, ConfigProvider, _env
from ..cv.luminance import FrameSample
from ..detection.cooldown import Transition
from ..diagnostics import DiagnosticSink
from ..suppression.coordinator import SuppressionCoordinator
from .source import FrameResult, LifecycleEvent, SourcePipeline

_LOGGER = logging.getLogger(__name__)


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class CooldownTimer:
    """Calls *callback* every *interval_ms* on a daemon thread until stopped."""

    def __init__(self, interval_ms: int, callback: Callable[[], None], name: str = ""):
        self.interval_s = max(1, int(interval_ms)) / 1000.0
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name or None, daemon=True)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            try:
                self.callback()
            except Exception:
                _LOGGER.exception("cooldown timer callback failed")


class FlashMonitor:
    """
    Track many sources feeding one suppression coordinator.

    Each playing source gets a cooldown timer so suppression is lifted even
    when the source stops delivering frames. Frame timestamps and timer ticks
    must come from the same clock (``clock``, monotonic milliseconds by
    default).
    """

    def __init__(
        self,
        coordinator: SuppressionCoordinator,
        config_provider: ConfigProvider,
        diagnostics: Optional[DiagnosticSink] = None,
        clock: Callable[[], int] = monotonic_ms,
        tick_interval_ms: Optional[int] = None,
        timers_enabled: bool = True,
    ):
        self.coordinator = coordinator
        self.config_provider = config_provider
        self.diagnostics = diagnostics
        self.clock = clock
        self.tick_interval_ms = (
            tick_interval_ms
            if tick_interval_ms is not None
            else _env("FLASHGUARD_TICK_INTERVAL_MS", DEFAULT_TICK_INTERVAL_MS)
        )
        self.timers_enabled = timers_enabled

        self._lock = threading.Lock()
        self._sources: dict[Hashable, SourcePipeline] = {}
        self._timers: dict[Hashable, CooldownTimer] = {}

    def __contains__(self, source_id: Hashable) -> bool:
        with self._lock:
            return source_id in self._sources

    def __len__(self) -> int:
        with self._lock:
            return len(self._sources)

    def sources(self) -> list[Hashable]:
        with self._lock:
            return list(self._sources)

    def get(self, source_id: Hashable) -> Optional[SourcePipeline]:
        with self._lock:
            return self._sources.get(source_id)

    def track(self, source_id: Hashable, playing: bool = True) -> SourcePipeline:
        """Start tracking a source; tracking an already tracked source is a no-op."""
        with self._lock:
            pipeline = self._sources.get(source_id)
            if pipeline is not None:
                _LOGGER.debug("source %s already tracked", source_id)
                return pipeline
            pipeline = SourcePipeline(
                source_id,
                self.coordinator,
                self.config_provider,
                diagnostics=self.diagnostics,
                playing=playing,
            )
            self._sources[source_id] = pipeline

        _LOGGER.info("tracking source %s", source_id)
        if playing:
            self._start_timer(source_id)
        return pipeline

    def submit_frame(self, sample: FrameSample) -> Optional[FrameResult]:
        """Frame tick. Frames for unknown or torn-down sources are ignored."""
        pipeline = self.get(sample.source_id)
        if pipeline is None:
            _LOGGER.debug("frame for untracked source %s ignored", sample.source_id)
            return None
        try:
            return pipeline.on_frame(sample)
        except Exception:
            _LOGGER.exception("frame processing failed for source %s", sample.source_id)
            return None

    def pause(self, source_id: Hashable) -> Optional[Transition]:
        self._stop_timer(source_id)
        return self._lifecycle(source_id, LifecycleEvent.PAUSED)

    def resume(self, source_id: Hashable) -> None:
        pipeline = self.get(source_id)
        if pipeline is None:
            return
        pipeline.on_lifecycle(LifecycleEvent.RESUMED, self.clock())
        if pipeline.playing:
            self._start_timer(source_id)

    def end(self, source_id: Hashable) -> Optional[Transition]:
        self._stop_timer(source_id)
        return self._lifecycle(source_id, LifecycleEvent.ENDED)

    def remove(self, source_id: Hashable) -> Optional[Transition]:
        """Tear a source down: stop its timer and release any suppression it holds."""
        with self._lock:
            pipeline = self._sources.pop(source_id, None)
        self._stop_timer(source_id)
        if pipeline is None:
            return None
        _LOGGER.info("stopped tracking source %s", source_id)
        return pipeline.teardown(self.clock())

    def tick(self, now_ms: Optional[int] = None) -> list[Transition]:
        """Run a cooldown check for every tracked source."""
        now = self.clock() if now_ms is None else now_ms
        with self._lock:
            pipelines = list(self._sources.values())

        transitions = []
        for pipeline in pipelines:
            try:
                transition = pipeline.check_cooldown(now)
            except Exception:
                _LOGGER.exception("cooldown check failed for source %s", pipeline.source_id)
                continue
            if transition is not None:
                transitions.append(transition)
        return transitions

    def close(self) -> None:
        for source_id in self.sources():
            self.remove(source_id)

    def _lifecycle(self, source_id: Hashable, event: LifecycleEvent) -> Optional[Transition]:
        pipeline = self.get(source_id)
        if pipeline is None:
            return None
        return pipeline.on_lifecycle(event, self.clock())

    def _on_timer(self, source_id: Hashable) -> None:
        pipeline = self.get(source_id)
        if pipeline is None:
            return
        pipeline.check_cooldown(self.clock())

    def _start_timer(self, source_id: Hashable) -> None:
        if not self.timers_enabled:
            return
        with self._lock:
            if source_id not in self._sources:
                return
            timer = self._timers.get(source_id)
            if timer is not None and timer.is_running:
                return
            timer = CooldownTimer(
                self.tick_interval_ms,
                lambda: self._on_timer(source_id),
                name=f"cooldown-{source_id}",
            )
            self._timers[source_id] = timer
        timer.start()

    def _stop_timer(self, source_id: Hashable) -> None:
        with self._lock:
            timer = self._timers.pop(source_id, None)
        if timer is not None:
            timer.stop()
