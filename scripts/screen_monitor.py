"""Realtime desktop flash monitor with a full-screen suppression overlay."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import cv2
import numpy as np

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from flashguard.config import ConfigProvider
from flashguard.cv.luminance import FrameSample
from flashguard.diagnostics import DiagnosticSink
from flashguard.pipeline.monitor import FlashMonitor
from flashguard.settings import SettingsStore
from flashguard.suppression.coordinator import (
    SuppressionCoordinator,
    init_coordinator,
    shutdown_coordinator,
)

LOGGER = logging.getLogger("screen_monitor")


@dataclass
class MonitorConfig:
    monitor_index: int = 0
    fps: float = 20.0
    analysis_width: int = 160
    analysis_height: int = 90
    settings_path: Optional[str] = None
    settings_poll_seconds: float = 1.0
    debug: bool = False


def monitor_source_id(monitor_id: int) -> str:
    return f"monitor-{monitor_id}"


def downsample_frame(frame: np.ndarray, size: tuple[int, int] = (160, 90)) -> np.ndarray:
    """Shrink a captured frame; area interpolation keeps the mean brightness."""
    return cv2.resize(frame, size, interpolation=cv2.INTER_AREA)


def frame_to_sample(
    frame_bgra: np.ndarray, monitor_id: int, timestamp_ms: int
) -> FrameSample:
    height, width = frame_bgra.shape[:2]
    return FrameSample(
        source_id=monitor_source_id(monitor_id),
        pixels=frame_bgra,
        width=int(width),
        height=int(height),
        timestamp_ms=int(timestamp_ms),
        channel_order="bgra",
    )


def reload_settings_if_changed(
    store: SettingsStore,
    last_mtime: Optional[float],
    provider: ConfigProvider,
    coordinator: SuppressionCoordinator,
) -> Optional[float]:
    """Apply the settings file again when its mtime changed. Returns the mtime seen."""
    try:
        mtime = store.path.stat().st_mtime
    except OSError:
        return last_mtime

    if last_mtime is not None and mtime == last_mtime:
        return last_mtime

    settings = store.load()
    provider.update(settings.to_detection_config())
    coordinator.update_appearance(settings.appearance())
    if last_mtime is not None:
        LOGGER.info("settings reloaded from %s", store.path)
    return mtime


def reset_baselines(monitor: FlashMonitor) -> None:
    """Drop every source's brightness baseline, e.g. after the screen was covered."""
    for source_id in monitor.sources():
        pipeline = monitor.get(source_id)
        if pipeline is not None:
            pipeline.reset_baseline()


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _parse_args() -> MonitorConfig:
    parser = argparse.ArgumentParser(description="Realtime desktop flash monitor")
    parser.add_argument("--fps", type=float, default=20.0)
    parser.add_argument("--analysis-width", type=int, default=160)
    parser.add_argument("--analysis-height", type=int, default=90)
    parser.add_argument(
        "--settings",
        default=os.getenv("FLASHGUARD_SETTINGS_PATH"),
        help="Settings JSON path (fallback to FLASHGUARD_SETTINGS_PATH env or default path)",
    )
    parser.add_argument(
        "--monitor-index",
        type=int,
        default=int(os.getenv("SCREEN_MONITOR_INDEX", "0")),
        help="MSS monitor index: 0 means all monitors, 1/2/... means specific monitor",
    )
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    return MonitorConfig(
        monitor_index=args.monitor_index,
        fps=args.fps,
        analysis_width=args.analysis_width,
        analysis_height=args.analysis_height,
        settings_path=args.settings,
        debug=args.debug,
    )


def run_monitor(config: MonitorConfig) -> int:
    """
    Capture the screen, detect flashes and cover the screen while they last.

    Analysis pauses while the overlay is shown, since the capture would only
    see the overlay. Once the cooldown lifts it, each source starts from a fresh
    brightness baseline. A strobe that is still running is detected again after
    it crosses the flash threshold, so a long strobe shows up as the overlay
    re-engaging roughly once per cooldown plus detection window.
    """
    _configure_logging(config.debug)

    try:
        import mss
        from PyQt6.QtCore import QObject, Qt, pyqtSignal
        from PyQt6.QtGui import QColor, QFont, QPainter
        from PyQt6.QtWidgets import QApplication, QWidget
    except ImportError as exc:
        LOGGER.error("Missing screen dependencies. Run: pip install -e '.[screen]'")
        LOGGER.error("Import error: %s", exc)
        return 2

    class OverlaySignals(QObject):
        show_signal = pyqtSignal()
        hide_signal = pyqtSignal()
        appearance_signal = pyqtSignal(str, float, str)

    class OverlayWindow(QWidget):
        def __init__(self):
            super().__init__()
            self._color = QColor(0, 50, 100)
            self._label = ""
            window_flags = (
                Qt.WindowType.FramelessWindowHint
                | Qt.WindowType.WindowStaysOnTopHint
                | Qt.WindowType.WindowTransparentForInput
            )
            if hasattr(Qt.WindowType, "WindowDoesNotAcceptFocus"):
                window_flags |= Qt.WindowType.WindowDoesNotAcceptFocus
            self.setWindowFlags(window_flags)
            self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground)
            if hasattr(Qt.WidgetAttribute, "WA_ShowWithoutActivating"):
                self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating, True)
            self.setFocusPolicy(Qt.FocusPolicy.NoFocus)
            screen = QApplication.primaryScreen()
            if screen is not None:
                self.setGeometry(screen.virtualGeometry())

        def set_appearance(self, background: str, opacity: float, label_text: str) -> None:
            rgba = background.strip()[len("rgba("):-1].split(",")
            r, g, b = (int(part) for part in rgba[:3])
            self._color = QColor(r, g, b)
            self.setWindowOpacity(opacity)
            self._label = label_text
            self.update()

        def paintEvent(self, _event) -> None:  # pragma: no cover - GUI runtime path
            painter = QPainter(self)
            painter.fillRect(self.rect(), self._color)
            if self._label:
                painter.setPen(QColor(255, 255, 255, 240))
                painter.setFont(QFont("Helvetica Neue", 48, QFont.Weight.DemiBold))
                painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, self._label)

    class QtOverlay:
        """Overlay collaborator; signals hop from capture threads to the GUI thread."""

        def __init__(self, signals: OverlaySignals):
            self._signals = signals
            self.visible = False

        def show(self) -> None:
            self.visible = True
            self._signals.show_signal.emit()

        def hide(self) -> None:
            self.visible = False
            self._signals.hide_signal.emit()

        def set_appearance(self, color: str, opacity: float, label_text: str) -> None:
            self._signals.appearance_signal.emit(color, float(opacity), label_text)

    app = QApplication.instance() or QApplication(sys.argv)
    window = OverlayWindow()

    signals = OverlaySignals()
    signals.show_signal.connect(window.showFullScreen)
    signals.hide_signal.connect(window.hide)
    signals.appearance_signal.connect(window.set_appearance)

    store = SettingsStore(config.settings_path)
    settings = store.load()
    diagnostics = DiagnosticSink()
    provider = ConfigProvider(on_warning=diagnostics.warn)
    provider.update(settings.to_detection_config())

    overlay = QtOverlay(signals)
    coordinator = init_coordinator(overlay, settings.appearance())
    monitor = FlashMonitor(coordinator, provider, diagnostics=diagnostics)

    stop_event = threading.Event()
    app.aboutToQuit.connect(stop_event.set)

    def capture_worker() -> None:  # pragma: no cover - threaded runtime path
        try:
            analysis_size = (config.analysis_width, config.analysis_height)
            settings_mtime: Optional[float] = None
            covered = False
            next_settings_check = 0.0

            with mss.mss() as sct:
                monitors = sct.monitors
                if len(monitors) <= 1:
                    raise RuntimeError("No screen monitors available from mss")

                if config.monitor_index == 0:
                    monitor_ids = list(range(1, len(monitors)))
                else:
                    monitor_ids = [int(config.monitor_index)]

                for monitor_id in monitor_ids:
                    if monitor_id < 1 or monitor_id >= len(monitors):
                        raise RuntimeError(
                            f"Invalid monitor index {monitor_id}, available range: 1..{len(monitors)-1}"
                        )
                    monitor.track(monitor_source_id(monitor_id))

                LOGGER.info(
                    "flash monitor started: monitor_index=%s active_monitors=%s",
                    config.monitor_index,
                    monitor_ids,
                )

                while not stop_event.is_set():
                    loop_start = time.perf_counter()

                    if time.monotonic() >= next_settings_check:
                        settings_mtime = reload_settings_if_changed(
                            store, settings_mtime, provider, coordinator
                        )
                        next_settings_check = time.monotonic() + config.settings_poll_seconds

                    # The capture sees our own overlay while it is shown; skip
                    # analysis until the cooldown lifts it, then start from
                    # fresh baselines.
                    if overlay.visible:
                        covered = True
                        _sleep_until_next(loop_start, config.fps, stop_event)
                        continue
                    if covered:
                        reset_baselines(monitor)
                        covered = False

                    for monitor_id in monitor_ids:
                        frame_raw = np.array(sct.grab(monitors[monitor_id]), dtype=np.uint8)
                        frame = downsample_frame(frame_raw, analysis_size)
                        result = monitor.submit_frame(
                            frame_to_sample(frame, monitor_id, monitor.clock())
                        )
                        if config.debug and result is not None and result.transition:
                            LOGGER.debug(
                                "monitor %d %s: freq=%dHz delta=%.1f",
                                monitor_id,
                                result.transition.event.value,
                                result.frequency_hz,
                                result.delta or 0.0,
                            )

                    _sleep_until_next(loop_start, config.fps, stop_event)
        except Exception:
            LOGGER.exception("capture worker crashed")
            stop_event.set()

    worker = threading.Thread(target=capture_worker, daemon=True)
    worker.start()

    def _handle_signal(_sig: int, _frame: Any) -> None:
        stop_event.set()
        app.quit()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    exit_code = app.exec()
    stop_event.set()
    worker.join(timeout=2.0)
    monitor.close()
    shutdown_coordinator()
    return int(exit_code)


def _sleep_until_next(loop_start: float, target_fps: float, stop_event: threading.Event) -> None:
    interval = 1.0 / max(float(target_fps), 0.1)
    elapsed = time.perf_counter() - loop_start
    remaining = max(0.0, interval - elapsed)
    stop_event.wait(remaining)


def main() -> int:
    config = _parse_args()
    return run_monitor(config)


if __name__ == "__main__":
    raise SystemExit(main())
