"""Tests for screen monitor logic (downsampling, samples and settings reload)."""

import json
import os

import numpy as np

from flashguard.config import ConfigProvider
from flashguard.cv.luminance import LuminanceAnalyzer
from flashguard.detection.state import DetectionState
from flashguard.pipeline.monitor import FlashMonitor
from flashguard.settings import SettingsStore
from flashguard.suppression.coordinator import SuppressionCoordinator
from flashguard.suppression.overlay import OverlayStateView
from scripts.screen_monitor import (
    downsample_frame,
    frame_to_sample,
    monitor_source_id,
    reload_settings_if_changed,
    reset_baselines,
)


def test_downsample_keeps_mean_brightness():
    frame = np.zeros((720, 1280, 4), dtype=np.uint8)
    frame[:, :640] = 255

    small = downsample_frame(frame)

    assert small.shape == (90, 160, 4)
    assert abs(float(small[:, :, 0].mean()) - 127.5) < 1.0


def test_frame_to_sample_uses_bgra_layout():
    frame = np.zeros((90, 160, 4), dtype=np.uint8)
    frame[:, :, 2] = 255  # red in BGRA
    frame[:, :, 3] = 255

    sample = frame_to_sample(frame, 1, 1234)

    assert sample.source_id == monitor_source_id(1) == "monitor-1"
    assert (sample.width, sample.height) == (160, 90)
    assert sample.timestamp_ms == 1234
    brightness, _ = LuminanceAnalyzer().analyze(sample, DetectionState())
    assert round(brightness) == 76


def test_settings_reload_only_on_change(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"cooldown_time": 800, "overlay_color": "#ffffff"}))
    store = SettingsStore(path)
    provider = ConfigProvider()
    overlay = OverlayStateView()
    coordinator = SuppressionCoordinator(overlay)

    mtime = reload_settings_if_changed(store, None, provider, coordinator)

    assert mtime == path.stat().st_mtime
    assert provider.current().cooldown_ms == 800
    assert overlay.state()["background"] == "rgba(255, 255, 255, 0.95)"

    provider.patch(cooldown_ms=100)
    assert reload_settings_if_changed(store, mtime, provider, coordinator) == mtime
    assert provider.current().cooldown_ms == 100

    path.write_text(json.dumps({"cooldown_time": 300}))
    os.utime(path, (mtime + 5, mtime + 5))

    assert reload_settings_if_changed(store, mtime, provider, coordinator) == mtime + 5
    assert provider.current().cooldown_ms == 300


def test_settings_reload_without_file(tmp_path):
    store = SettingsStore(tmp_path / "missing.json")
    provider = ConfigProvider()

    result = reload_settings_if_changed(
        store, None, provider, SuppressionCoordinator(OverlayStateView())
    )

    assert result is None
    assert provider.current().cooldown_ms == 500


def test_baselines_reset_after_screen_was_covered():
    monitor = FlashMonitor(
        SuppressionCoordinator(OverlayStateView()), ConfigProvider(), timers_enabled=False
    )
    white = np.full((90, 160, 4), 255, dtype=np.uint8)
    black = np.zeros((90, 160, 4), dtype=np.uint8)
    monitor.track(monitor_source_id(1))
    monitor.submit_frame(frame_to_sample(white, 1, 0))

    reset_baselines(monitor)
    result = monitor.submit_frame(frame_to_sample(black, 1, 50))

    assert result.delta == 0.0
    assert result.frequency_hz == 0
