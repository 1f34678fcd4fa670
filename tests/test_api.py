"""Tests for the HTTP routes."""

import io
import json

import cv2
import numpy as np
import pytest
from fastapi import HTTPException, UploadFile

from flashguard.api import routes
from flashguard.models.schemas import SettingsUpdateRequest
from flashguard.suppression.coordinator import shutdown_coordinator


def _png(value: int, size: int = 8) -> bytes:
    ok, encoded = cv2.imencode(".png", np.full((size, size, 3), value, dtype=np.uint8))
    assert ok
    return encoded.tobytes()


def _upload(data: bytes) -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename="frame.png")


async def _send(source_id: str, value: int, timestamp_ms: int):
    return await routes.analyze_frame(
        source_id, image=_upload(_png(value)), timestamp_ms=timestamp_ms
    )


async def _flash(source_id: str, start_ms: int = 0):
    result = None
    for i in range(4):
        result = await _send(source_id, 255 if i % 2 == 0 else 0, start_ms + i * 50)
    return result


@pytest.fixture
def runtime(tmp_path, monkeypatch):
    for name in (
        "FLASHGUARD_COOLDOWN_MS",
        "FLASHGUARD_FLASH_THRESHOLD",
        "FLASHGUARD_FLASH_HZ_THRESHOLD",
        "FLASHGUARD_WINDOW_MS",
    ):
        monkeypatch.delenv(name, raising=False)
    shutdown_coordinator()

    rt = routes.build_runtime(str(tmp_path / "settings.json"), timers_enabled=False)
    monkeypatch.setattr(routes, "_RUNTIME", rt)
    yield rt
    rt.monitor.close()
    shutdown_coordinator()


@pytest.mark.asyncio
async def test_health_check(runtime):
    response = await routes.health_check()

    assert response.status == "healthy"
    assert response.overlay_visible is False
    assert response.tracked_sources == 0


class TestSettingsRoutes:
    """Tests for settings endpoints."""

    @pytest.mark.asyncio
    async def test_get_defaults(self, runtime):
        settings = await routes.get_settings()

        assert settings.cooldown_time == 500
        assert settings.flash_threshold == 90.0
        assert settings.overlay_color == "#003264"

    @pytest.mark.asyncio
    async def test_update_persists_and_applies(self, runtime):
        response = await routes.update_settings(
            SettingsUpdateRequest(cooldown_time=800, overlay_color="#ff0000")
        )

        assert response.detection_config_applied is True
        assert response.settings.cooldown_time == 800
        assert runtime.config_provider.current().cooldown_ms == 800
        assert runtime.overlay.state()["background"] == "rgba(255, 0, 0, 0.95)"

        stored = json.loads(runtime.store.path.read_text())
        assert stored["cooldown_time"] == 800
        assert stored["overlay_color"] == "#ff0000"

    @pytest.mark.asyncio
    async def test_invalid_detection_values_keep_last_good_config(self, runtime):
        response = await routes.update_settings(SettingsUpdateRequest(flash_hz_threshold=0))

        assert response.detection_config_applied is False
        assert response.settings.flash_hz_threshold == 0
        assert runtime.config_provider.current().flash_frequency_threshold_hz == 3
        assert runtime.diagnostics.recent()[-1]["kind"] == "warning"

    @pytest.mark.asyncio
    async def test_null_fields_keep_current_values(self, runtime):
        response = await routes.update_settings(
            SettingsUpdateRequest(overlay_color=None, warning_text=None, cooldown_time=700)
        )

        assert response.settings.overlay_color == "#003264"
        assert response.settings.warning_text == "Flashing Blocked"
        assert response.settings.cooldown_time == 700

        settings = await routes.get_settings()
        assert settings.overlay_color == "#003264"
        stored = json.loads(runtime.store.path.read_text())
        assert stored["overlay_color"] == "#003264"
        assert stored["warning_text"] == "Flashing Blocked"

    @pytest.mark.asyncio
    async def test_reset(self, runtime):
        await routes.update_settings(SettingsUpdateRequest(cooldown_time=800))

        response = await routes.reset_settings()

        assert response.settings.cooldown_time == 500
        assert runtime.config_provider.current().cooldown_ms == 500


class TestSourceRoutes:
    """Tests for frame analysis and source lifecycle endpoints."""

    @pytest.mark.asyncio
    async def test_flashing_frames_engage_overlay(self, runtime):
        first = await _send("video-1", 255, 0)
        assert first.accepted is True
        assert first.brightness == pytest.approx(255.0)
        assert first.delta == 0.0

        last = await _flash("video-1", 50)

        assert last.hazard is True
        assert last.transition == "trigger"
        assert last.overlay_visible is True

        overlay = await routes.overlay_state()
        assert overlay.visible is True
        assert overlay.active_sources == ["video-1"]
        assert overlay.label_text == "Flashing Blocked"

    @pytest.mark.asyncio
    async def test_track_is_idempotent(self, runtime):
        await routes.track_source("video-1")
        state = await routes.track_source("video-1")

        assert state.tracked is True
        assert state.playing is True
        assert len(await routes.list_sources()) == 1

    @pytest.mark.asyncio
    async def test_pause_releases_and_resume_restores(self, runtime):
        await _flash("video-1")

        paused = await routes.pause_source("video-1")
        assert paused.playing is False
        assert paused.overlay_visible is False

        ignored = await _send("video-1", 255, 1000)
        assert ignored.accepted is False

        resumed = await routes.resume_source("video-1")
        assert resumed.playing is True
        assert (await _send("video-1", 255, 1100)).accepted is True

    @pytest.mark.asyncio
    async def test_end_releases(self, runtime):
        await _flash("video-1")

        ended = await routes.end_source("video-1")

        assert ended.active is False
        assert ended.overlay_visible is False

    @pytest.mark.asyncio
    async def test_remove_stops_tracking(self, runtime):
        await _flash("video-1")

        removed = await routes.remove_source("video-1")

        assert removed.tracked is False
        assert removed.overlay_visible is False
        assert (await routes.remove_source("video-1")).tracked is False

    @pytest.mark.asyncio
    async def test_cooldown_tick_releases(self, runtime):
        await _flash("video-1")  # last hazard at t=150

        runtime.monitor.tick(651)

        assert (await routes.overlay_state()).visible is False

    @pytest.mark.asyncio
    async def test_lifecycle_on_unknown_source_is_404(self, runtime):
        for route in (routes.pause_source, routes.resume_source, routes.end_source):
            with pytest.raises(HTTPException) as exc_info:
                await route("ghost")
            assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_undecodable_image_is_400(self, runtime):
        with pytest.raises(HTTPException) as exc_info:
            await routes.analyze_frame(
                "video-1", image=_upload(b"not an image"), timestamp_ms=0
            )

        assert exc_info.value.status_code == 400
        assert "video-1" not in runtime.monitor


@pytest.mark.asyncio
async def test_diagnostics_follow_debug_setting(runtime):
    await _send("video-1", 255, 0)
    assert (await routes.diagnostics()).records == []

    await routes.update_settings(SettingsUpdateRequest(enable_debug_logging=True))
    await _send("video-1", 0, 50)

    records = (await routes.diagnostics()).records
    assert [r["kind"] for r in records] == ["frame"]
    assert records[0]["delta"] == pytest.approx(255.0)


def test_build_runtime_survives_wrong_typed_settings_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"overlay_opacity": "abc", "overlay_color": 7}))
    shutdown_coordinator()

    try:
        rt = routes.build_runtime(str(path), timers_enabled=False)

        assert rt.settings.overlay_opacity == 0.95
        assert rt.overlay.state()["background"] == "rgba(0, 50, 100, 0.95)"
    finally:
        shutdown_coordinator()
