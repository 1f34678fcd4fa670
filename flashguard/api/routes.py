"""API routes for the flash suppression service."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

import cv2
import numpy as np
from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from ..config import ConfigProvider
from ..cv.luminance import FrameSample
from ..diagnostics import DiagnosticSink
from ..models.schemas import (
    DiagnosticsResponse,
    FrameAnalysisResponse,
    HealthResponse,
    OverlayStateResponse,
    SettingsModel,
    SettingsUpdateRequest,
    SettingsUpdateResponse,
    SourceStateResponse,
)
from ..pipeline.monitor import FlashMonitor
from ..settings import Settings, SettingsStore
from ..suppression.coordinator import (
    SuppressionCoordinator,
    init_coordinator,
    shutdown_coordinator,
)
from ..suppression.overlay import OverlayStateView

router = APIRouter()
_RUNTIME: Optional["ServiceRuntime"] = None
_RUNTIME_LOCK = threading.Lock()
_LOGGER = logging.getLogger(__name__)


@dataclass
class ServiceRuntime:
    """Everything the routes share for one service session."""

    store: SettingsStore
    settings: Settings
    diagnostics: DiagnosticSink
    config_provider: ConfigProvider
    overlay: OverlayStateView
    coordinator: SuppressionCoordinator
    monitor: FlashMonitor
    settings_lock: threading.Lock = field(default_factory=threading.Lock)

    def apply_settings(self, settings: Settings) -> bool:
        """Persist *settings* and push them to the pipeline and overlay."""
        with self.settings_lock:
            self.settings = settings
            self.store.save(settings)
        accepted = self.config_provider.update(settings.to_detection_config())
        self.coordinator.update_appearance(settings.appearance())
        return accepted


def build_runtime(
    settings_path: str | None = None, timers_enabled: bool = True
) -> ServiceRuntime:
    store = SettingsStore(settings_path)
    settings = store.load()
    diagnostics = DiagnosticSink()
    provider = ConfigProvider(on_warning=diagnostics.warn)
    provider.update(settings.to_detection_config())

    overlay = OverlayStateView()
    coordinator = init_coordinator(overlay, settings.appearance())
    if coordinator.overlay is not overlay:
        raise RuntimeError("Suppression coordinator is already bound to another overlay")
    monitor = FlashMonitor(
        coordinator,
        provider,
        diagnostics=diagnostics,
        timers_enabled=timers_enabled,
    )
    return ServiceRuntime(
        store=store,
        settings=settings,
        diagnostics=diagnostics,
        config_provider=provider,
        overlay=overlay,
        coordinator=coordinator,
        monitor=monitor,
    )


def _get_runtime() -> ServiceRuntime:
    global _RUNTIME

    with _RUNTIME_LOCK:
        if _RUNTIME is None:
            _RUNTIME = build_runtime()
        return _RUNTIME


def _shutdown_runtime() -> None:
    global _RUNTIME

    with _RUNTIME_LOCK:
        runtime, _RUNTIME = _RUNTIME, None
    if runtime is not None:
        runtime.monitor.close()
    shutdown_coordinator()


def _settings_model(settings: Settings) -> SettingsModel:
    return SettingsModel(**settings.to_dict())


def _source_state(runtime: ServiceRuntime, source_id: str) -> SourceStateResponse:
    pipeline = runtime.monitor.get(source_id)
    return SourceStateResponse(
        source_id=source_id,
        tracked=pipeline is not None,
        playing=pipeline.playing if pipeline is not None else False,
        active=pipeline.active if pipeline is not None else False,
        overlay_visible=runtime.coordinator.visible,
    )


def _require_source(runtime: ServiceRuntime, source_id: str) -> None:
    if source_id not in runtime.monitor:
        raise HTTPException(status_code=404, detail=f"Source '{source_id}' is not tracked")


def decode_frame(contents: bytes) -> np.ndarray | None:
    """Decode an uploaded image into a BGR array, or None if unreadable."""
    if not contents:
        return None
    nparr = np.frombuffer(contents, np.uint8)
    return cv2.imdecode(nparr, cv2.IMREAD_COLOR)


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    runtime = _get_runtime()

    return HealthResponse(
        status="healthy",
        overlay_visible=runtime.coordinator.visible,
        tracked_sources=len(runtime.monitor),
    )


@router.get("/api/v1/settings", response_model=SettingsModel, tags=["Settings"])
async def get_settings():
    return _settings_model(_get_runtime().settings)


@router.put("/api/v1/settings", response_model=SettingsUpdateResponse, tags=["Settings"])
async def update_settings(request: SettingsUpdateRequest):
    """
    Merge a partial settings update, persist it and apply it immediately.

    Detection values that cannot be used are still stored, but the pipeline
    keeps running on its last valid configuration.
    """
    runtime = _get_runtime()
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    settings = runtime.settings.merged(changes)
    accepted = runtime.apply_settings(settings)

    return SettingsUpdateResponse(
        settings=_settings_model(settings),
        detection_config_applied=accepted,
        message=(
            "Settings updated"
            if accepted
            else "Settings stored; detection kept its last valid configuration"
        ),
    )


@router.post(
    "/api/v1/settings:reset", response_model=SettingsUpdateResponse, tags=["Settings"]
)
async def reset_settings():
    runtime = _get_runtime()
    settings = runtime.store.reset()
    accepted = runtime.apply_settings(settings)
    return SettingsUpdateResponse(
        settings=_settings_model(settings),
        detection_config_applied=accepted,
        message="Settings reset to defaults",
    )


@router.get("/api/v1/sources", response_model=list[SourceStateResponse], tags=["Sources"])
async def list_sources():
    runtime = _get_runtime()
    return [_source_state(runtime, str(source_id)) for source_id in runtime.monitor.sources()]


@router.post(
    "/api/v1/sources/{source_id}:track",
    response_model=SourceStateResponse,
    tags=["Sources"],
)
async def track_source(source_id: str, playing: bool = True):
    """Start tracking a source. Tracking an already tracked source is a no-op."""
    runtime = _get_runtime()
    runtime.monitor.track(source_id, playing=playing)
    return _source_state(runtime, source_id)


@router.post(
    "/api/v1/sources/{source_id}:analyzeFrame",
    response_model=FrameAnalysisResponse,
    tags=["Sources"],
)
async def analyze_frame(
    source_id: str,
    image: UploadFile = File(...),
    timestamp_ms: int | None = Form(default=None),
):
    """
    Run one uploaded frame through the detection pipeline.

    Unknown sources are tracked on their first frame. ``timestamp_ms`` must
    use the service clock (monotonic milliseconds); it defaults to now.
    """
    runtime = _get_runtime()
    try:
        frame = decode_frame(await image.read())
        if frame is None:
            raise HTTPException(status_code=400, detail="Failed to decode image")

        runtime.monitor.track(source_id)
        sample = FrameSample(
            source_id=source_id,
            pixels=frame,
            width=int(frame.shape[1]),
            height=int(frame.shape[0]),
            timestamp_ms=runtime.monitor.clock() if timestamp_ms is None else timestamp_ms,
            channel_order="bgr",
        )
        result = runtime.monitor.submit_frame(sample)
    except HTTPException:
        raise
    except Exception as e:
        _LOGGER.exception("frame analysis failed for source %s", source_id)
        raise HTTPException(status_code=500, detail=str(e))

    visible = runtime.coordinator.visible
    if result is None:
        return FrameAnalysisResponse(
            source_id=source_id,
            accepted=False,
            timestamp_ms=sample.timestamp_ms,
            skipped_reason="source is paused, ended, or the frame is out of order",
            overlay_visible=visible,
        )

    return FrameAnalysisResponse(
        source_id=source_id,
        accepted=result.skipped_reason is None,
        timestamp_ms=result.timestamp_ms,
        brightness=result.brightness,
        delta=result.delta,
        frequency_hz=result.frequency_hz,
        hazard=result.hazard,
        active=result.active,
        transition=result.transition.event.value if result.transition else None,
        skipped_reason=result.skipped_reason,
        overlay_visible=visible,
    )


@router.post(
    "/api/v1/sources/{source_id}:pause",
    response_model=SourceStateResponse,
    tags=["Sources"],
)
async def pause_source(source_id: str):
    runtime = _get_runtime()
    _require_source(runtime, source_id)
    runtime.monitor.pause(source_id)
    return _source_state(runtime, source_id)


@router.post(
    "/api/v1/sources/{source_id}:resume",
    response_model=SourceStateResponse,
    tags=["Sources"],
)
async def resume_source(source_id: str):
    runtime = _get_runtime()
    _require_source(runtime, source_id)
    runtime.monitor.resume(source_id)
    return _source_state(runtime, source_id)


@router.post(
    "/api/v1/sources/{source_id}:end",
    response_model=SourceStateResponse,
    tags=["Sources"],
)
async def end_source(source_id: str):
    runtime = _get_runtime()
    _require_source(runtime, source_id)
    runtime.monitor.end(source_id)
    return _source_state(runtime, source_id)


@router.delete(
    "/api/v1/sources/{source_id}",
    response_model=SourceStateResponse,
    tags=["Sources"],
)
async def remove_source(source_id: str):
    """Stop tracking a source. Removing an unknown source is a no-op."""
    runtime = _get_runtime()
    runtime.monitor.remove(source_id)
    return _source_state(runtime, source_id)


@router.get("/api/v1/overlay", response_model=OverlayStateResponse, tags=["Overlay"])
async def overlay_state():
    runtime = _get_runtime()
    visible, active_sources = runtime.coordinator.snapshot()
    view = runtime.overlay.state()
    return OverlayStateResponse(
        visible=visible,
        active_sources=sorted(str(source_id) for source_id in active_sources),
        background=view["background"],
        opacity=view["opacity"],
        label_text=view["label_text"],
    )


@router.get("/api/v1/diagnostics", response_model=DiagnosticsResponse, tags=["Overlay"])
async def diagnostics(limit: int = 100):
    return DiagnosticsResponse(records=_get_runtime().diagnostics.recent(limit))
