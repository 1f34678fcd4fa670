"""Pydantic models for API requests and responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SettingsModel(BaseModel):
    """Persisted user preferences."""

    overlay_color: str = Field(description="Overlay color as #rrggbb")
    overlay_opacity: float = Field(description="Overlay opacity (clamped to 0..1)")
    cooldown_time: int = Field(description="Cooldown before suppression is lifted (ms)")
    flash_threshold: float = Field(description="Brightness delta that counts as a flash")
    flash_hz_threshold: int = Field(description="Flashes per window that count as hazardous")
    window_ms: int = Field(description="Length of the trailing flash window (ms)")
    show_warning_text: bool = Field(description="Whether the overlay shows a label")
    warning_text: str = Field(description="Overlay label text")
    enable_debug_logging: bool = Field(description="Record per-frame diagnostics")

    class Config:
        json_schema_extra = {
            "example": {
                "overlay_color": "#003264",
                "overlay_opacity": 0.95,
                "cooldown_time": 500,
                "flash_threshold": 90,
                "flash_hz_threshold": 3,
                "window_ms": 1000,
                "show_warning_text": True,
                "warning_text": "Flashing Blocked",
                "enable_debug_logging": False,
            }
        }


class SettingsUpdateRequest(BaseModel):
    """Partial settings update; omitted or null fields keep their current value.

    Values are not range-checked here: an unusable detection config is
    rejected by the pipeline, which keeps its last valid config.
    """

    overlay_color: str | None = None
    overlay_opacity: float | None = None
    cooldown_time: int | None = None
    flash_threshold: float | None = None
    flash_hz_threshold: int | None = None
    window_ms: int | None = None
    show_warning_text: bool | None = None
    warning_text: str | None = None
    enable_debug_logging: bool | None = None


class SettingsUpdateResponse(BaseModel):
    """Response from a settings update."""

    settings: SettingsModel = Field(description="Stored settings")
    detection_config_applied: bool = Field(
        description="Whether the detection pipeline accepted the new values"
    )
    message: str = Field(description="Status message")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status")
    overlay_visible: bool = Field(description="Whether suppression is engaged")
    tracked_sources: int = Field(description="Number of tracked sources")


class SourceStateResponse(BaseModel):
    """State of one tracked source."""

    source_id: str = Field(description="Source identifier")
    tracked: bool = Field(description="Whether the source is tracked")
    playing: bool = Field(description="Whether frames are being analyzed")
    active: bool = Field(description="Whether the source holds suppression")
    overlay_visible: bool = Field(description="Whether suppression is engaged")


class FrameAnalysisResponse(BaseModel):
    """Per-frame classification."""

    source_id: str = Field(description="Source identifier")
    accepted: bool = Field(description="Whether the frame was processed")
    timestamp_ms: int | None = Field(default=None, description="Frame timestamp (ms)")
    brightness: float | None = Field(default=None, description="Average luma (0-255)")
    delta: float | None = Field(
        default=None, description="Brightness change from the previous frame"
    )
    frequency_hz: int = Field(default=0, description="Flashes inside the trailing window")
    hazard: bool = Field(default=False, description="Whether the frame is hazardous")
    active: bool = Field(default=False, description="Whether the source holds suppression")
    transition: str | None = Field(
        default=None, description="trigger/release emitted by this frame"
    )
    skipped_reason: str | None = Field(
        default=None, description="Why the frame produced no reading"
    )
    overlay_visible: bool = Field(description="Whether suppression is engaged")


class OverlayStateResponse(BaseModel):
    """Current overlay state."""

    visible: bool = Field(description="Whether the overlay is shown")
    active_sources: list[str] = Field(description="Sources holding suppression")
    background: str = Field(description="CSS background color")
    opacity: float = Field(description="Overlay opacity")
    label_text: str = Field(description="Overlay label")


class DiagnosticsResponse(BaseModel):
    """Recent diagnostic records."""

    records: list[dict[str, Any]] = Field(description="Most recent records, oldest first")
