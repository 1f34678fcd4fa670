"""Shared suppression overlay coordination across sources."""

from __future__ import annotations

import logging
import threading
from typing import Hashable, Optional, Protocol

from .overlay import OverlayAppearance, clamp_opacity

_LOGGER = logging.getLogger(__name__)


class Overlay(Protocol):
    """Rendering collaborator driven only by the coordinator."""

    def show(self) -> None: ...

    def hide(self) -> None: ...

    def set_appearance(self, color: str, opacity: float, label_text: str) -> None: ...


class SuppressionCoordinator:
    """
    Reference-counted visibility for one shared overlay.

    The overlay is visible while at least one source holds an active request.
    ``show``/``hide`` reach the overlay only when the set changes between empty
    and non-empty, so repeated trigger/release calls never duplicate effects.
    """

    def __init__(self, overlay: Overlay):
        self._overlay = overlay
        self._lock = threading.Lock()
        self._active_sources: set[Hashable] = set()

    @property
    def overlay(self) -> Overlay:
        return self._overlay

    @property
    def visible(self) -> bool:
        with self._lock:
            return bool(self._active_sources)

    @property
    def active_sources(self) -> frozenset:
        with self._lock:
            return frozenset(self._active_sources)

    def snapshot(self) -> tuple[bool, frozenset]:
        """Visibility and active sources read under one lock."""
        with self._lock:
            return bool(self._active_sources), frozenset(self._active_sources)

    def trigger(self, source_id: Hashable) -> None:
        with self._lock:
            if source_id in self._active_sources:
                return
            was_empty = not self._active_sources
            self._active_sources.add(source_id)
            if was_empty:
                _LOGGER.info("suppression engaged by %s", source_id)
                self._overlay.show()

    def release(self, source_id: Hashable) -> None:
        with self._lock:
            if source_id not in self._active_sources:
                return
            self._active_sources.discard(source_id)
            if not self._active_sources:
                _LOGGER.info("suppression lifted by %s", source_id)
                self._overlay.hide()

    def update_appearance(self, appearance: OverlayAppearance) -> None:
        """Forward a cosmetic change; active sources are untouched."""
        with self._lock:
            self._overlay.set_appearance(
                appearance.background,
                clamp_opacity(appearance.opacity),
                appearance.label_text,
            )

    def release_all(self) -> None:
        with self._lock:
            if not self._active_sources:
                return
            self._active_sources.clear()
            self._overlay.hide()


_COORDINATOR: Optional[SuppressionCoordinator] = None
_COORDINATOR_LOCK = threading.Lock()


def init_coordinator(
    overlay: Overlay, appearance: Optional[OverlayAppearance] = None
) -> SuppressionCoordinator:
    """Create the process-wide coordinator; later calls return the existing one."""
    global _COORDINATOR

    with _COORDINATOR_LOCK:
        if _COORDINATOR is not None:
            return _COORDINATOR
        coordinator = SuppressionCoordinator(overlay)
        if appearance is not None:
            coordinator.update_appearance(appearance)
        _COORDINATOR = coordinator
        return coordinator


def get_coordinator() -> SuppressionCoordinator:
    if _COORDINATOR is None:
        raise RuntimeError("Suppression coordinator is not initialized")
    return _COORDINATOR


def shutdown_coordinator() -> None:
    """Hide the overlay and drop the process-wide coordinator."""
    global _COORDINATOR

    with _COORDINATOR_LOCK:
        if _COORDINATOR is None:
            return
        _COORDINATOR.release_all()
        _COORDINATOR = None
