"""Structured diagnostic records for detection and suppression."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any, Hashable

_LOGGER = logging.getLogger("flashguard.diagnostics")


class DiagnosticSink:
    """Observer for per-frame and per-transition records.

    Pipelines record frames and transitions only while the active config has
    diagnostics enabled; warnings are always recorded. Nothing here feeds back
    into detection.
    """

    def __init__(self, max_records: int = 500):
        self._lock = threading.Lock()
        self._records: deque[dict[str, Any]] = deque(maxlen=max(1, int(max_records)))

    def record_frame(
        self,
        source_id: Hashable,
        brightness: float,
        delta: float,
        frequency_hz: int,
        hazard: bool,
    ) -> None:
        record = {
            "kind": "frame",
            "source_id": str(source_id),
            "brightness": round(float(brightness), 3),
            "delta": round(float(delta), 3),
            "frequency_hz": int(frequency_hz),
            "hazard": bool(hazard),
        }
        _LOGGER.debug(
            "[frame] %s B:%.1f D:%.1f Freq:%dHz Flashing:%s",
            source_id,
            brightness,
            delta,
            frequency_hz,
            "YES" if hazard else "NO",
            extra={"diagnostic": record},
        )
        self._append(record)

    def record_transition(self, source_id: Hashable, event: str, reason: str = "") -> None:
        record = {
            "kind": "transition",
            "source_id": str(source_id),
            "event": event,
            "reason": reason,
        }
        _LOGGER.info(
            "[transition] %s %s (%s)", source_id, event, reason,
            extra={"diagnostic": record},
        )
        self._append(record)

    def warn(self, message: str) -> None:
        record = {"kind": "warning", "message": message}
        _LOGGER.warning(message, extra={"diagnostic": record})
        self._append(record)

    def recent(self, limit: int | None = None) -> list[dict[str, Any]]:
        with self._lock:
            records = list(self._records)
        if limit is not None:
            records = records[-max(0, int(limit)):] if limit > 0 else []
        return records

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def _append(self, record: dict[str, Any]) -> None:
        record["logged_at"] = time.time()
        with self._lock:
            self._records.append(record)
