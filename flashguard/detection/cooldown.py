"""Debounced per-source suppression requests."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Callable, Hashable, NamedTuple, Optional

from ..config import DetectionConfig
from .state import DetectionState

if TYPE_CHECKING:
    from ..suppression.coordinator import SuppressionCoordinator

_LOGGER = logging.getLogger(__name__)


class CooldownState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"


class TransitionEvent(str, enum.Enum):
    TRIGGER = "trigger"
    RELEASE = "release"


class Transition(NamedTuple):
    source_id: Hashable
    event: TransitionEvent
    at_ms: Optional[int]
    reason: str


class SourceCooldownController:
    """Two-state machine turning hazard readings into trigger/release calls.

    ``IDLE -> ACTIVE`` on the first hazardous reading, ``ACTIVE -> IDLE`` once
    ``cooldown_ms`` has passed since the last hazardous reading, or at once on
    pause, end of stream or removal. Each transition reaches the coordinator
    exactly once.
    """

    def __init__(
        self,
        source_id: Hashable,
        state: DetectionState,
        coordinator: "SuppressionCoordinator",
        on_transition: Optional[Callable[[Transition], None]] = None,
    ):
        self.source_id = source_id
        self.state = state
        self.coordinator = coordinator
        self.on_transition = on_transition

    @property
    def current(self) -> CooldownState:
        return CooldownState.ACTIVE if self.state.hazard_active else CooldownState.IDLE

    def on_reading(self, hazard: bool, now_ms: int) -> Optional[Transition]:
        """Apply one classification. Returns the trigger transition, if any."""
        if not hazard:
            return None

        self.state.last_flash_at_ms = now_ms
        if self.state.hazard_active:
            return None

        self.state.hazard_active = True
        return self._emit(TransitionEvent.TRIGGER, now_ms, "hazard")

    def check_cooldown(self, now_ms: int, config: DetectionConfig) -> Optional[Transition]:
        """Release the source once the cooldown has elapsed without new hazards."""
        if not self.state.hazard_active:
            return None

        last = self.state.last_flash_at_ms
        if last is not None and now_ms - last <= config.cooldown_ms:
            return None

        self.state.hazard_active = False
        return self._emit(TransitionEvent.RELEASE, now_ms, "cooldown")

    def force_idle(self, reason: str, now_ms: Optional[int] = None) -> Optional[Transition]:
        """Release immediately, bypassing the cooldown. No-op when idle."""
        if not self.state.hazard_active:
            return None

        self.state.hazard_active = False
        return self._emit(TransitionEvent.RELEASE, now_ms, reason)

    def _emit(
        self, event: TransitionEvent, at_ms: Optional[int], reason: str
    ) -> Transition:
        transition = Transition(self.source_id, event, at_ms, reason)
        if event is TransitionEvent.TRIGGER:
            self.coordinator.trigger(self.source_id)
        else:
            self.coordinator.release(self.source_id)

        _LOGGER.debug(
            "source %s %s at %s (%s)", self.source_id, event.value, at_ms, reason
        )
        if self.on_transition is not None:
            self.on_transition(transition)
        return transition
