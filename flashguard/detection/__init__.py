"""Flash detection exports."""

from .cooldown import CooldownState, SourceCooldownController, Transition, TransitionEvent
from .flash_window import FlashReading, FlashWindowDetector
from .state import DetectionState

__all__ = [
    "CooldownState",
    "DetectionState",
    "FlashReading",
    "FlashWindowDetector",
    "SourceCooldownController",
    "Transition",
    "TransitionEvent",
]
