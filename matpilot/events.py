"""Notification channels consumed by rendering and UI layers.

Each notification kind gets its own :class:`Signal`.  Listeners are plain
callables; return values are ignored.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List

logger = logging.getLogger(__name__)

# Listener signatures per channel
CalibrationStateCallback = Callable[["CalibrationState"], None]  # noqa: F821
CornerRecordedCallback = Callable[[int, "MatPoint", "PanelPoint"], None]  # noqa: F821
MappingReadyCallback = Callable[["QuadMapping"], None]  # noqa: F821
InputReleasedCallback = Callable[[], None]
PatrolStatusCallback = Callable[[str], None]
ThrottleDecisionCallback = Callable[[bool, "MatPoint"], None]  # noqa: F821


class Signal:
    """A single notification channel."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: List[Callable[..., None]] = []

    def connect(self, listener: Callable[..., None]) -> Callable[[], None]:
        """Subscribe ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self.disconnect(listener)

    def disconnect(self, listener: Callable[..., None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, *args) -> None:
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener for %s failed", self.name)

    def __len__(self) -> int:
        return len(self._listeners)


@dataclass
class Events:
    calibration_state_changed: Signal = field(default_factory=lambda: Signal("calibration_state_changed"))
    corner_recorded: Signal = field(default_factory=lambda: Signal("corner_recorded"))
    mapping_ready: Signal = field(default_factory=lambda: Signal("mapping_ready"))
    input_released: Signal = field(default_factory=lambda: Signal("input_released"))
    patrol_status: Signal = field(default_factory=lambda: Signal("patrol_status"))
    throttle_decision: Signal = field(default_factory=lambda: Signal("throttle_decision"))


__all__ = [
    "Signal",
    "Events",
    "CalibrationStateCallback",
    "CornerRecordedCallback",
    "MappingReadyCallback",
    "InputReleasedCallback",
    "PatrolStatusCallback",
    "ThrottleDecisionCallback",
]
