"""Rate and distance gate for outgoing target commands."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import ThrottleSettings
from .events import Events
from .geometry import MatPoint

logger = logging.getLogger(__name__)


@dataclass
class ThrottleState:
    last_target: Optional[MatPoint] = None
    last_sent_at: Optional[float] = None


def should_send(
    candidate: MatPoint,
    now: float,
    state: ThrottleState,
    min_interval: float,
    min_distance: float,
) -> bool:
    """Return True when ``candidate`` may be sent, recording it in ``state``.

    Both gates must pass: at least ``min_interval`` seconds since the last
    accepted command and at least ``min_distance`` mat units away from it.
    The very first candidate is always accepted.
    """
    if state.last_target is None or state.last_sent_at is None:
        accepted = True
    else:
        accepted = (
            now - state.last_sent_at >= min_interval
            and candidate.distance_to(state.last_target) >= min_distance
        )
    if accepted:
        state.last_target = candidate
        state.last_sent_at = now
    return accepted


class CommandThrottle:
    """Holds the throttle state for one controller."""

    def __init__(self, settings: Optional[ThrottleSettings] = None, *, events: Optional[Events] = None) -> None:
        self.settings = settings or ThrottleSettings()
        self.events = events or Events()
        self.state = ThrottleState()

    def should_send(self, candidate: MatPoint, now: float) -> bool:
        accepted = should_send(
            candidate,
            now,
            self.state,
            self.settings.min_interval_s,
            self.settings.min_distance,
        )
        if not accepted:
            logger.debug("Throttled target (%d, %d)", candidate.x, candidate.y)
        self.events.throttle_decision.emit(accepted, candidate)
        return accepted

    def reset(self) -> None:
        self.state = ThrottleState()


__all__ = ["ThrottleState", "should_send", "CommandThrottle"]
