"""Per-tick remote driving: held patterns, directional input and spin mode."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import DriveSettings
from .device import SPEED_LIMIT, STOP, MoveCommand, SinkGroup
from .patterns import HELD_PATTERNS, MotionPatternEngine, PatternKind

logger = logging.getLogger(__name__)


@dataclass
class DriveInput:
    """Latest input state, read once per tick."""

    held: Optional[PatternKind] = None
    forward: float = 0.0
    rotate: float = 0.0


class RemoteDriver:
    """Turns the current input state into at most one command per tick.

    Precedence: a busy engine suppresses everything, then a held pattern,
    then directional input.  When all input is released a single stop is
    sent and the driver stays silent until the next input.
    """

    def __init__(
        self,
        sinks: SinkGroup,
        engine: MotionPatternEngine,
        settings: Optional[DriveSettings] = None,
    ) -> None:
        self.sinks = sinks
        self.engine = engine
        self.settings = settings or DriveSettings()
        self._stopped = True

    def tick(
        self,
        dt: float,
        *,
        held: Optional[PatternKind] = None,
        forward: float = 0.0,
        rotate: float = 0.0,
    ) -> Optional[MoveCommand]:
        """Run one frame; returns the command sent, if any.

        ``forward`` and ``rotate`` are axis values in [-1, 1]; positive
        ``rotate`` turns right.
        """
        if self.engine.busy:
            return None

        self.engine.advance(dt)
        if held is not None:
            if held not in HELD_PATTERNS:
                raise ValueError(f"{held.value} is not a held pattern")
            return self._send(self.engine.held_command(held))

        s = self.settings
        move = int(forward * s.move_speed)
        turn = int(-rotate * s.rotate_speed)
        if move != 0 or turn != 0:
            return self._send(MoveCommand(move, turn, s.duration_ms))

        if not self._stopped:
            self.sinks.move(STOP)
            self._stopped = True
            return STOP
        return None

    def _send(self, command: MoveCommand) -> MoveCommand:
        self.sinks.move(command)
        self._stopped = False
        return command


class Turntable:
    """Spin the robot in place, e.g. under a zoetrope disc."""

    def __init__(self, sinks: SinkGroup, speed: int = 0, duration_ms: int = 200) -> None:
        self.sinks = sinks
        self.duration_ms = duration_ms
        self.spinning = False
        self.speed = 0
        self.set_speed(speed)

    def toggle(self) -> bool:
        self.spinning = not self.spinning
        logger.info("Spin %s at speed %d", "on" if self.spinning else "off", self.speed)
        return self.spinning

    def set_speed(self, speed: int) -> int:
        self.speed = max(-SPEED_LIMIT, min(SPEED_LIMIT, int(speed)))
        return self.speed

    def change_speed(self, delta: int) -> int:
        return self.set_speed(self.speed + delta)

    def tick(self) -> MoveCommand:
        rotate = self.speed if self.spinning else 0
        command = MoveCommand(0, rotate, self.duration_ms)
        self.sinks.move(command)
        return command


__all__ = ["DriveInput", "RemoteDriver", "Turntable"]
