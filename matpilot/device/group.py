"""Fan-out of motion commands to every connected robot."""
from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Sequence

from .base import Connector, MoveCommand, RobotCommandSink

logger = logging.getLogger(__name__)


class SinkGroup:
    """The robots driven by one controller (e.g. a simulated and a real one).

    Each sink is checked with ``connector.is_controllable`` before a velocity
    command; sinks that are not controllable are skipped silently.  A failing
    send to one sink does not keep the others from receiving the command.
    """

    def __init__(self, connector: Connector, sinks: Optional[Sequence[RobotCommandSink]] = None) -> None:
        self.connector = connector
        self._sinks: List[RobotCommandSink] = list(sinks or [])

    def set(self, sinks: Sequence[RobotCommandSink]) -> None:
        self._sinks = list(sinks)

    @property
    def primary(self) -> Optional[RobotCommandSink]:
        return self._sinks[0] if self._sinks else None

    def __iter__(self) -> Iterator[RobotCommandSink]:
        return iter(list(self._sinks))

    def __len__(self) -> int:
        return len(self._sinks)

    def controllable(self) -> List[RobotCommandSink]:
        return [s for s in self._sinks if self.connector.is_controllable(s)]

    def move(self, command: MoveCommand) -> int:
        """Send ``command`` to every controllable sink; returns how many got it."""
        sent = 0
        for sink in self.controllable():
            try:
                sink.move(command.forward, command.rotate, command.duration_ms, command.border)
            except Exception as exc:
                logger.warning("Move to %s failed: %s", sink.name, exc)
                continue
            sent += 1
        return sent

    def stop(self) -> int:
        return self.move(MoveCommand(0, 0, 0))

    def flash(self, r: int, g: int, b: int, duration_ms: int) -> None:
        for sink in self.controllable():
            sink.turn_led_on(r, g, b, duration_ms)


__all__ = ["SinkGroup"]
