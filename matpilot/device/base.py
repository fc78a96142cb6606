"""Robot command sink interface and connection helpers.

The radio layer itself lives outside this package; anything that implements
:class:`RobotCommandSink` and :class:`Connector` can be driven by the
controller.  :mod:`matpilot.device.mock` provides the simulated robot used
for development and tests.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from ..geometry import MatPoint

logger = logging.getLogger(__name__)

SPEED_LIMIT = 100


class ConnectMode(enum.Enum):
    REAL = "real"
    SIMULATOR = "simulator"


class TargetMoveResult(enum.Enum):
    NORMAL = "normal"
    POSITION_LOST = "position_lost"
    OTHER = "other"


class MoveType(enum.IntEnum):
    ROTATING_MOVE = 0
    ROUND_FORWARD_MOVE = 1
    ROUND_BEFORE_MOVE = 2


class ConnectionFailure(RuntimeError):
    """Raised when no robot could be found for a connection mode."""


def clamp_speed(value: int) -> int:
    return max(-SPEED_LIMIT, min(SPEED_LIMIT, int(value)))


@dataclass(frozen=True)
class MoveCommand:
    """Velocity command: forward and rotate in [-100, 100] for ``duration_ms``."""

    forward: int
    rotate: int
    duration_ms: int
    border: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "forward", clamp_speed(self.forward))
        object.__setattr__(self, "rotate", clamp_speed(self.rotate))

    @property
    def is_stop(self) -> bool:
        return self.forward == 0 and self.rotate == 0


STOP = MoveCommand(0, 0, 100)


class RobotCommandSink(Protocol):
    """One physical or simulated robot accepting motion commands."""

    name: str

    @property
    def position(self) -> MatPoint: ...

    @property
    def angle(self) -> int: ...

    @property
    def is_connected(self) -> bool: ...

    @property
    def battery(self) -> int: ...

    def move(self, forward: int, rotate: int, duration_ms: int, border: bool = False) -> None: ...

    async def target_move(
        self,
        x: int,
        y: int,
        angle: int = 0,
        max_speed: int = 80,
        move_type: MoveType = MoveType.ROTATING_MOVE,
    ) -> TargetMoveResult: ...

    def turn_led_on(self, r: int, g: int, b: int, duration_ms: int) -> None: ...

    def play_preset_sound(self, sound_id: int) -> None: ...


class Connector(Protocol):
    """Discovery and pairing of robots for one radio stack."""

    async def connect(self, mode: ConnectMode, count: int = 1) -> List[RobotCommandSink]: ...

    def is_controllable(self, sink: RobotCommandSink) -> bool: ...

    def disconnect(self, sink: RobotCommandSink) -> None: ...


def select_on_mat(sinks: Sequence[RobotCommandSink]) -> Optional[RobotCommandSink]:
    """Pick the first robot that currently reads a mat position.

    Falls back to the first robot when none has a fix.
    """
    if not sinks:
        return None
    for sink in sinks:
        if sink.position.is_fix:
            return sink
    logger.warning("No robot detected on the mat; picking %s anyway", sinks[0].name)
    return sinks[0]


async def connect_robot(
    connector: Connector,
    mode: ConnectMode,
    *,
    count: int = 4,
    settle_s: float = 1.0,
) -> RobotCommandSink:
    """Connect up to ``count`` robots and keep the one sitting on the mat.

    The remaining robots are disconnected.  Raises :class:`ConnectionFailure`
    when nothing answers.
    """
    logger.info("Scanning for robots (%s, up to %d)...", mode.value, count)
    sinks = await connector.connect(mode, count)
    for sink in sinks:
        configure = getattr(sink, "configure_sensors", None)
        if configure is not None:
            await configure()
    if sinks and settle_s > 0:
        # give the position notifications time to arrive
        await asyncio.sleep(settle_s)

    chosen = select_on_mat(sinks)
    if chosen is None:
        raise ConnectionFailure(f"No robots found ({mode.value})")
    for sink in sinks:
        if sink is not chosen:
            connector.disconnect(sink)
    logger.info("Connected to %s at (%d, %d)", chosen.name, chosen.position.x, chosen.position.y)
    chosen.turn_led_on(0, 255, 0, 500)
    return chosen


__all__ = [
    "SPEED_LIMIT",
    "ConnectMode",
    "TargetMoveResult",
    "MoveType",
    "ConnectionFailure",
    "MoveCommand",
    "STOP",
    "RobotCommandSink",
    "Connector",
    "clamp_speed",
    "select_on_mat",
    "connect_robot",
]
