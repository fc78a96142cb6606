"""In-memory simulated robot used for development and unit tests."""
from __future__ import annotations

import asyncio
import math
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from ..geometry import NO_FIX, MatPoint
from .base import ConnectMode, MoveCommand, MoveType, TargetMoveResult, clamp_speed


class SimulatedRobot:
    """Small simulation that mimics the robot command sink API.

    Every command is recorded in ``commands`` so tests can assert on the exact
    sequence a program produced.  ``results`` queues scripted outcomes for
    :meth:`target_move`; when it is empty, moves arrive normally.
    """

    def __init__(
        self,
        name: str = "sim-0",
        *,
        position: MatPoint = MatPoint(250, 250),
        on_mat: bool = True,
        battery: int = 100,
        dots_per_s: float = 250.0,
        arrival_delay_s: Optional[float] = None,
    ) -> None:
        self.name = name
        self._position = position
        self.on_mat = on_mat
        self._angle = 0
        self._battery = battery
        self._connected = True
        self.dots_per_s = dots_per_s
        self.arrival_delay_s = arrival_delay_s

        self.commands: List[Tuple] = []
        self.moves: List[MoveCommand] = []
        self.targets: List[MatPoint] = []
        self.leds: List[Tuple[int, int, int, int]] = []
        self.sounds: List[int] = []
        self.results: Deque[TargetMoveResult] = deque()

    # Telemetry ---------------------------------------------------------
    @property
    def position(self) -> MatPoint:
        return self._position if self.on_mat else NO_FIX

    @property
    def angle(self) -> int:
        return self._angle

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def battery(self) -> int:
        return self._battery

    def place(self, x: int, y: int, *, angle: Optional[int] = None) -> None:
        self._position = MatPoint(int(x), int(y))
        self.on_mat = True
        if angle is not None:
            self._angle = int(angle)

    # Connection --------------------------------------------------------
    def connect(self) -> "SimulatedRobot":
        self._connected = True
        return self

    def close(self) -> None:
        self._connected = False

    # Motion ------------------------------------------------------------
    def move(self, forward: int, rotate: int, duration_ms: int, border: bool = False) -> None:
        cmd = MoveCommand(clamp_speed(forward), clamp_speed(rotate), int(duration_ms), border)
        self.moves.append(cmd)
        self.commands.append(("move", cmd.forward, cmd.rotate, cmd.duration_ms, cmd.border))

    async def target_move(
        self,
        x: int,
        y: int,
        angle: int = 0,
        max_speed: int = 80,
        move_type: MoveType = MoveType.ROTATING_MOVE,
    ) -> TargetMoveResult:
        target = MatPoint(int(x), int(y))
        self.targets.append(target)
        self.commands.append(("target_move", target.x, target.y, angle, max_speed, int(move_type)))

        if not self.on_mat:
            await asyncio.sleep(0)
            return TargetMoveResult.POSITION_LOST

        if self.arrival_delay_s is not None:
            delay = self.arrival_delay_s
        else:
            speed = self.dots_per_s * max(1, max_speed) / 100.0
            delay = math.hypot(target.x - self._position.x, target.y - self._position.y) / speed
        await asyncio.sleep(delay)

        result = self.results.popleft() if self.results else TargetMoveResult.NORMAL
        if result is TargetMoveResult.NORMAL:
            self._position = target
            self._angle = int(angle)
        elif result is TargetMoveResult.POSITION_LOST:
            self.on_mat = False
        return result

    # Feedback ----------------------------------------------------------
    def turn_led_on(self, r: int, g: int, b: int, duration_ms: int) -> None:
        self.leds.append((r, g, b, duration_ms))

    def play_preset_sound(self, sound_id: int) -> None:
        self.sounds.append(sound_id)

    # Convenience -------------------------------------------------------
    @property
    def stop_count(self) -> int:
        return sum(1 for m in self.moves if m.is_stop)

    def clear(self) -> None:
        self.commands.clear()
        self.moves.clear()
        self.targets.clear()


class SimulatedConnector:
    """Connector handing out pre-built :class:`SimulatedRobot` instances.

    There is no radio stack here, so ``ConnectMode.REAL`` finds nothing unless
    robots are registered for it explicitly.
    """

    def __init__(self, robots: Optional[Dict[ConnectMode, Iterable[SimulatedRobot]]] = None) -> None:
        if robots is None:
            robots = {ConnectMode.SIMULATOR: [SimulatedRobot("sim-0")]}
        self.robots: Dict[ConnectMode, List[SimulatedRobot]] = {m: list(r) for m, r in robots.items()}
        self.disconnected: List[SimulatedRobot] = []

    async def connect(self, mode: ConnectMode, count: int = 1) -> List[SimulatedRobot]:
        await asyncio.sleep(0)
        found = self.robots.get(mode, [])[: max(0, count)]
        return [robot.connect() for robot in found]

    def is_controllable(self, sink) -> bool:
        return bool(sink.is_connected)

    def disconnect(self, sink) -> None:
        sink.close()
        self.disconnected.append(sink)


__all__ = ["SimulatedRobot", "SimulatedConnector"]
