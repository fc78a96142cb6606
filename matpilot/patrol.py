"""Waypoint patrol program."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from .cancel import Cancelled, CancelScope
from .config import PatrolSettings
from .device import MoveCommand, MoveType, RobotCommandSink, SinkGroup, TargetMoveResult
from .events import Events
from .geometry import MatPoint

logger = logging.getLogger(__name__)


class PatrolController:
    """Cycles the robot through a list of waypoints with a dwell at each.

    The program targets the primary sink.  A lost position stops the patrol
    until it is toggled on again; toggling off cancels any pending arrival or
    dwell and stops the robot on every sink.
    """

    def __init__(
        self,
        sinks: SinkGroup,
        settings: Optional[PatrolSettings] = None,
        events: Optional[Events] = None,
    ) -> None:
        self.sinks = sinks
        self.settings = settings or PatrolSettings()
        self.events = events or Events()
        self.waypoints: List[MatPoint] = [MatPoint(int(x), int(y)) for x, y in self.settings.waypoints]
        if not self.waypoints:
            raise ValueError("Patrol needs at least one waypoint")
        self.current_index = 0
        self.is_patrolling = False
        self.is_waiting = False
        self.status = "Ready (Press P to Start)"
        self._run_id = 0
        self._scope: Optional[CancelScope] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def toggle(self) -> bool:
        """Start or pause the patrol; returns the new ``is_patrolling``."""
        if self.is_patrolling:
            self.stop()
        else:
            self.start()
        return self.is_patrolling

    def start(self) -> Optional[asyncio.Task]:
        if self.is_patrolling:
            return self._task
        sink = self._target_sink()
        if sink is None:
            self._set_status("Error: No robot connected")
            return None
        self.is_patrolling = True
        self._run_id += 1
        self._scope = CancelScope()
        logger.info("Patrol started")
        self._set_status(f"Patrolling: Moving to WP {self.current_index}")
        self._task = asyncio.get_running_loop().create_task(self._run(self._run_id, self._scope, sink))
        return self._task

    def stop(self, status: str = "Paused") -> None:
        if not self.is_patrolling:
            return
        self.is_patrolling = False
        self.is_waiting = False
        if self._scope is not None:
            self._scope.cancel()
        logger.info("Patrol paused")
        self._set_status(status)
        self.sinks.move(MoveCommand(0, 0, 0))

    # ------------------------------------------------------------------
    def _target_sink(self) -> Optional[RobotCommandSink]:
        sinks = self.sinks.controllable()
        return sinks[0] if sinks else None

    def _is_current(self, run_id: int) -> bool:
        return self.is_patrolling and run_id == self._run_id

    async def _run(self, run_id: int, scope: CancelScope, sink: RobotCommandSink) -> None:
        s = self.settings
        try:
            while self._is_current(run_id):
                index = self.current_index
                target = self.waypoints[index]
                logger.info("[Patrol] Moving to WP[%d]: (%d, %d)", index, target.x, target.y)
                result = await scope.wait(
                    sink.target_move(
                        target.x,
                        target.y,
                        angle=0,
                        max_speed=s.max_speed,
                        move_type=MoveType.ROTATING_MOVE,
                    )
                )
                if not self._is_current(run_id):
                    return

                if result is TargetMoveResult.POSITION_LOST:
                    logger.warning("[Patrol] Position Lost! Stopping Patrol.")
                    self._halt("Error: Position Lost")
                    sink.play_preset_sound(s.error_sound_id)
                    return
                if result is not TargetMoveResult.NORMAL:
                    logger.warning("[Patrol] Move ended with response: %s", result.value)
                    self._halt(f"Halted: move ended ({result.value})")
                    return

                logger.info("[Patrol] Arrived at WP[%d]", index)
                self.current_index = (index + 1) % len(self.waypoints)
                self.is_waiting = True
                self._set_status(f"Waiting at WP {index}...")
                try:
                    await scope.sleep(s.dwell_s)
                finally:
                    self.is_waiting = False

                if self._is_current(run_id):
                    self._set_status(f"Patrolling: Moving to WP {self.current_index}")
        except Cancelled:
            logger.info("[Patrol] Run %d cancelled", run_id)
        except Exception as exc:
            logger.exception("[Patrol] Run %d failed", run_id)
            if self._is_current(run_id):
                self._halt(f"Error: {exc}")

    def _halt(self, status: str) -> None:
        """End the current run from inside the program and stop the robot."""
        self.is_patrolling = False
        self.is_waiting = False
        self._set_status(status)
        self.sinks.move(MoveCommand(0, 0, 0))

    def _set_status(self, message: str) -> None:
        self.status = message
        self.events.patrol_status.emit(message)


__all__ = ["PatrolController"]
