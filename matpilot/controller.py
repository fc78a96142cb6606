"""High level orchestration for the matpilot server and touch panel."""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Set, Union

from .calibration import CalibrationSession, CalibrationState, RecordResult
from .config import AppSettings
from .device import (
    ConnectionFailure,
    ConnectMode,
    Connector,
    MoveType,
    RobotCommandSink,
    SimulatedConnector,
    SinkGroup,
    TargetMoveResult,
    connect_robot,
)
from .drive import DriveInput, RemoteDriver, Turntable
from .events import Events
from .geometry import NO_FIX, MatPoint, PanelPoint, QuadMapping, build_forward, panel_rect
from .patterns import ONE_SHOT_PATTERNS, MotionPatternEngine, PatternKind, parse_kind
from .patrol import PatrolController
from .throttle import CommandThrottle

logger = logging.getLogger(__name__)

STATUS_LOG_SIZE = 250


@dataclass
class ControllerState:
    connection: str = "disconnected"  # disconnected | connecting | connected | error
    last_error: Optional[str] = None
    last_status: Optional[str] = None
    last_target: Optional[MatPoint] = None


@dataclass
class LivePanel:
    """Live pointer binding to one mapping; dropped when calibration restarts."""

    mapping: QuadMapping
    released: bool = False


class MatController:
    """Coordinate calibration, pointer input, patterns and the robots."""

    def __init__(
        self,
        connector: Optional[Connector] = None,
        settings: Optional[AppSettings] = None,
        events: Optional[Events] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self.events = events or Events()
        self.connector: Connector = connector or SimulatedConnector()
        self.sinks = SinkGroup(self.connector)
        self.state = ControllerState()
        self.status_log: Deque[str] = deque(maxlen=STATUS_LOG_SIZE)

        s = self.settings
        self.target_quad = panel_rect(*s.panel.as_tuple())
        self.session = CalibrationSession(self.target_quad, settings=s.calibration, events=self.events)
        self.throttle = CommandThrottle(s.throttle, events=self.events)
        self.engine = MotionPatternEngine(self.sinks, s.patterns)
        self.driver = RemoteDriver(self.sinks, self.engine, s.drive)
        self.turntable = Turntable(self.sinks, duration_ms=s.drive.duration_ms)
        self.patrol = PatrolController(self.sinks, s.patrol, self.events)

        self.live: Optional[LivePanel] = None
        if s.calibration.use_default_mapping:
            self.live = LivePanel(build_forward(s.mat.corners(), self.target_quad, mode=s.calibration.mode))
        self._pending: Set[asyncio.Task] = set()

        self.events.mapping_ready.connect(self._on_mapping_ready)
        self.events.input_released.connect(self._on_input_released)
        self.events.patrol_status.connect(self._append_status)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------
    async def connect(self, modes: Optional[Sequence[Union[str, ConnectMode]]] = None) -> List[RobotCommandSink]:
        """Connect one robot per mode; failures are reported, not raised."""
        c = self.settings.connection
        requested = [
            m if isinstance(m, ConnectMode) else ConnectMode(str(m).lower())
            for m in (modes if modes is not None else c.modes)
        ]
        self.state.connection = "connecting"
        found: List[RobotCommandSink] = []
        for mode in requested:
            try:
                sink = await connect_robot(self.connector, mode, count=c.count, settle_s=c.settle_s)
            except ConnectionFailure as exc:
                logger.warning("Connection failed: %s", exc)
                self.state.last_error = str(exc)
                self._append_status(f"Connection Failed ({mode.value})")
                continue
            found.append(sink)
            self._append_status(f"Connected: {sink.name} ({mode.value})")

        for sink in list(self.sinks):
            if sink not in found:
                self.connector.disconnect(sink)
        self.sinks.set(found)
        self.state.connection = "connected" if found else "error"
        return found

    async def shutdown(self) -> None:
        self.engine.cancel()
        self.patrol.stop()
        tasks = [t for t in (self.engine.task, self.patrol.task) if t is not None and not t.done()]
        tasks.extend(t for t in self._pending if not t.done())
        for task in list(self._pending):
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for sink in list(self.sinks):
            self.connector.disconnect(sink)
        self.sinks.set([])
        self.state.connection = "disconnected"
        logger.info("Controller shut down")

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------
    def start_calibration(self) -> None:
        self.session.preview = self.live.mapping if self.live is not None else None
        self.session.restart()
        self._append_status(self.session.prompt)

    def record_calibration_point(self, now: Optional[float] = None) -> RecordResult:
        """Record the primary robot's current position as the next corner."""
        sink = self._primary()
        point = sink.position if sink is not None else NO_FIX
        result = self.session.record_point(point, now)
        if result.accepted:
            self.sinks.flash(255, 255, 0, 500)
            if result.state is CalibrationState.DONE:
                self.sinks.flash(0, 255, 0, 1000)
            self._append_status(f"Corner recorded ({point.x}, {point.y}). {self.session.prompt}")
        elif result.reason is not None:
            self._append_status(f"Calibration point rejected: {result.reason.value}")
        return result

    @property
    def mapping(self) -> Optional[QuadMapping]:
        return self.live.mapping if self.live is not None else None

    def _on_mapping_ready(self, mapping: QuadMapping) -> None:
        self.live = LivePanel(mapping)
        self.throttle.reset()
        bounds = mapping.mat_bounds()
        self._append_status(
            f"Calibration complete: X[{bounds.min_x}~{bounds.max_x}], Y[{bounds.min_y}~{bounds.max_y}]"
        )

    def _on_input_released(self) -> None:
        if self.live is not None:
            self.live.released = True
        self.live = None

    # ------------------------------------------------------------------
    # Pointer input
    # ------------------------------------------------------------------
    def handle_pointer(self, point: PanelPoint, now: Optional[float] = None) -> Optional[MatPoint]:
        """Turn a panel touch into a target move; returns the target sent.

        Must be called from the running event loop.  The target moves are
        scheduled as tasks, so they reach the robots on the next loop
        iteration, after any ``move`` issued later in the same step.
        """
        if self.session.is_calibrating or self.engine.busy or self.patrol.is_patrolling:
            return None
        live = self.live
        if live is None or live.released:
            return None
        if not live.mapping.contains(point):
            return None

        target = live.mapping.clamp(live.mapping.to_mat(point))
        now = time.monotonic() if now is None else now
        if not self.throttle.should_send(target, now):
            return None

        p = self.settings.pointer
        loop = asyncio.get_running_loop()
        for sink in self.sinks.controllable():
            task = loop.create_task(
                sink.target_move(
                    target.x,
                    target.y,
                    angle=p.target_angle,
                    max_speed=p.max_speed,
                    move_type=MoveType.ROTATING_MOVE,
                )
            )
            self._pending.add(task)
            task.add_done_callback(self._on_target_done)
        self.state.last_target = target
        logger.debug("Command sent: MoveTo(%d, %d)", target.x, target.y)
        return target

    def _on_target_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Target move failed: %s", exc)
            return
        result = task.result()
        if result is not TargetMoveResult.NORMAL:
            logger.info("Target move ended: %s", result.value)

    # ------------------------------------------------------------------
    # Driving and patterns
    # ------------------------------------------------------------------
    def tick(
        self,
        dt: float,
        *,
        held: Optional[PatternKind] = None,
        forward: float = 0.0,
        rotate: float = 0.0,
    ):
        if self.patrol.is_patrolling or self.engine.busy:
            return None
        if self.turntable.spinning:
            return self.turntable.tick()
        return self.driver.tick(dt, held=held, forward=forward, rotate=rotate)

    async def run_ticker(self, read_input: Callable[[], DriveInput]) -> None:
        """Tick every ``drive.tick_s`` seconds until cancelled.

        Exactly one ticker should run per controller; every front end reads
        its input through ``read_input``.
        """
        loop = asyncio.get_running_loop()
        last = loop.time()
        while True:
            await asyncio.sleep(self.settings.drive.tick_s)
            now = loop.time()
            try:
                drive = read_input()
                self.tick(now - last, held=drive.held, forward=drive.forward, rotate=drive.rotate)
            except Exception:
                logger.exception("Tick failed")
            last = now

    def start_pattern(self, kind: Union[str, PatternKind]) -> bool:
        """Start a one-shot pattern; returns False when another one is running.

        Raises ``ValueError`` for unknown or held pattern names.
        """
        kind = kind if isinstance(kind, PatternKind) else parse_kind(kind)
        if kind not in ONE_SHOT_PATTERNS:
            raise ValueError(f"{kind.value} is not a one-shot pattern")
        if self.patrol.is_patrolling:
            self._append_status(f"{kind.value} refused: patrol is running")
            return False
        task = self.engine.start(kind)
        if task is None:
            self._append_status(f"{kind.value} refused: {self.engine.active.value} is running")
            return False
        self._append_status(f"{kind.value} started")
        return True

    def cancel_patterns(self) -> bool:
        return self.engine.cancel()

    def toggle_patrol(self) -> bool:
        if not self.patrol.is_patrolling and self.engine.busy:
            self._append_status("Patrol refused: a pattern is running")
            return False
        return self.patrol.toggle()

    def toggle_spin(self) -> bool:
        """Start or stop spinning in place.

        Spinning cannot start while a pattern or the patrol owns the robot.
        Turning it off then only clears the flag; the stop is left to the
        running program.
        """
        busy = self.engine.busy or self.patrol.is_patrolling
        if busy and not self.turntable.spinning:
            self._append_status("Spin refused: robot is busy")
            return False
        spinning = self.turntable.toggle()
        if not spinning and not busy:
            self.turntable.tick()
        return spinning

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def _primary(self) -> Optional[RobotCommandSink]:
        sinks = self.sinks.controllable()
        return sinks[0] if sinks else None

    def _append_status(self, message: str) -> None:
        timestamp = time.strftime("%H:%M:%S")
        self.state.last_status = message
        self.status_log.append(f"[{timestamp}] {message}")

    def robots_status(self) -> List[Dict[str, Any]]:
        robots = []
        for sink in self.sinks:
            pos = sink.position
            robots.append(
                {
                    "name": sink.name,
                    "connected": sink.is_connected,
                    "position": [pos.x, pos.y] if pos.is_fix else None,
                    "angle": sink.angle,
                    "battery": sink.battery,
                }
            )
        return robots

    def status(self) -> Dict[str, Any]:
        mapping = self.mapping
        bounds = mapping.mat_bounds() if mapping is not None else None
        target = self.state.last_target
        return {
            "connection": self.state.connection,
            "last_error": self.state.last_error,
            "last_status": self.state.last_status,
            "robots": self.robots_status(),
            "calibration": {
                "state": self.session.state.value,
                "prompt": self.session.prompt,
                "corners": [[c.point.x, c.point.y] for c in self.session.corners],
                "bounds": None
                if bounds is None
                else {"min_x": bounds.min_x, "max_x": bounds.max_x, "min_y": bounds.min_y, "max_y": bounds.max_y},
            },
            "pattern": self.engine.active.value if self.engine.active else None,
            "patrol": {
                "active": self.patrol.is_patrolling,
                "waiting": self.patrol.is_waiting,
                "index": self.patrol.current_index,
                "status": self.patrol.status,
            },
            "spin": {"active": self.turntable.spinning, "speed": self.turntable.speed},
            "last_target": [target.x, target.y] if target is not None else None,
        }


__all__ = ["MatController", "ControllerState", "LivePanel"]
