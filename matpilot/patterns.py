"""Canned motion patterns.

Held patterns (wave, zigzag, tonton) are evaluated once per tick while their
key is held and share a single phase timer.  One-shot patterns (circle,
square) run as asyncio tasks, mark the engine busy for their whole run and
always finish with a stop command.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Dict, Optional

from .cancel import Cancelled, CancelScope
from .config import PatternSettings
from .device import STOP, MoveCommand, SinkGroup

logger = logging.getLogger(__name__)


class PatternKind(enum.Enum):
    WAVE = "wave"
    ZIGZAG = "zigzag"
    TONTON = "tonton"
    CIRCLE = "circle"
    SQUARE = "square"
    PATROL = "patrol"


HELD_PATTERNS = frozenset({PatternKind.WAVE, PatternKind.ZIGZAG, PatternKind.TONTON})
ONE_SHOT_PATTERNS = frozenset({PatternKind.CIRCLE, PatternKind.SQUARE})


class PatternOutcome(enum.Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUSED = "refused"


class MotionPatternEngine:
    """Runs motion patterns against a :class:`SinkGroup`."""

    def __init__(self, sinks: SinkGroup, settings: Optional[PatternSettings] = None) -> None:
        self.sinks = sinks
        self.settings = settings or PatternSettings()
        self.active: Optional[PatternKind] = None
        self._scope: Optional[CancelScope] = None
        self._task: Optional[asyncio.Task] = None

        # held pattern phase
        self._timer_s = 0.0
        self._wave_up = False
        self._zigzag_forward = False

        self._programs: Dict[PatternKind, Callable[[CancelScope], Awaitable[None]]] = {
            PatternKind.CIRCLE: self._circle,
            PatternKind.SQUARE: self._square,
        }

    @property
    def busy(self) -> bool:
        return self.active is not None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    # ------------------------------------------------------------------
    # Held patterns
    # ------------------------------------------------------------------
    def advance(self, dt: float) -> None:
        """Advance the shared phase timer by ``dt`` seconds."""
        self._timer_s += dt

    def held_command(self, kind: PatternKind) -> MoveCommand:
        s = self.settings
        curve = s.curve_strength
        if kind is PatternKind.WAVE:
            if self._timer_s > s.wave_interval_ms / 1000:
                self._wave_up = not self._wave_up
                self._timer_s = 0.0
            rotate = s.wave_rotate if self._wave_up else -s.wave_rotate
            return MoveCommand(s.wave_move, rotate + curve, 100)
        if kind is PatternKind.ZIGZAG:
            if self._timer_s > s.zigzag_interval_ms / 1000:
                self._zigzag_forward = not self._zigzag_forward
                self._timer_s = 0.0
            move = s.zigzag_move if self._zigzag_forward else -s.zigzag_move
            return MoveCommand(move, s.zigzag_rotate + curve, 150)
        if kind is PatternKind.TONTON:
            if self._timer_s > s.tonton_cycle_ms / 1000:
                self._timer_s = 0.0
            move = s.tonton_move if self._timer_s < s.tonton_on_ms / 1000 else 0
            return MoveCommand(move, curve, 100)
        raise ValueError(f"{kind.value} is not a held pattern")

    # ------------------------------------------------------------------
    # One-shot patterns
    # ------------------------------------------------------------------
    def start(self, kind: PatternKind) -> Optional[asyncio.Task]:
        """Schedule a one-shot pattern; returns ``None`` when refused as busy.

        Must be called from the running event loop.
        """
        scope = self._acquire(kind)
        if scope is None:
            return None
        self._task = asyncio.get_running_loop().create_task(self._execute(kind, scope))
        return self._task

    async def run(self, kind: PatternKind) -> PatternOutcome:
        """Run a one-shot pattern to its end."""
        scope = self._acquire(kind)
        if scope is None:
            return PatternOutcome.REFUSED
        return await self._execute(kind, scope)

    def cancel(self) -> bool:
        """Cancel the running one-shot pattern, if any."""
        if self._scope is None:
            return False
        logger.info("Cancelling %s", self.active.value if self.active else "pattern")
        self._scope.cancel()
        return True

    def _acquire(self, kind: PatternKind) -> Optional[CancelScope]:
        if kind not in ONE_SHOT_PATTERNS:
            raise ValueError(f"{kind.value} is not a one-shot pattern")
        if self.busy:
            logger.info("Refusing %s: %s is still running", kind.value, self.active.value)
            return None
        self.active = kind
        self._scope = CancelScope()
        return self._scope

    async def _execute(self, kind: PatternKind, scope: CancelScope) -> PatternOutcome:
        logger.info("%s started", kind.value)
        outcome = PatternOutcome.COMPLETED
        try:
            await self._programs[kind](scope)
        except Cancelled:
            outcome = PatternOutcome.CANCELLED
            logger.info("%s cancelled", kind.value)
        finally:
            self.sinks.move(STOP)
            self.active = None
            self._scope = None
        logger.info("%s finished (%s)", kind.value, outcome.value)
        return outcome

    async def _circle(self, scope: CancelScope) -> None:
        s = self.settings
        self.sinks.move(MoveCommand(s.circle_move, s.circle_rotate, s.circle_duration_ms))
        await scope.sleep(s.circle_duration_ms / 1000)

    async def _square(self, scope: CancelScope) -> None:
        s = self.settings
        for _ in range(4):
            self.sinks.move(MoveCommand(s.square_move, 0, s.square_side_ms))
            await scope.sleep(s.square_side_ms / 1000)
            # 90 degree right turn
            self.sinks.move(MoveCommand(0, -s.square_rotate, s.square_turn_ms))
            await scope.sleep(s.square_turn_ms / 1000)


def parse_kind(name: str) -> PatternKind:
    """Look up a pattern kind by name (case-insensitive)."""
    try:
        return PatternKind(name.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown pattern {name!r}") from None


__all__ = [
    "PatternKind",
    "HELD_PATTERNS",
    "ONE_SHOT_PATTERNS",
    "PatternOutcome",
    "MotionPatternEngine",
    "parse_kind",
]
