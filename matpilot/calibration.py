"""Four-corner calibration of the touch panel against the mat."""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .config import CalibrationSettings
from .events import Events
from .geometry import (
    CORNER_ORDER,
    Corner,
    DegenerateGeometryError,
    MatPoint,
    PanelPoint,
    QuadMapping,
    build_forward,
)

logger = logging.getLogger(__name__)


class CalibrationState(enum.Enum):
    NONE = "none"
    WAITING_FL = "waiting_fl"
    WAITING_FR = "waiting_fr"
    WAITING_BR = "waiting_br"
    WAITING_BL = "waiting_bl"
    DONE = "done"


_EXPECTED: Dict[CalibrationState, Corner] = {
    CalibrationState.WAITING_FL: Corner.FRONT_LEFT,
    CalibrationState.WAITING_FR: Corner.FRONT_RIGHT,
    CalibrationState.WAITING_BR: Corner.BACK_RIGHT,
    CalibrationState.WAITING_BL: Corner.BACK_LEFT,
}

_NEXT: Dict[CalibrationState, CalibrationState] = {
    CalibrationState.WAITING_FL: CalibrationState.WAITING_FR,
    CalibrationState.WAITING_FR: CalibrationState.WAITING_BR,
    CalibrationState.WAITING_BR: CalibrationState.WAITING_BL,
    CalibrationState.WAITING_BL: CalibrationState.DONE,
}

PROMPTS: Dict[CalibrationState, str] = {
    CalibrationState.NONE: "Press Calibrate to start.",
    CalibrationState.WAITING_FL: "1. Place the robot at the FRONT LEFT corner and record.",
    CalibrationState.WAITING_FR: "2. Now the FRONT RIGHT corner.",
    CalibrationState.WAITING_BR: "3. Now the BACK RIGHT corner.",
    CalibrationState.WAITING_BL: "4. Finally the BACK LEFT corner.",
    CalibrationState.DONE: "All set! Touch the panel to drive.",
}


class RejectReason(enum.Enum):
    INVALID_STATE = "invalid_state"
    INVALID_FIX = "invalid_fix"
    DEGENERATE_GEOMETRY = "degenerate_geometry"


@dataclass(frozen=True)
class RecordResult:
    accepted: bool
    state: CalibrationState
    reason: Optional[RejectReason] = None


@dataclass(frozen=True)
class CalibrationCorner:
    tag: Corner
    point: MatPoint
    recorded_at: float


class CalibrationSession:
    """Collects FL, FR, BR, BL mat points and produces a :class:`QuadMapping`.

    The session starts idle (``NONE``); :meth:`restart` enters calibration.
    ``preview`` is an optional earlier mapping used only to place the corner
    markers reported through ``corner_recorded``.
    """

    def __init__(
        self,
        target_quad: Sequence[PanelPoint],
        *,
        settings: Optional[CalibrationSettings] = None,
        events: Optional[Events] = None,
        preview: Optional[QuadMapping] = None,
    ) -> None:
        if len(target_quad) != 4:
            raise ValueError("target_quad needs four corners (FL, FR, BR, BL)")
        self.target_quad = tuple(target_quad)
        self.settings = settings or CalibrationSettings()
        self.events = events or Events()
        self.preview = preview
        self.state = CalibrationState.NONE
        self.mapping: Optional[QuadMapping] = None
        self._corners: List[CalibrationCorner] = []

    # ------------------------------------------------------------------
    @property
    def corners(self) -> List[CalibrationCorner]:
        return list(self._corners)

    @property
    def expected_corner(self) -> Optional[Corner]:
        return _EXPECTED.get(self.state)

    @property
    def is_calibrating(self) -> bool:
        return self.state in _EXPECTED

    @property
    def prompt(self) -> str:
        return PROMPTS[self.state]

    # ------------------------------------------------------------------
    def restart(self) -> None:
        """Enter calibration from any state, discarding unfinished progress."""
        self.events.input_released.emit()
        self._corners.clear()
        self.mapping = None
        logger.info("Calibration (re)started")
        self._set_state(CalibrationState.WAITING_FL)

    def record_point(self, point: MatPoint, now: Optional[float] = None) -> RecordResult:
        now = time.monotonic() if now is None else now
        tag = _EXPECTED.get(self.state)
        if tag is None:
            logger.warning("Calibration point %s ignored in state %s", point, self.state.value)
            return RecordResult(False, self.state, RejectReason.INVALID_STATE)

        floor = self.settings.min_valid_coord
        if point.x < floor and point.y < floor:
            logger.warning("Cannot calibrate: robot not on the mat (%d, %d)", point.x, point.y)
            return RecordResult(False, self.state, RejectReason.INVALID_FIX)

        next_state = _NEXT[self.state]
        if next_state is CalibrationState.DONE:
            pts = [c.point for c in self._corners] + [point]
            try:
                mapping = build_forward(pts, self.target_quad, mode=self.settings.mode)
            except DegenerateGeometryError as exc:
                logger.error("Calibration failed: %s; restart required", exc)
                self._corners.clear()
                self._set_state(CalibrationState.NONE)
                return RecordResult(False, self.state, RejectReason.DEGENERATE_GEOMETRY)
        else:
            mapping = None

        index = len(self._corners)
        self._corners.append(CalibrationCorner(tag, point, now))
        logger.info("Calibration point %d (%s) recorded: (%d, %d)", index + 1, tag.value, point.x, point.y)
        self.events.corner_recorded.emit(index, point, self._marker_position(index, point))
        self._set_state(next_state)

        if mapping is not None:
            self.mapping = mapping
            bounds = mapping.mat_bounds()
            logger.info(
                "Calibration complete: X[%d~%d], Y[%d~%d]",
                bounds.min_x,
                bounds.max_x,
                bounds.min_y,
                bounds.max_y,
            )
            self.events.mapping_ready.emit(mapping)
        return RecordResult(True, self.state)

    # ------------------------------------------------------------------
    def _marker_position(self, index: int, point: MatPoint) -> PanelPoint:
        if self.preview is not None:
            return self.preview.to_panel(point)
        return self.target_quad[index]

    def _set_state(self, state: CalibrationState) -> None:
        self.state = state
        self.events.calibration_state_changed.emit(state)


__all__ = [
    "CalibrationState",
    "RejectReason",
    "RecordResult",
    "CalibrationCorner",
    "CalibrationSession",
    "CORNER_ORDER",
    "PROMPTS",
]
