"""Top-level package for the matpilot toolkit.

This package maps touch-panel input onto a position-encoded mat, throttles
the resulting target commands and runs canned motion programs on small
wheeled robots, either from the browser panel or the HTTP control server.
"""

from .geometry import MatBounds, MatPoint, PanelPoint, QuadMapping, build_forward
from .calibration import CalibrationSession, CalibrationState
from .throttle import CommandThrottle
from .patterns import MotionPatternEngine, PatternKind
from .controller import MatController

__all__ = [
    "MatBounds",
    "MatPoint",
    "PanelPoint",
    "QuadMapping",
    "build_forward",
    "CalibrationSession",
    "CalibrationState",
    "CommandThrottle",
    "MotionPatternEngine",
    "PatternKind",
    "MatController",
]
