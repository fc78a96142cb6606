"""Configuration models for the matpilot application."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .geometry import MatBounds

logger = logging.getLogger(__name__)


@dataclass
class PanelSettings:
    """Linear dimensions of the on-screen touch panel."""

    width: float = 400.0
    height: float = 400.0

    def as_tuple(self) -> tuple[float, float]:
        return self.width, self.height


@dataclass
class CalibrationSettings:
    min_valid_coord: int = 10
    mode: str = "bounds"  # bounds | bilinear
    # Use the nominal mat bounds as a mapping until the operator calibrates.
    use_default_mapping: bool = True


@dataclass
class ThrottleSettings:
    """Rate and distance gate for pointer-driven target commands."""

    min_interval_s: float = 0.1
    min_distance: float = 20.0


@dataclass
class PointerSettings:
    max_speed: int = 80
    target_angle: int = 0


@dataclass
class DriveSettings:
    """Manual (WASD style) driving and tick rate."""

    move_speed: int = 80
    rotate_speed: int = 60
    duration_ms: int = 200
    tick_s: float = 0.05


@dataclass
class PatternSettings:
    """Speeds and timings of the canned motion patterns."""

    # held patterns
    wave_move: int = 70
    wave_rotate: int = 70
    wave_interval_ms: int = 150
    zigzag_move: int = 80
    zigzag_rotate: int = 100
    zigzag_interval_ms: int = 200
    tonton_move: int = 60
    tonton_cycle_ms: int = 150
    tonton_on_ms: int = 80
    curve_strength: int = 10

    # one-shot patterns
    circle_move: int = 60
    circle_rotate: int = 60
    circle_duration_ms: int = 2000
    square_move: int = 70
    square_side_ms: int = 1000
    square_rotate: int = 100
    square_turn_ms: int = 300


@dataclass
class PatrolSettings:
    # Developer mat range: x[98-402] y[142-358]
    waypoints: List[Tuple[int, int]] = field(
        default_factory=lambda: [(150, 180), (350, 180), (350, 320), (150, 320)]
    )
    dwell_s: float = 1.0
    max_speed: int = 80
    error_sound_id: int = 3


@dataclass
class ConnectionSettings:
    modes: List[str] = field(default_factory=lambda: ["simulator"])
    count: int = 4
    settle_s: float = 1.0


@dataclass
class AppSettings:
    """Aggregate settings for the controller, server and UI."""

    mat: MatBounds = field(default_factory=MatBounds)
    panel: PanelSettings = field(default_factory=PanelSettings)
    calibration: CalibrationSettings = field(default_factory=CalibrationSettings)
    throttle: ThrottleSettings = field(default_factory=ThrottleSettings)
    pointer: PointerSettings = field(default_factory=PointerSettings)
    drive: DriveSettings = field(default_factory=DriveSettings)
    patterns: PatternSettings = field(default_factory=PatternSettings)
    patrol: PatrolSettings = field(default_factory=PatrolSettings)
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> "AppSettings":
        data = data or {}
        settings = AppSettings()
        for f in fields(AppSettings):
            section = data.get(f.name)
            if section is None:
                continue
            if not isinstance(section, dict):
                raise ValueError(f"Config section {f.name!r} must be a mapping")
            setattr(settings, f.name, _build_section(type(getattr(settings, f.name)), section, f.name))
        unknown = set(data) - {f.name for f in fields(AppSettings)}
        for name in sorted(unknown):
            logger.warning("Ignoring unknown config section %r", name)
        return settings


def _build_section(cls, section: Dict[str, Any], name: str):
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in section.items():
        if key not in known:
            logger.warning("Ignoring unknown config key %s.%s", name, key)
            continue
        kwargs[key] = value
    if cls is PatrolSettings and "waypoints" in kwargs:
        kwargs["waypoints"] = [(int(x), int(y)) for x, y in kwargs["waypoints"]]
    return cls(**kwargs)


def load_settings(path: Path) -> AppSettings:
    """Load YAML settings; missing keys keep their defaults."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    settings = AppSettings.from_dict(data)
    logger.info("Loaded settings from %s", path)
    return settings


__all__ = [
    "PanelSettings",
    "CalibrationSettings",
    "ThrottleSettings",
    "PointerSettings",
    "DriveSettings",
    "PatternSettings",
    "PatrolSettings",
    "ConnectionSettings",
    "AppSettings",
    "load_settings",
]
