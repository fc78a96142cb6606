"""Geometry primitives and the calibrated panel-to-mat mapping.

The robot reports absolute positions in the mat's own integer coordinate
system while pointer input arrives in the local space of an on-screen panel
(origin at the panel center, +y up).  A :class:`QuadMapping` pairs the four
calibrated mat corners with the four corners of the panel region they were
matched to and converts points between the two spaces.

Two interpolation modes are available:

``"bounds"``
    Axis-aligned bounding transform: the min/max of the mat corners are
    stretched over the bounding box of the panel quad.  Panel left/right map to
    mat min/max X, panel bottom maps to mat max Y and panel top to mat min Y.
    This is the default.

``"bilinear"``
    Full bilinear interpolation keyed by corner tag, with an analytic inverse.
    Higher fidelity when the robot's view of the panel is skewed.

Both modes return calibration corners to themselves exactly and extrapolate
(rather than clamp) outside the calibrated region.
"""
from __future__ import annotations

import enum
import itertools
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

XY = Tuple[float, float]

MAPPING_MODES = ("bounds", "bilinear")

# Relative tolerance (scaled by the squared extent of a quad) used for the
# collinearity and zero-area checks.
_DEGENERATE_TOL = 1e-6
_EDGE_TOL = 1e-9


class DegenerateGeometryError(ValueError):
    """Raised when calibration corners collapse to a line or a point."""


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MatPoint:
    """Integer position in the robot's mat coordinate space.

    ``(0, 0)`` is what the sensor reports when it cannot read the mat; it is a
    sentinel and never a real position.
    """

    x: int
    y: int

    @property
    def is_fix(self) -> bool:
        return not (self.x == 0 and self.y == 0)

    def distance_to(self, other: "MatPoint") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def as_tuple(self) -> Tuple[int, int]:
        return self.x, self.y


NO_FIX = MatPoint(0, 0)


@dataclass(frozen=True)
class PanelPoint:
    """Point in the input panel's local space (origin at the center, +y up)."""

    x: float
    y: float

    def as_tuple(self) -> XY:
        return self.x, self.y


class Corner(enum.Enum):
    """Calibration corner tags, in the order the operator visits them."""

    FRONT_LEFT = "front_left"
    FRONT_RIGHT = "front_right"
    BACK_RIGHT = "back_right"
    BACK_LEFT = "back_left"


CORNER_ORDER: Tuple[Corner, ...] = (
    Corner.FRONT_LEFT,
    Corner.FRONT_RIGHT,
    Corner.BACK_RIGHT,
    Corner.BACK_LEFT,
)


@dataclass(frozen=True)
class MatBounds:
    """Axis-aligned rectangle on the mat."""

    min_x: int = 45
    max_x: int = 455
    min_y: int = 45
    max_y: int = 455

    def clamp(self, point: MatPoint) -> MatPoint:
        lo_x, hi_x = sorted((self.min_x, self.max_x))
        lo_y, hi_y = sorted((self.min_y, self.max_y))
        return MatPoint(min(max(point.x, lo_x), hi_x), min(max(point.y, lo_y), hi_y))

    def contains(self, point: MatPoint) -> bool:
        return self.clamp(point) == point

    def corners(self) -> Tuple[MatPoint, MatPoint, MatPoint, MatPoint]:
        """Corners in FL, FR, BR, BL order (front is the low-Y edge)."""
        return (
            MatPoint(self.min_x, self.min_y),
            MatPoint(self.max_x, self.min_y),
            MatPoint(self.max_x, self.max_y),
            MatPoint(self.min_x, self.max_y),
        )

    @staticmethod
    def around(points: Iterable[MatPoint]) -> "MatBounds":
        pts = list(points)
        if not pts:
            raise ValueError("cannot bound an empty point set")
        xs = [p.x for p in pts]
        ys = [p.y for p in pts]
        return MatBounds(min(xs), max(xs), min(ys), max(ys))


def panel_rect(width: float, height: float) -> Tuple[PanelPoint, PanelPoint, PanelPoint, PanelPoint]:
    """Full panel rectangle as a target quad in FL, FR, BR, BL order."""
    hw, hh = 0.5 * width, 0.5 * height
    return (
        PanelPoint(-hw, hh),
        PanelPoint(hw, hh),
        PanelPoint(hw, -hh),
        PanelPoint(-hw, -hh),
    )


# ---------------------------------------------------------------------------
# Quad helpers
# ---------------------------------------------------------------------------


def _cross(o: XY, a: XY, b: XY) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def _cross2(a: XY, b: XY) -> float:
    return a[0] * b[1] - a[1] * b[0]


def signed_area(points: Sequence[XY]) -> float:
    total = 0.0
    for (x0, y0), (x1, y1) in zip(points, list(points[1:]) + [points[0]]):
        total += x0 * y1 - x1 * y0
    return 0.5 * total


def check_quad(points: Sequence[XY], what: str = "quad") -> None:
    """Raise :class:`DegenerateGeometryError` for collinear or zero-area quads."""
    if len(points) != 4:
        raise ValueError(f"{what}: expected 4 corners, got {len(points)}")
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    extent = max(max(xs) - min(xs), max(ys) - min(ys))
    if extent <= 0.0 or not math.isfinite(extent):
        raise DegenerateGeometryError(f"{what}: all corners coincide")
    tol = _DEGENERATE_TOL * extent * extent
    for a, b, c in itertools.combinations(points, 3):
        if abs(_cross(a, b, c)) <= tol:
            raise DegenerateGeometryError(f"{what}: three corners are collinear")
    if abs(signed_area(points)) <= tol:
        raise DegenerateGeometryError(f"{what}: corners enclose no area")


def _on_segment(p: XY, a: XY, b: XY) -> bool:
    length = math.hypot(b[0] - a[0], b[1] - a[1])
    if length == 0.0:
        return p == a
    if abs(_cross(a, b, p)) > _EDGE_TOL * max(1.0, length * length):
        return False
    return (
        min(a[0], b[0]) - _EDGE_TOL <= p[0] <= max(a[0], b[0]) + _EDGE_TOL
        and min(a[1], b[1]) - _EDGE_TOL <= p[1] <= max(a[1], b[1]) + _EDGE_TOL
    )


def point_in_quad(point: XY, quad: Sequence[XY]) -> bool:
    """Ray-crossing point-in-polygon test.

    Points lying exactly on an edge or a vertex count as outside.
    """
    n = len(quad)
    for i in range(n):
        if _on_segment(point, quad[i], quad[(i + 1) % n]):
            return False
    x, y = point
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = quad[i]
        xj, yj = quad[j]
        if (yi > y) != (yj > y):
            x_cross = xi + (y - yi) * (xj - xi) / (yj - yi)
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def _bilinear(quad: Sequence[XY], u: float, v: float) -> XY:
    # quad is (q00, q10, q11, q01)
    a, b, c, d = quad
    return (
        a[0] + (b[0] - a[0]) * u + (d[0] - a[0]) * v + (a[0] - b[0] + c[0] - d[0]) * u * v,
        a[1] + (b[1] - a[1]) * u + (d[1] - a[1]) * v + (a[1] - b[1] + c[1] - d[1]) * u * v,
    )


def _solve_u(h: XY, e: XY, f: XY, g: XY, v: float) -> float:
    dx = e[0] + g[0] * v
    dy = e[1] + g[1] * v
    if abs(dx) >= abs(dy):
        return (h[0] - f[0] * v) / dx
    return (h[1] - f[1] * v) / dy


def _outside_unit(u: float, v: float) -> float:
    return max(0.0, -u, u - 1.0) + max(0.0, -v, v - 1.0)


def _inverse_bilinear(quad: Sequence[XY], p: XY) -> XY:
    a, b, c, d = quad
    e = (b[0] - a[0], b[1] - a[1])
    f = (d[0] - a[0], d[1] - a[1])
    g = (a[0] - b[0] + c[0] - d[0], a[1] - b[1] + c[1] - d[1])
    h = (p[0] - a[0], p[1] - a[1])

    k2 = _cross2(g, f)
    k1 = _cross2(e, f) + _cross2(h, g)
    k0 = _cross2(h, e)

    if abs(k2) <= 1e-12 * max(abs(k1), abs(k0), 1.0):
        # opposite edges are parallel: the equation in v is linear
        v = -k0 / k1
        return _solve_u(h, e, f, g, v), v

    # extrapolating far outside the quad can push the discriminant below zero
    w = math.sqrt(max(0.0, k1 * k1 - 4.0 * k0 * k2))
    candidates: List[XY] = []
    for v in ((-k1 - w) / (2.0 * k2), (-k1 + w) / (2.0 * k2)):
        candidates.append((_solve_u(h, e, f, g, v), v))
    return min(candidates, key=lambda uv: _outside_unit(*uv))


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuadMapping:
    """Immutable correspondence between four mat corners and a panel quad.

    ``corners`` and ``panel_quad`` are both ordered FL, FR, BR, BL.
    """

    corners: Tuple[MatPoint, MatPoint, MatPoint, MatPoint]
    panel_quad: Tuple[PanelPoint, PanelPoint, PanelPoint, PanelPoint]
    mode: str = "bounds"

    def __post_init__(self) -> None:
        if self.mode not in MAPPING_MODES:
            raise ValueError(f"Unknown mapping mode: {self.mode!r}")
        if len(self.corners) != 4 or len(self.panel_quad) != 4:
            raise ValueError("A quad mapping needs exactly four corner pairs")
        check_quad([p.as_tuple() for p in self.corners], "mat corners")
        check_quad([p.as_tuple() for p in self.panel_quad], "panel quad")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def corner(self, tag: Corner) -> MatPoint:
        return self.corners[CORNER_ORDER.index(tag)]

    def panel_corner(self, tag: Corner) -> PanelPoint:
        return self.panel_quad[CORNER_ORDER.index(tag)]

    def mat_bounds(self) -> MatBounds:
        return MatBounds.around(self.corners)

    def panel_bounds(self) -> Tuple[float, float, float, float]:
        xs = [p.x for p in self.panel_quad]
        ys = [p.y for p in self.panel_quad]
        return min(xs), max(xs), min(ys), max(ys)

    def clamp(self, point: MatPoint) -> MatPoint:
        return self.mat_bounds().clamp(point)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------
    def to_mat(self, point: PanelPoint) -> MatPoint:
        x, y = self._to_mat_xy(point.as_tuple())
        return MatPoint(int(round(x)), int(round(y)))

    def to_panel(self, point: MatPoint) -> PanelPoint:
        x, y = self._to_panel_xy((float(point.x), float(point.y)))
        return PanelPoint(x, y)

    def contains(self, point: PanelPoint) -> bool:
        return point_in_quad(point.as_tuple(), [p.as_tuple() for p in self.panel_quad])

    def _to_mat_xy(self, p: XY) -> XY:
        if self.mode == "bounds":
            mb = self.mat_bounds()
            px0, px1, py0, py1 = self.panel_bounds()
            u = (p[0] - px0) / (px1 - px0)
            v = (p[1] - py0) / (py1 - py0)
            # panel bottom is the far (max Y) edge of the mat
            return mb.min_x + u * (mb.max_x - mb.min_x), mb.max_y + v * (mb.min_y - mb.max_y)
        u, v = _inverse_bilinear(self._uv_quad(self.panel_quad), p)
        return _bilinear(self._uv_quad(self.corners), u, v)

    def _to_panel_xy(self, p: XY) -> XY:
        if self.mode == "bounds":
            mb = self.mat_bounds()
            px0, px1, py0, py1 = self.panel_bounds()
            u = (p[0] - mb.min_x) / (mb.max_x - mb.min_x)
            v = (p[1] - mb.max_y) / (mb.min_y - mb.max_y)
            return px0 + u * (px1 - px0), py0 + v * (py1 - py0)
        u, v = _inverse_bilinear(self._uv_quad(self.corners), p)
        return _bilinear(self._uv_quad(self.panel_quad), u, v)

    @staticmethod
    def _uv_quad(quad) -> List[XY]:
        # (u, v) = (0, 0) at BL, (1, 0) at BR, (1, 1) at FR, (0, 1) at FL
        fl, fr, br, bl = quad
        return [bl.as_tuple(), br.as_tuple(), fr.as_tuple(), fl.as_tuple()]


def build_forward(
    corners: Sequence[MatPoint],
    target_quad: Sequence[PanelPoint],
    mode: str = "bounds",
) -> QuadMapping:
    """Build a mapping from FL, FR, BR, BL mat corners onto ``target_quad``."""
    return QuadMapping(corners=tuple(corners), panel_quad=tuple(target_quad), mode=mode)  # type: ignore[arg-type]


def centroid(points: Sequence[XY]) -> Optional[XY]:
    if not points:
        return None
    return (
        sum(p[0] for p in points) / len(points),
        sum(p[1] for p in points) / len(points),
    )


__all__ = [
    "XY",
    "MAPPING_MODES",
    "DegenerateGeometryError",
    "MatPoint",
    "NO_FIX",
    "PanelPoint",
    "Corner",
    "CORNER_ORDER",
    "MatBounds",
    "QuadMapping",
    "build_forward",
    "panel_rect",
    "point_in_quad",
    "check_quad",
    "signed_area",
    "centroid",
]
