"""NiceGUI touch panel for driving the robot on the mat."""

from __future__ import annotations

import asyncio
from typing import List, Optional, Set
from urllib.parse import quote

from nicegui import app, events, ui

from .calibration import CalibrationState
from .config import AppSettings
from .controller import MatController
from .drive import DriveInput
from .geometry import MatPoint, PanelPoint
from .patterns import PatternKind

# ---------------------------------------------------------------------------
# Global state shared between UI and backend
# ---------------------------------------------------------------------------
settings = AppSettings()
controller = MatController(settings=settings)

markers: List[PanelPoint] = []
pressed: Set[str] = set()
ticker: Optional[asyncio.Task] = None

HELD_KEYS = {"3": PatternKind.WAVE, "4": PatternKind.ZIGZAG, "5": PatternKind.TONTON}
FORWARD_KEYS = {"w", "arrowup"}
BACKWARD_KEYS = {"s", "arrowdown"}
LEFT_KEYS = {"a", "arrowleft"}
RIGHT_KEYS = {"d", "arrowright"}

# UI element references (populated in create_ui)
panel_image: Optional[ui.interactive_image] = None  # type: ignore[assignment]
connection_label: Optional[ui.label] = None  # type: ignore[assignment]
prompt_label: Optional[ui.label] = None  # type: ignore[assignment]
robot_label: Optional[ui.label] = None  # type: ignore[assignment]
patrol_label: Optional[ui.label] = None  # type: ignore[assignment]
status_area: Optional[ui.textarea] = None  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def _panel_size() -> tuple[float, float]:
    return settings.panel.as_tuple()


def _to_image(point: PanelPoint) -> tuple[float, float]:
    width, height = _panel_size()
    return point.x + width / 2, height / 2 - point.y


def _to_panel(image_x: float, image_y: float) -> PanelPoint:
    width, height = _panel_size()
    return PanelPoint(image_x - width / 2, height / 2 - image_y)


def _background_source() -> str:
    width, height = _panel_size()
    svg = (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" viewBox="0 0 {width} {height}">'
        f'<rect x="0" y="0" width="{width}" height="{height}" fill="#f5f5f4" stroke="#444" stroke-width="2" />'
        "</svg>"
    )
    return "data:image/svg+xml;utf8," + quote(svg)


def render_overlay_svg(corners: List[PanelPoint], target: Optional[PanelPoint]) -> str:
    elements = []
    for point in corners:
        x, y = _to_image(point)
        elements.append(f'<rect x="{x - 5:.1f}" y="{y - 5:.1f}" width="10" height="10" fill="black" />')
    if target is not None:
        x, y = _to_image(target)
        elements.append(f'<circle cx="{x:.1f}" cy="{y:.1f}" r="8" fill="none" stroke="#2563eb" stroke-width="2" />')
    return "".join(elements)


def _render_overlay() -> None:
    if panel_image is None:
        return
    target: Optional[PanelPoint] = None
    last = controller.state.last_target
    if last is not None and controller.mapping is not None:
        target = controller.mapping.to_panel(last)
    panel_image.content = render_overlay_svg(markers, target)


def _on_corner_recorded(index: int, point: MatPoint, panel: PanelPoint) -> None:
    markers.append(panel)


def _on_calibration_state(state: CalibrationState) -> None:
    if state is CalibrationState.WAITING_FL:
        markers.clear()


def _sync_status_to_ui() -> None:
    status = controller.status()
    if connection_label is not None:
        names = ", ".join(r["name"] for r in status["robots"])
        connection_label.text = f"Connected: {names}" if names else f"Connection: {status['connection']}"
    if prompt_label is not None:
        prompt_label.text = status["calibration"]["prompt"]
    if robot_label is not None:
        robots = status["robots"]
        if robots and robots[0]["position"] is not None:
            x, y = robots[0]["position"]
            robot_label.text = f"Position: ({x}, {y})  angle {robots[0]['angle']}  battery {robots[0]['battery']}%"
        else:
            robot_label.text = "Position: not on mat"
    if patrol_label is not None:
        patrol_label.text = f"Patrol: {status['patrol']['status']}"
    if status_area is not None:
        status_area.value = "\n".join(controller.status_log)
    _render_overlay()


def _handle_mouse(e: events.MouseEventArguments) -> None:
    if e.type == "mousemove" and not e.buttons:
        return
    controller.handle_pointer(_to_panel(e.image_x, e.image_y))


def _handle_key(e: events.KeyEventArguments) -> None:
    name = str(e.key.name).lower()
    if e.action.keyup:
        pressed.discard(name)
        return
    if not e.action.keydown or e.action.repeat:
        return
    pressed.add(name)
    if name == "1":
        _start_pattern(PatternKind.CIRCLE)
    elif name == "2":
        _start_pattern(PatternKind.SQUARE)
    elif e.key.space:
        _record_point()
    elif name == "p":
        controller.toggle_patrol()
    elif name == "escape":
        controller.cancel_patterns()


def _axis(positive: Set[str], negative: Set[str]) -> float:
    return float(bool(pressed & positive)) - float(bool(pressed & negative))


def _read_input() -> DriveInput:
    held = next((kind for key, kind in HELD_KEYS.items() if key in pressed), None)
    return DriveInput(
        held=held,
        forward=_axis(FORWARD_KEYS, BACKWARD_KEYS),
        rotate=_axis(RIGHT_KEYS, LEFT_KEYS),
    )


def _start_pattern(kind: PatternKind) -> None:
    if not controller.start_pattern(kind):
        ui.notify(f"{kind.value} refused: busy", type="warning")


def _record_point() -> None:
    result = controller.record_calibration_point()
    if not result.accepted and result.reason is not None:
        ui.notify(f"Point rejected: {result.reason.value}", type="warning")


async def _connect() -> None:
    found = await controller.connect()
    if not found:
        ui.notify("Connection failed", type="negative")


def create_ui() -> None:
    global panel_image, connection_label, prompt_label, robot_label, patrol_label, status_area

    ui.page_title("Mat Pilot")
    ui.markdown("# Mat Pilot")

    with ui.row().classes("w-full gap-6"):
        with ui.column().classes("gap-4"):
            with ui.card():
                ui.label("Touch panel").classes("text-lg font-semibold")
                panel_image = ui.interactive_image(
                    _background_source(),
                    on_mouse=_handle_mouse,
                    events=["mousedown", "mousemove"],
                    cross=True,
                )
                prompt_label = ui.label("").classes("text-sm text-gray-500")

        with ui.column().classes("w-1/3 gap-4"):
            with ui.card().classes("w-full"):
                ui.label("Connection").classes("text-lg font-semibold")
                ui.button("Connect", on_click=_connect)
                connection_label = ui.label("Disconnected").classes("text-sm text-gray-500")
                robot_label = ui.label("").classes("text-sm")

            with ui.card().classes("w-full"):
                ui.label("Calibration").classes("text-lg font-semibold")
                with ui.row().classes("gap-2"):
                    ui.button("Calibrate", on_click=controller.start_calibration)
                    ui.button("Record corner", on_click=_record_point)

            with ui.card().classes("w-full"):
                ui.label("Patterns").classes("text-lg font-semibold")
                with ui.row().classes("gap-2"):
                    ui.button("Circle (1)", on_click=lambda: _start_pattern(PatternKind.CIRCLE))
                    ui.button("Square (2)", on_click=lambda: _start_pattern(PatternKind.SQUARE))
                    ui.button("Cancel", on_click=controller.cancel_patterns)
                ui.label("Hold 3 / 4 / 5 for wave, zigzag, tonton. WASD or arrows to drive.").classes(
                    "text-sm text-gray-500"
                )

            with ui.card().classes("w-full"):
                ui.label("Patrol").classes("text-lg font-semibold")
                ui.button("Start / pause (P)", on_click=controller.toggle_patrol)
                patrol_label = ui.label("").classes("text-sm")

                ui.label("Spin").classes("text-lg font-semibold")
                with ui.row().classes("gap-2"):
                    ui.button("Spin on/off", on_click=controller.toggle_spin)
                    ui.slider(
                        min=-100, max=100, step=1, value=controller.turntable.speed,
                        on_change=lambda e: controller.turntable.set_speed(e.value),
                    ).props('label="Spin speed"').classes("w-48")

            with ui.card().classes("w-full"):
                ui.label("Status log").classes("text-lg font-semibold")
                status_area = ui.textarea(value="", auto_resize=True)
                status_area.props("readonly")

    ui.keyboard(on_key=_handle_key)
    ui.timer(0.5, _sync_status_to_ui)


async def _startup() -> None:
    global ticker
    await controller.connect()
    # one ticker for the whole app, however many pages are open
    ticker = asyncio.create_task(controller.run_ticker(_read_input))


async def _shutdown() -> None:
    if ticker is not None:
        ticker.cancel()
        try:
            await ticker
        except asyncio.CancelledError:
            pass
    await controller.shutdown()


controller.events.corner_recorded.connect(_on_corner_recorded)
controller.events.calibration_state_changed.connect(_on_calibration_state)
app.on_startup(_startup)
app.on_shutdown(_shutdown)


def run(**kwargs) -> None:
    ui.run(**kwargs)


@ui.page("/")
def index() -> None:
    create_ui()
