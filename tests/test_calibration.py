"""Four-corner calibration sequencing."""

from __future__ import annotations

from typing import List

import pytest

from matpilot.calibration import CalibrationSession, CalibrationState, RejectReason
from matpilot.config import CalibrationSettings
from matpilot.events import Events
from matpilot.geometry import MatPoint, PanelPoint, build_forward, panel_rect

CORNERS = [MatPoint(100, 100), MatPoint(400, 100), MatPoint(400, 400), MatPoint(100, 400)]


@pytest.fixture()
def events() -> Events:
    return Events()


@pytest.fixture()
def session(events: Events) -> CalibrationSession:
    return CalibrationSession(panel_rect(400, 400), events=events)


def test_full_sequence_produces_mapping(session: CalibrationSession, events: Events) -> None:
    log: List[tuple] = []
    events.calibration_state_changed.connect(lambda state: log.append(("state", state)))
    events.corner_recorded.connect(lambda index, mat, panel: log.append(("corner", index, mat)))
    events.mapping_ready.connect(lambda mapping: log.append(("mapping", mapping)))

    session.restart()
    assert session.state is CalibrationState.WAITING_FL

    states = []
    for t, point in enumerate(CORNERS):
        result = session.record_point(point, now=float(t))
        assert result.accepted
        states.append(result.state)

    assert states == [
        CalibrationState.WAITING_FR,
        CalibrationState.WAITING_BR,
        CalibrationState.WAITING_BL,
        CalibrationState.DONE,
    ]
    mappings = [entry[1] for entry in log if entry[0] == "mapping"]
    assert len(mappings) == 1
    bounds = mappings[0].mat_bounds()
    assert (bounds.min_x, bounds.max_x, bounds.min_y, bounds.max_y) == (100, 400, 100, 400)
    assert session.mapping is mappings[0]
    # the mapping is announced after the final state change
    assert log[-1][0] == "mapping"
    assert log[-2] == ("state", CalibrationState.DONE)
    assert [c.recorded_at for c in session.corners] == [0.0, 1.0, 2.0, 3.0]


def test_point_without_fix_is_rejected(session: CalibrationSession) -> None:
    session.restart()
    result = session.record_point(MatPoint(5, 5))
    assert not result.accepted
    assert result.reason is RejectReason.INVALID_FIX
    assert session.state is CalibrationState.WAITING_FL
    assert session.corners == []


def test_only_both_coordinates_below_floor_count_as_no_fix(session: CalibrationSession) -> None:
    session.restart()
    assert session.record_point(MatPoint(5, 50)).accepted
    assert session.state is CalibrationState.WAITING_FR


def test_min_valid_coord_is_configurable(events: Events) -> None:
    session = CalibrationSession(
        panel_rect(400, 400), settings=CalibrationSettings(min_valid_coord=60), events=events
    )
    session.restart()
    assert session.record_point(MatPoint(50, 50)).reason is RejectReason.INVALID_FIX


def test_recording_outside_calibration_is_invalid(session: CalibrationSession) -> None:
    result = session.record_point(MatPoint(100, 100))
    assert result.reason is RejectReason.INVALID_STATE
    assert session.state is CalibrationState.NONE

    session.restart()
    for point in CORNERS:
        session.record_point(point)
    result = session.record_point(MatPoint(250, 250))
    assert result.reason is RejectReason.INVALID_STATE
    assert session.state is CalibrationState.DONE


def test_restart_releases_input_before_clearing(session: CalibrationSession, events: Events) -> None:
    order: List[str] = []
    events.input_released.connect(lambda: order.append("released"))
    events.calibration_state_changed.connect(lambda state: order.append(state.value))

    session.restart()
    session.record_point(CORNERS[0])
    session.record_point(CORNERS[1])
    order.clear()

    session.restart()
    assert order == ["released", "waiting_fl"]
    assert session.corners == []
    assert session.mapping is None


def test_degenerate_corners_require_restart(session: CalibrationSession, events: Events) -> None:
    ready = []
    events.mapping_ready.connect(ready.append)
    session.restart()
    for point in (MatPoint(100, 100), MatPoint(200, 100), MatPoint(300, 100)):
        assert session.record_point(point).accepted

    result = session.record_point(MatPoint(400, 100))
    assert not result.accepted
    assert result.reason is RejectReason.DEGENERATE_GEOMETRY
    assert session.state is CalibrationState.NONE
    assert session.corners == []
    assert ready == []


def test_corner_markers_use_target_quad_without_preview(session: CalibrationSession, events: Events) -> None:
    markers: List[PanelPoint] = []
    events.corner_recorded.connect(lambda index, mat, panel: markers.append(panel))
    session.restart()
    session.record_point(MatPoint(123, 456))
    assert markers == [PanelPoint(-200, 200)]


def test_corner_markers_follow_preview_mapping(events: Events) -> None:
    quad = panel_rect(400, 400)
    preview = build_forward(CORNERS, quad)
    session = CalibrationSession(quad, events=events, preview=preview)
    markers: List[PanelPoint] = []
    events.corner_recorded.connect(lambda index, mat, panel: markers.append(panel))

    session.restart()
    session.record_point(MatPoint(250, 250))
    assert markers[0].x == pytest.approx(0.0)
    assert markers[0].y == pytest.approx(0.0)


def test_prompt_tracks_expected_corner(session: CalibrationSession) -> None:
    assert session.expected_corner is None
    session.restart()
    assert "FRONT LEFT" in session.prompt
    session.record_point(CORNERS[0])
    assert "FRONT RIGHT" in session.prompt
    assert session.is_calibrating
