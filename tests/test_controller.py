"""Controller orchestration: connection, calibration, pointer and programs."""

from __future__ import annotations

import asyncio

import pytest

from matpilot.calibration import CalibrationState, RejectReason
from matpilot.config import AppSettings
from matpilot.controller import MatController
from matpilot.device import (
    ConnectionFailure,
    ConnectMode,
    MoveCommand,
    SimulatedConnector,
    SimulatedRobot,
    connect_robot,
)
from matpilot.drive import DriveInput
from matpilot.geometry import MatPoint, PanelPoint
from matpilot.patterns import PatternKind

CORNERS = [(100, 100), (400, 100), (400, 400), (100, 400)]


@pytest.fixture()
def controller(connector: SimulatedConnector, fast_settings: AppSettings) -> MatController:
    return MatController(connector=connector, settings=fast_settings)


def connected(controller: MatController) -> MatController:
    asyncio.run(controller.connect())
    return controller


def test_connect_selects_robot_and_flashes_green(controller: MatController, robot: SimulatedRobot) -> None:
    found = asyncio.run(controller.connect())
    assert found == [robot]
    assert controller.state.connection == "connected"
    assert robot.leds == [(0, 255, 0, 500)]
    assert any("Connected: sim-0" in line for line in controller.status_log)


def test_connect_failure_is_reported_not_raised(controller: MatController) -> None:
    found = asyncio.run(controller.connect(["real"]))
    assert found == []
    assert controller.state.connection == "error"
    assert "No robots found" in controller.state.last_error


def test_connect_prefers_robot_on_the_mat(fast_settings: AppSettings) -> None:
    lost = SimulatedRobot("lost", on_mat=False)
    placed = SimulatedRobot("placed")
    connector = SimulatedConnector({ConnectMode.SIMULATOR: [lost, placed]})
    controller = MatController(connector=connector, settings=fast_settings)

    found = asyncio.run(controller.connect([ConnectMode.SIMULATOR]))
    assert found == [placed]
    assert connector.disconnected == [lost]
    assert not lost.is_connected


def test_pointer_uses_default_mapping(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)

    async def scenario():
        target = controller.handle_pointer(PanelPoint(0, 0), now=0.0)
        await asyncio.sleep(0.05)
        return target

    assert asyncio.run(scenario()) == MatPoint(250, 250)
    assert robot.commands[-1] == ("target_move", 250, 250, 0, 80, 0)


def test_pointer_is_throttled_and_hit_tested(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)

    async def scenario():
        first = controller.handle_pointer(PanelPoint(-160, 160), now=0.0)
        too_soon = controller.handle_pointer(PanelPoint(100, 100), now=0.05)
        outside = controller.handle_pointer(PanelPoint(300, 0), now=1.0)
        later = controller.handle_pointer(PanelPoint(100, 100), now=1.0)
        await asyncio.sleep(0)
        return first, too_soon, outside, later

    first, too_soon, outside, later = asyncio.run(scenario())
    assert first == MatPoint(86, 86)
    assert too_soon is None
    assert outside is None
    assert later is not None
    assert robot.targets[0] == MatPoint(86, 86)


def test_pointer_without_robots_commands_nothing(controller: MatController, robot: SimulatedRobot) -> None:
    async def scenario():
        return controller.handle_pointer(PanelPoint(0, 0), now=0.0)

    assert asyncio.run(scenario()) == MatPoint(250, 250)
    assert robot.targets == []


def test_calibration_replaces_mapping(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)
    robot.leds.clear()

    controller.start_calibration()
    assert controller.mapping is None

    async def during():
        return controller.handle_pointer(PanelPoint(0, 0), now=0.0)

    assert asyncio.run(during()) is None

    for t, (x, y) in enumerate(CORNERS):
        robot.place(x, y)
        assert controller.record_calibration_point(now=float(t)).accepted

    assert controller.session.state is CalibrationState.DONE
    bounds = controller.mapping.mat_bounds()
    assert (bounds.min_x, bounds.max_x, bounds.min_y, bounds.max_y) == (100, 400, 100, 400)
    assert robot.leds == [(255, 255, 0, 500)] * 4 + [(0, 255, 0, 1000)]

    async def after():
        return controller.handle_pointer(PanelPoint(-200 + 40, 200 - 40), now=10.0)

    assert asyncio.run(after()) == MatPoint(130, 130)


def test_calibration_rejects_robot_off_mat(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)
    controller.start_calibration()
    robot.on_mat = False
    result = controller.record_calibration_point()
    assert result.reason is RejectReason.INVALID_FIX
    assert controller.session.state is CalibrationState.WAITING_FL


def test_degenerate_calibration_leaves_no_live_mapping(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)
    controller.start_calibration()
    for x in (100, 200, 300):
        robot.place(x, 100)
        controller.record_calibration_point()
    robot.place(400, 100)
    result = controller.record_calibration_point()
    assert result.reason is RejectReason.DEGENERATE_GEOMETRY
    assert controller.mapping is None

    async def scenario():
        return controller.handle_pointer(PanelPoint(0, 0), now=0.0)

    assert asyncio.run(scenario()) is None


def test_pointer_ignored_while_pattern_busy(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)
    controller.settings.patterns.circle_duration_ms = 5000

    async def scenario():
        assert controller.start_pattern("circle")
        assert not controller.start_pattern(PatternKind.SQUARE)
        target = controller.handle_pointer(PanelPoint(0, 0), now=0.0)
        controller.cancel_patterns()
        await controller.engine.task
        return target

    assert asyncio.run(scenario()) is None
    assert robot.targets == []


def test_start_pattern_rejects_bad_kinds(controller: MatController) -> None:
    with pytest.raises(ValueError):
        controller.start_pattern("wave")
    with pytest.raises(ValueError):
        controller.start_pattern("spiral")


def test_patrol_blocks_pointer_and_patterns(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)

    async def scenario():
        assert controller.toggle_patrol()
        pointer = controller.handle_pointer(PanelPoint(0, 0), now=0.0)
        pattern = controller.start_pattern("square")
        tick = controller.tick(0.05, forward=1.0)
        assert not controller.toggle_patrol()
        await controller.patrol.task
        return pointer, pattern, tick

    assert asyncio.run(scenario()) == (None, False, None)
    assert controller.patrol.status == "Paused"
    assert any("Paused" in line for line in controller.status_log)


def test_tick_spins_turntable(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)
    controller.turntable.set_speed(30)
    assert controller.toggle_spin()
    assert controller.tick(0.05, forward=1.0).rotate == 30
    assert not controller.toggle_spin()
    assert robot.moves[-1].rotate == 0


def test_status_snapshot(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)
    robot.place(120, 130)
    status = controller.status()
    assert status["connection"] == "connected"
    assert status["robots"][0]["position"] == [120, 130]
    assert status["calibration"]["state"] == "none"
    assert status["calibration"]["bounds"] == {"min_x": 45, "max_x": 455, "min_y": 45, "max_y": 455}
    assert status["pattern"] is None
    assert status["patrol"]["active"] is False


def test_shutdown_stops_programs_and_disconnects(
    controller: MatController, robot: SimulatedRobot, connector: SimulatedConnector
) -> None:
    async def scenario():
        await controller.connect()
        controller.settings.patterns.circle_duration_ms = 5000
        controller.start_pattern("circle")
        await asyncio.sleep(0)
        await controller.shutdown()

    asyncio.run(scenario())
    assert robot.stop_count == 1
    assert connector.disconnected == [robot]
    assert controller.state.connection == "disconnected"
    assert not controller.engine.busy


def test_reconnect_disconnects_dropped_robots(fast_settings: AppSettings) -> None:
    sim = SimulatedRobot("sim-0")
    real = SimulatedRobot("real-0")
    connector = SimulatedConnector({ConnectMode.SIMULATOR: [sim], ConnectMode.REAL: [real]})
    controller = MatController(connector=connector, settings=fast_settings)

    asyncio.run(controller.connect(["simulator", "real"]))
    assert list(controller.sinks) == [sim, real]

    asyncio.run(controller.connect(["simulator"]))
    assert list(controller.sinks) == [sim]
    assert connector.disconnected == [real]
    assert not real.is_connected
    assert sim.is_connected


def test_connect_robot_raises_when_nothing_answers() -> None:
    with pytest.raises(ConnectionFailure, match="No robots found"):
        asyncio.run(connect_robot(SimulatedConnector({}), ConnectMode.SIMULATOR, settle_s=0.0))


def test_spin_cannot_start_during_one_shot(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)
    controller.settings.patterns.circle_duration_ms = 5000
    controller.turntable.set_speed(50)

    async def scenario():
        assert controller.start_pattern("circle")
        refused = controller.toggle_spin()
        ticks = [controller.tick(0.05) for _ in range(3)]
        controller.cancel_patterns()
        await controller.engine.task
        return refused, ticks

    refused, ticks = asyncio.run(scenario())
    assert refused is False
    assert ticks == [None, None, None]
    assert not controller.turntable.spinning
    assert len(robot.moves) == 2
    assert robot.moves[-1].is_stop
    assert all(m.rotate != 50 for m in robot.moves)


def test_spin_off_during_one_shot_leaves_the_stop_to_the_pattern(
    controller: MatController, robot: SimulatedRobot
) -> None:
    connected(controller)
    controller.settings.patterns.circle_duration_ms = 5000
    controller.turntable.set_speed(40)
    assert controller.toggle_spin()

    async def scenario():
        assert controller.start_pattern("circle")
        await asyncio.sleep(0)
        assert controller.tick(0.05) is None
        assert not controller.toggle_spin()
        sent = len(robot.moves)
        controller.cancel_patterns()
        await controller.engine.task
        return sent

    assert asyncio.run(scenario()) == 1
    assert robot.stop_count == 1


def test_ticker_reads_input_every_tick(
    controller: MatController, robot: SimulatedRobot, caplog: pytest.LogCaptureFixture
) -> None:
    connected(controller)
    controller.settings.drive.tick_s = 0.01
    calls = []

    def read_input() -> DriveInput:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("keyboard gone")
        return DriveInput(forward=1.0)

    async def scenario():
        ticker = asyncio.create_task(controller.run_ticker(read_input))
        await asyncio.sleep(0.08)
        ticker.cancel()
        with pytest.raises(asyncio.CancelledError):
            await ticker

    asyncio.run(scenario())
    assert len(calls) >= 3
    assert "Tick failed" in caplog.text
    assert robot.moves
    assert all(m == MoveCommand(80, 0, 200) for m in robot.moves)


def test_pointer_target_follows_same_step_moves(controller: MatController, robot: SimulatedRobot) -> None:
    connected(controller)

    async def scenario():
        controller.handle_pointer(PanelPoint(0, 0), now=0.0)
        controller.tick(0.05, forward=1.0)
        before = [c[0] for c in robot.commands]
        await asyncio.sleep(0)
        return before

    assert asyncio.run(scenario()) == ["move"]
    assert [c[0] for c in robot.commands] == ["move", "target_move"]
