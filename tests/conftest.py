"""Shared fixtures: recording simulated robots and fast settings."""

from __future__ import annotations

import pytest

from matpilot.config import AppSettings, PatrolSettings
from matpilot.device import ConnectMode, SimulatedConnector, SimulatedRobot, SinkGroup


@pytest.fixture()
def robot() -> SimulatedRobot:
    return SimulatedRobot("sim-0", arrival_delay_s=0.01)


@pytest.fixture()
def connector(robot: SimulatedRobot) -> SimulatedConnector:
    return SimulatedConnector({ConnectMode.SIMULATOR: [robot]})


@pytest.fixture()
def sinks(connector: SimulatedConnector, robot: SimulatedRobot) -> SinkGroup:
    return SinkGroup(connector, [robot])


@pytest.fixture()
def fast_settings() -> AppSettings:
    settings = AppSettings()
    settings.connection.settle_s = 0.0
    settings.patterns.circle_duration_ms = 50
    settings.patterns.square_side_ms = 40
    settings.patterns.square_turn_ms = 20
    settings.patrol = PatrolSettings(dwell_s=0.01)
    return settings
