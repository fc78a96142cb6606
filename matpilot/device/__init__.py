"""Device abstractions used by the matpilot toolkit."""

from .base import (
    SPEED_LIMIT,
    STOP,
    ConnectionFailure,
    ConnectMode,
    Connector,
    MoveCommand,
    MoveType,
    RobotCommandSink,
    TargetMoveResult,
    connect_robot,
    select_on_mat,
)
from .group import SinkGroup
from .mock import SimulatedConnector, SimulatedRobot

__all__ = [
    "SPEED_LIMIT",
    "STOP",
    "ConnectionFailure",
    "ConnectMode",
    "Connector",
    "MoveCommand",
    "MoveType",
    "RobotCommandSink",
    "TargetMoveResult",
    "connect_robot",
    "select_on_mat",
    "SinkGroup",
    "SimulatedConnector",
    "SimulatedRobot",
]
