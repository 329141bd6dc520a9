"""
bricksim - hardware-free brick controller simulator

A simulated differential-drive vehicle in a maze, served over the brick
controller's line protocol.
"""

__version__ = "1.2.0"

from .config import DriveConfig, VehicleConfig
from .maze_map import Maze, Side, WallType, ZoneType
from .motor_state import Motor, MotorState
from .vehicle import Pose, Vehicle

__all__ = [
    'DriveConfig',
    'Maze',
    'Motor',
    'MotorState',
    'Pose',
    'Side',
    'Vehicle',
    'VehicleConfig',
    'WallType',
    'ZoneType',
]
