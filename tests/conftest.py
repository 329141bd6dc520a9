"""
Pytest configuration for the simulator tests

Provides mazes, vehicles and sessions shared across the test modules, and
registers the suite's markers.
"""

import pytest

from bricksim.maze_map import Maze
from bricksim.motor_state import Motor
from bricksim.session import Session
from bricksim.vehicle import Vehicle


class SimulationConfig:
    """Parameters used throughout the tests"""

    CELL_SIZE = 24.0          # inches
    SMALL_MAZE = (3, 3)       # height, width
    TIME_STEP = 0.02          # seconds
    DRIVE_POWER = 50.0        # percent

    # 6.926 in wheel * 170 rpm / 60 * 50%
    DRIVE_SPEED = 6.926 * 170.0 / 60.0 * 0.5


@pytest.fixture
def simulation_config():
    """Provide default simulation configuration"""
    return SimulationConfig()


@pytest.fixture
def maze():
    """3x3 maze of 24 in cells with only the border walls"""
    height, width = SimulationConfig.SMALL_MAZE
    return Maze.bordered(height, width, SimulationConfig.CELL_SIZE)


@pytest.fixture
def vehicle(maze):
    """Vehicle at the centre of cell (1, 1) facing south"""
    return Vehicle(maze)


@pytest.fixture
def motor():
    return Motor()


@pytest.fixture
def session(maze):
    """Session with no connection, for dispatch tests"""
    return Session(maze, realtime=False, settle_delay=0.0)


def run_ticks(vehicle, count, dt=SimulationConfig.TIME_STEP):
    for _ in range(count):
        vehicle.update_state(dt)


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "physics: mark test as testing motor or vehicle physics"
    )
    config.addinivalue_line(
        "markers", "geometry: mark test as testing maze geometry"
    )
    config.addinivalue_line(
        "markers", "protocol: mark test as testing the command protocol"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as using a live TCP server"
    )


def pytest_collection_modifyitems(config, items):
    """Add default markers to test collection"""
    for item in items:
        if "test_motor_state" in item.nodeid or "test_vehicle" in item.nodeid:
            item.add_marker(pytest.mark.physics)
        if "test_maze_map" in item.nodeid:
            item.add_marker(pytest.mark.geometry)
        if any(name in item.nodeid for name in ("test_protocol", "test_session", "test_client")):
            item.add_marker(pytest.mark.protocol)
