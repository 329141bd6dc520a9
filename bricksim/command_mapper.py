"""
Sensor / command mapper

Translates the controller's port numbering into simulated motors and sensors:
- motor bitfields (nos) -> motor indices, including the clutch routing
- sensor port numbers -> vehicle sensor readings
- floor markings -> color codes

Everything here is a pure function of its arguments so the routing rules can
be tested without a running vehicle.
"""

from typing import TYPE_CHECKING, List, Optional, Tuple

from . import config
from .config import DriveConfig
from .maze_map import ZoneType
from .motor_state import Motor

if TYPE_CHECKING:
    from .vehicle import Vehicle

# ============================================================================
# Motor ports
# ============================================================================
MOTOR_A = 0
MOTOR_B = 1
MOTOR_C = 2
MOTOR_D = 3             # hidden clutch motor
MOTOR_COUNT = 4

PORT_LETTERS = 'ABCD'      # bit i of a nos bitfield selects PORT_LETTERS[i]

# ============================================================================
# Sensor ports
# ============================================================================
SENSOR_TOUCH1 = 1
SENSOR_TOUCH2 = 2
SENSOR_COLOR = 3
SENSOR_ULTRASONIC = 4

# ============================================================================
# Color codes
# ============================================================================
COLOR_NONE = 0
COLOR_BLACK = 1
COLOR_BLUE = 2
COLOR_GREEN = 3
COLOR_YELLOW = 4
COLOR_RED = 5
COLOR_WHITE = 6
COLOR_BROWN = 7

COLOR_NAMES = {
    COLOR_NONE: "None",
    COLOR_BLACK: "Black",
    COLOR_BLUE: "Blue",
    COLOR_GREEN: "Green",
    COLOR_YELLOW: "Yellow",
    COLOR_RED: "Red",
    COLOR_WHITE: "White",
    COLOR_BROWN: "Brown",
}

FLOOR_COLORS = {
    ZoneType.STOP: COLOR_RED,
    ZoneType.PICKUP: COLOR_YELLOW,
    ZoneType.DROPOFF: COLOR_GREEN,
}


def color_name(code: int) -> str:
    return COLOR_NAMES.get(code, f"Unknown({code})")


def floor_color(marking: ZoneType) -> int:
    """Color reported for a floor marking; plain floor reads brown."""
    return FLOOR_COLORS.get(marking, COLOR_BROWN)


# ============================================================================
# Motor routing
# ============================================================================

def decode_nos(nos: int, include_hidden: bool = False) -> List[int]:
    """
    Motor ports selected by a nos bitfield.

    Args:
        nos: Bitfield, bit0 = A ... bit3 = D
        include_hidden: Honour bit3 (D); SET commands ignore it

    Returns:
        Port indices in ascending order
    """
    nos = int(nos)
    if nos < 0:
        raise ValueError(f"motor bitfield must be >= 0, got {nos}")
    count = MOTOR_COUNT if include_hidden else MOTOR_D
    return [port for port in range(count) if nos & (1 << port)]


def clutch_direction(drive: DriveConfig, clutch_motor: Motor) -> int:
    """
    Direction multiplier the clutch applies to motor B.

    Near the top of the clutch motor's range B turns against A, near the
    bottom it turns with A, in between the clutch is disengaged.

    Args:
        drive: Drive capabilities (clutch presence and direction)
        clutch_motor: Motor D

    Returns:
        +clutch_dir, -clutch_dir or 0
    """
    if not drive.has_clutch:
        return 1
    low, high = clutch_motor.min_stop, clutch_motor.max_stop
    if low is None or high is None or high <= low:
        return 0
    percent = 100.0 * (clutch_motor.angle - low) / (high - low)
    if percent > 100.0 - config.CLUTCH_ENGAGE_PERCENT:
        return -drive.clutch_dir
    if percent < config.CLUTCH_ENGAGE_PERCENT:
        return drive.clutch_dir
    return 0


def route_port(port: int, drive: DriveConfig, clutch: float = 1.0) -> List[Tuple[int, float]]:
    """
    Motors driven by a user port.

    Args:
        port: MOTOR_A, MOTOR_B or MOTOR_C
        drive: Drive capabilities
        clutch: Current clutch_direction(), applied to B when it follows A

    Returns:
        (motor index, power factor) pairs
    """
    if not drive.has_clutch:
        return [(port, 1.0)]
    if port == MOTOR_A:
        return [(MOTOR_A, 1.0), (MOTOR_B, float(clutch))]
    if port == MOTOR_B:
        return [(MOTOR_D, 1.0)]
    return [(port, 1.0)]


def busy_motors(port: int, drive: DriveConfig) -> Tuple[int, ...]:
    """Motors whose busy state a motorBusy bit reports."""
    if not drive.has_clutch:
        return (port,)
    if port == MOTOR_A:
        return (MOTOR_A, MOTOR_B)
    if port == MOTOR_B:
        return (MOTOR_D,)
    return (port,)


def count_motor(index: int, drive: DriveConfig) -> Optional[int]:
    """Motor read by motorGetCount, or None for an out-of-range index."""
    index = int(index)
    if not 0 <= index < MOTOR_COUNT:
        return None
    if drive.has_clutch and index == MOTOR_B:
        return MOTOR_D
    return index


# ============================================================================
# Sensors
# ============================================================================

def read_input(vehicle: 'Vehicle', port: int, mode: int = 0) -> float:
    """
    Sensor reading for an inputReadSI request.

    Args:
        vehicle: Vehicle to sample
        port: 1 touch1, 2 touch2, 3 color, 4 ultrasonic
        mode: Accepted for compatibility; each sensor has one mode

    Returns:
        Reading as a float, 0 for an unused port
    """
    port = int(port)
    if port == SENSOR_TOUCH1:
        return float(vehicle.get_bump_state(1))
    if port == SENSOR_TOUCH2:
        return float(vehicle.get_bump_state(2))
    if port == SENSOR_COLOR:
        return float(vehicle.get_color())
    if port == SENSOR_ULTRASONIC:
        return float(vehicle.get_ultrasonic())
    return 0.0
