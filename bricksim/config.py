"""
config.py - bricksim settings

Simulator-wide constants grouped by subsystem, plus the two configuration
records (VehicleConfig, DriveConfig) that are built from them.

Units: lengths in inches, angles in degrees, time in seconds.
Body-frame offsets are measured from the vehicle pivot point (the midpoint of
the drive axle): +x toward the front, +y toward the left side.
"""

from dataclasses import dataclass
from typing import Tuple

# ==================== Network ====================
SERVER_HOST = '0.0.0.0'           # listen address
SERVER_PORT = 30000               # TCP port used by the brick client
CLIENT_HOST = 'localhost'         # default address for the client shim
CLIENT_TIMEOUT = 5.0              # seconds to wait for a response line
CONNECTION_SETTLE_DELAY = 1.0     # seconds to wait after accept before ticking

# ==================== Timing ====================
IDLE_TIME_STEP = 0.05             # seconds, dt when the vehicle is idle
MAX_TIME_STEP = 0.1               # seconds, longest dt while moving
MAX_STEP_DISTANCE = 0.25          # inches of travel allowed per tick (bump fidelity)
REALTIME = True                   # pace ticks against the wall clock

# ==================== Motors ====================
DRIVE_MOTOR_MAX_RPM = 170.0       # motors A, B and the clutch motor D
AUX_MOTOR_MAX_RPM = 270.0         # motor C
AUX_MOTOR_STOP_RANGE = 1000.0     # motor C travel limit, +/- degrees
CLUTCH_MOTOR_STOP_RANGE = 1000.0  # motor D travel limit, +/- degrees
CLUTCH_ENGAGE_PERCENT = 25.0      # clutch engages within this % of either stop

# ==================== Vehicle geometry ====================
BODY_FRONT = 2.5                  # pivot -> front bumper
BODY_BACK = -5.5                  # pivot -> rear edge
BODY_LEFT = 3.0                   # pivot -> left side
BODY_RIGHT = -3.0                 # pivot -> right side
WHEELBASE = 5.0                   # effective wheelbase used for turning
WHEEL_CIRCUMFERENCE = 6.926       # drive wheel circumference
DRIVE_GEAR_RATIO = 1.0

TOUCH1_OFFSET = (3.0, 2.0)        # bump sensor 1 (front left)
TOUCH2_OFFSET = (3.0, -2.0)       # bump sensor 2 (front right)
COLOR_OFFSET = (1.5, 0.0)         # color sensor, looking down
ULTRASONIC_OFFSET = (2.5, 0.0)    # ultrasonic sensor
ULTRASONIC_ANGLE = 0.0            # 0 front, 90 left, 180 back, 270 right

START_HEADING = 270.0             # vehicle starts facing south

# ==================== Sensors ====================
BUMP_REACH = 1.0                  # bump probe length toward the rear
ULTRASONIC_SPREAD = 2.0           # degrees between the three sonar rays
ULTRASONIC_MIN = 3.0              # cm
ULTRASONIC_MAX = 255.0            # cm
ULTRASONIC_GRAZING_ANGLE = 45.0   # incidence below which readings stretch
RAY_LENGTH = 1000.0               # inches, ray used for wall distance queries
CM_PER_INCH = 2.54

# ==================== Maze ====================
DEFAULT_MAZE_WIDTH = 8            # cells
DEFAULT_MAZE_HEIGHT = 16          # cells
DEFAULT_CELL_SIZE = 24.0          # inches
STOP_STRIP_WIDTH = 1.5            # red strip centred on a cell edge
ZONE_WIDTH = 7.5                  # pickup / dropoff zone depth

# ==================== Stop sign monitor ====================
STOP_SIGN_MIN_WAIT = 2.0          # seconds the vehicle must rest on a stop strip

# ==================== Logging ====================
LOG_LEVEL = 'INFO'                # DEBUG / INFO / WARNING / ERROR
LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'


@dataclass
class VehicleConfig:
    """Static geometry of the simulated vehicle (body frame, inches)."""
    front: float = BODY_FRONT
    back: float = BODY_BACK
    left: float = BODY_LEFT
    right: float = BODY_RIGHT
    wheelbase: float = WHEELBASE
    wheel_circumference: float = WHEEL_CIRCUMFERENCE
    drive_gear_ratio: float = DRIVE_GEAR_RATIO
    touch1: Tuple[float, float] = TOUCH1_OFFSET
    touch2: Tuple[float, float] = TOUCH2_OFFSET
    color: Tuple[float, float] = COLOR_OFFSET
    ultrasonic: Tuple[float, float] = ULTRASONIC_OFFSET
    usonic_angle: float = ULTRASONIC_ANGLE


@dataclass
class DriveConfig:
    """
    Drive-train capabilities that can change during a session.

    When has_clutch is set, user port B drives the hidden clutch motor D and
    motor B follows motor A through the clutch (see command_mapper).
    """
    has_clutch: bool = False
    clutch_dir: int = 0
