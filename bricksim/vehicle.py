"""
Vehicle - differential-drive kinematics in a maze

Manages:
- four motors (A, B drive; C auxiliary; D hidden clutch)
- pose integration from the drive motor speeds
- collision rollback against the maze walls
- bump, color and ultrasonic sensors
- stop-sign compliance bookkeeping

Coordinate System (map frame, inches):
- X: positive to the east
- Y: positive to the north; the maze lies at y < 0
- Heading: degrees counter-clockwise from +X (0 = east, 270 = south)

Motor A is the left wheel and motor B the right wheel.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from . import command_mapper, config
from .collision_models import BodyEdge, CollisionEvent, EdgeCollisionDetector
from .command_mapper import COLOR_RED, MOTOR_A, MOTOR_B, MOTOR_C, MOTOR_COUNT, MOTOR_D
from .config import DriveConfig, VehicleConfig
from .maze_map import Maze
from .motor_state import Motor, MotorState, STATE_NAMES

logger = logging.getLogger(__name__)


@dataclass
class Pose:
    """Vehicle position and orientation in the map frame"""
    x: float = 0.0          # inches
    y: float = 0.0          # inches
    heading: float = 0.0    # degrees


def rotate_point(x: float, y: float, degrees: float) -> Tuple[float, float]:
    """Rotate (x, y) counter-clockwise about the origin."""
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return x * c - y * s, x * s + y * c


def translate_point(x: float, y: float, dx: float, dy: float) -> Tuple[float, float]:
    return x + dx, y + dy


class Vehicle:
    """
    Simulated vehicle bound to one maze.

    Args:
        maze: Maze to drive in (read only)
        vehicle_config: Body and sensor geometry
        drive_config: Clutch capabilities
        x, y, heading: Start pose; defaults to the centre of cell (1, 1) facing south
    """

    def __init__(self, maze: Maze,
                 vehicle_config: Optional[VehicleConfig] = None,
                 drive_config: Optional[DriveConfig] = None,
                 x: Optional[float] = None,
                 y: Optional[float] = None,
                 heading: float = config.START_HEADING):
        self.maze = maze
        self.config = replace(vehicle_config) if vehicle_config else VehicleConfig()
        self.drive = drive_config or DriveConfig()

        self.motors = [
            Motor(config.DRIVE_MOTOR_MAX_RPM),
            Motor(config.DRIVE_MOTOR_MAX_RPM),
            Motor(config.AUX_MOTOR_MAX_RPM),
            Motor(config.DRIVE_MOTOR_MAX_RPM),
        ]
        self.motors[MOTOR_C].set_range(-config.AUX_MOTOR_STOP_RANGE, config.AUX_MOTOR_STOP_RANGE)
        self.motors[MOTOR_D].set_range(-config.CLUTCH_MOTOR_STOP_RANGE, config.CLUTCH_MOTOR_STOP_RANGE)

        half = maze.cell_size / 2.0
        self.x = half if x is None else float(x)
        self.y = -half if y is None else float(y)
        self.heading = float(heading)

        self.sim_time = 0.0
        self.collisions = EdgeCollisionDetector()
        self.warnings: List[str] = []
        self._warning_number = 1

        # stop-sign monitor
        self._previously_red = False
        self._stopping_time = 0.0
        self._stopped_time = 0.0

    @property
    def pose(self) -> Pose:
        return Pose(self.x, self.y, self.heading)

    def set_pose(self, pose: Pose) -> None:
        self.x, self.y, self.heading = pose.x, pose.y, pose.heading

    # ==================== Geometry ====================

    def body_to_map(self, bx: float, by: float) -> Tuple[float, float]:
        """Map coordinates of a body-frame point."""
        rx, ry = rotate_point(bx, by, self.heading)
        return translate_point(rx, ry, self.x, self.y)

    def body_edges(self) -> List[Tuple[BodyEdge, Tuple[float, float, float, float]]]:
        """Envelope edges as (edge, (x1, y1, x2, y2)) in map coordinates."""
        c = self.config
        corners = {
            'front_right': self.body_to_map(c.front, c.right),
            'front_left': self.body_to_map(c.front, c.left),
            'back_right': self.body_to_map(c.back, c.right),
            'back_left': self.body_to_map(c.back, c.left),
        }
        return [
            (BodyEdge.FRONT, corners['front_right'] + corners['front_left']),
            (BodyEdge.BACK, corners['back_right'] + corners['back_left']),
            (BodyEdge.RIGHT, corners['front_right'] + corners['back_right']),
            (BodyEdge.LEFT, corners['front_left'] + corners['back_left']),
        ]

    def colliding_edges(self) -> List[BodyEdge]:
        return [edge for edge, segment in self.body_edges()
                if self.maze.does_line_segment_intersect_wall(*segment)]

    def is_hitting_wall(self) -> bool:
        return bool(self.colliding_edges())

    # ==================== Kinematics ====================

    def drive_speed(self, index: int) -> float:
        """Ground speed of a drive wheel in inches per second (0 when stopped)."""
        motor = self.motors[index]
        if motor.state == MotorState.STOPPED:
            return 0.0
        c = self.config
        return (c.wheel_circumference * c.drive_gear_ratio * motor.max_rpm / 60.0
                * motor.power / 100.0)

    def running_speed(self) -> float:
        return max(abs(self.drive_speed(MOTOR_A)), abs(self.drive_speed(MOTOR_B)))

    def _pivot_degrees(self, distance: float) -> float:
        return -360.0 * distance / (self.config.wheelbase * math.pi)

    def _rotate_about(self, cx: float, cy: float, degrees: float) -> None:
        px, py = rotate_point(self.x - cx, self.y - cy, degrees)
        self.x, self.y = translate_point(px, py, cx, cy)
        self.heading += degrees

    def _arc(self, ips_a: float, ips_b: float, dt: float) -> None:
        w = self.config.wheelbase
        rad_b = ips_b * w / (ips_a - ips_b)
        rad_avg = rad_b + w / 2.0
        ips_avg = (ips_a + ips_b) / 2.0
        rotation = -360.0 * ips_avg * dt / (2.0 * math.pi * rad_avg)

        # centre of rotation lies on the right-hand normal
        normal = math.radians(self.heading - 90.0)
        cx = self.x + math.cos(normal) * rad_avg
        cy = self.y + math.sin(normal) * rad_avg
        self._rotate_about(cx, cy, rotation)

    def update_position(self, dt: float) -> None:
        """Integrate the pose over dt seconds from the current drive speeds."""
        ips_a = self.drive_speed(MOTOR_A)
        ips_b = self.drive_speed(MOTOR_B)

        if ips_a == 0.0 and ips_b == 0.0:
            return
        if ips_a == ips_b:
            rad = math.radians(self.heading)
            self.x += math.cos(rad) * ips_a * dt
            self.y += math.sin(rad) * ips_a * dt
        elif ips_a == -ips_b:
            self.heading += self._pivot_degrees(ips_a * dt)
        elif ips_a * ips_b >= 0:
            self._arc(ips_a, ips_b, dt)
        else:
            # Arc about wheel B, then pivot away B's remaining motion.
            self._arc(ips_a + ips_b, 0.0, dt)
            self.heading += self._pivot_degrees(-ips_b * dt)

    def update_state(self, dt: float) -> None:
        """
        One physics tick.

        Motors and pose advance together; if the new pose puts any envelope
        edge through a wall, the whole tick is undone.
        """
        self._monitor_stop_sign(dt)

        snapshots = [motor.snapshot() for motor in self.motors]
        pose = self.pose

        for motor in self.motors:
            motor.update_state(dt)
        self.update_position(dt)

        edges = self.colliding_edges()
        if edges:
            for motor, snapshot in zip(self.motors, snapshots):
                motor.restore(snapshot)
            self.set_pose(pose)

        self.sim_time += dt
        event = self.collisions.update(
            bool(edges),
            CollisionEvent(self.sim_time, self.x, self.y, self.heading, edges),
        )
        if event is not None:
            if event.started:
                self._warn("the vehicle has collided with a wall. Position may no longer be accurate.")
            else:
                logger.info(f"Collision cleared at t={event.time_s:.2f}s")

    # ==================== Sensors ====================

    def get_bump_state(self, sensor: int) -> int:
        """1 when the probe behind bump sensor 1 or 2 touches a wall, else 0."""
        if sensor == 1:
            offset = self.config.touch1
        elif sensor == 2:
            offset = self.config.touch2
        else:
            raise ValueError(f"no bump sensor {sensor}")
        x1, y1 = self.body_to_map(*offset)
        rad = math.radians(self.heading - 180.0)
        x2 = x1 + math.cos(rad) * config.BUMP_REACH
        y2 = y1 + math.sin(rad) * config.BUMP_REACH
        return int(self.maze.does_line_segment_intersect_wall(x1, y1, x2, y2))

    def get_color(self) -> int:
        x, y = self.body_to_map(*self.config.color)
        return command_mapper.floor_color(self.maze.floor_marking(x, y))

    def get_ultrasonic(self) -> float:
        """Distance in cm seen by the ultrasonic sensor, clamped to [3, 255]."""
        x, y = self.body_to_map(*self.config.ultrasonic)
        direction = self.config.usonic_angle + self.heading
        spread = config.ULTRASONIC_SPREAD

        readings = []
        for offset in (spread, 0.0, -spread):
            distance, incidence = self.maze.get_closest_wall_distance(x, y, direction + offset)
            if incidence < config.ULTRASONIC_GRAZING_ANGLE:
                distance = distance ** (1.0 + (config.ULTRASONIC_GRAZING_ANGLE - incidence) / 180.0)
            readings.append(distance)

        average = sum(readings) / len(readings)
        return min(config.ULTRASONIC_MAX, max(config.ULTRASONIC_MIN, average))

    # ==================== Motor ports ====================

    def _routes(self, nos: int) -> List[Tuple[Motor, float]]:
        clutch = command_mapper.clutch_direction(self.drive, self.motors[MOTOR_D])
        routes = []
        for port in command_mapper.decode_nos(nos):
            for index, factor in command_mapper.route_port(port, self.drive, clutch):
                routes.append((self.motors[index], factor))
        return routes

    def stop_motors(self, nos: int) -> None:
        for motor, _ in self._routes(nos):
            motor.stop_motor()

    def set_motor_power(self, nos: int, power: float) -> None:
        for motor, factor in self._routes(nos):
            motor.set_power(power * factor)

    def start_motors(self, nos: int) -> None:
        for motor, _ in self._routes(nos):
            motor.start_motor()

    def motor_speed_step(self, nos: int, power: float, s1: float, s2: float, s3: float) -> None:
        for motor, factor in self._routes(nos):
            motor.start_profile_move(power * factor, s1, s2, s3)

    def motor_clear_count(self, nos: int) -> None:
        for motor, _ in self._routes(nos):
            motor.clear_count()

    def motor_busy(self, nos: int) -> int:
        for port in command_mapper.decode_nos(nos, include_hidden=True):
            for index in command_mapper.busy_motors(port, self.drive):
                if self.motors[index].is_busy():
                    return 1
        return 0

    def _count_motor(self, index: int) -> Optional[Motor]:
        motor_index = command_mapper.count_motor(index, self.drive)
        return None if motor_index is None else self.motors[motor_index]

    def get_motor_count(self, index: int) -> float:
        motor = self._count_motor(index)
        return 0.0 if motor is None else motor.angle

    def get_motor_power(self, index: int) -> float:
        motor = self._count_motor(index)
        return 0.0 if motor is None else motor.power

    def get_motor_state(self, index: int) -> MotorState:
        motor = self._count_motor(index)
        return MotorState.STOPPED if motor is None else motor.state

    def set_motor_range(self, index: int, min_stop: float, max_stop: float) -> None:
        index = int(index)
        if not 0 <= index < MOTOR_COUNT:
            raise IndexError(f"no motor {index}")
        self.motors[index].set_range(min_stop, max_stop)

    # ==================== Drive configuration ====================

    def set_clutch(self, has_clutch: bool, clutch_dir: int) -> None:
        self.drive = DriveConfig(bool(has_clutch), int(clutch_dir))

    def set_gear_ratio(self, numerator: float, denominator: float) -> None:
        if denominator == 0:
            raise ValueError("gear ratio denominator must not be zero")
        self.config.drive_gear_ratio = numerator / denominator

    def set_wheelbase(self, wheelbase: float) -> None:
        if wheelbase <= 0:
            raise ValueError(f"wheelbase must be positive, got {wheelbase}")
        self.config.wheelbase = float(wheelbase)

    # ==================== Bookkeeping ====================

    def _warn(self, message: str) -> None:
        text = f"{self._warning_number:05d} - WARNING {message}"
        self._warning_number += 1
        self.warnings.append(text)
        logger.warning(text)

    def _monitor_stop_sign(self, dt: float) -> None:
        if self.get_color() == COLOR_RED:
            self._previously_red = True
            drive_stopped = (self.motors[MOTOR_A].state == MotorState.STOPPED
                             and self.motors[MOTOR_B].state == MotorState.STOPPED)
            if drive_stopped:
                self._stopping_time += dt
            else:
                self._stopped_time = max(self._stopped_time, self._stopping_time)
                self._stopping_time = 0.0
            return

        if self._previously_red and self._stopped_time < config.STOP_SIGN_MIN_WAIT:
            self._warn("the vehicle may have failed to stop at stop sign.")
        self._previously_red = False
        self._stopping_time = 0.0
        self._stopped_time = 0.0

    def status_lines(self) -> List[str]:
        lines = []
        for letter, motor in zip(command_mapper.PORT_LETTERS, self.motors):
            lines.append(f"Motor {letter}: power {motor.power:6.1f}  angle {motor.angle:8.1f}  "
                         f"{STATE_NAMES[motor.state]}")
        lines.append(f"Touch 1: {self.get_bump_state(1)}  Touch 2: {self.get_bump_state(2)}")
        lines.append(f"Color: {command_mapper.color_name(self.get_color())}")
        lines.append(f"Ultrasonic: {self.get_ultrasonic():.1f} cm")
        lines.append(f"Pose: ({self.x:.2f}, {self.y:.2f}) heading {self.heading:.1f}")
        return lines
