"""
client.py - brick API on top of the simulator link

SimBrickIO carries command lines over pyserial's socket:// URL handler, so a
program written against a serial-attached brick only swaps the port URL.
SimBrick offers the brick calls a control program uses (sensors, motor power,
profile moves, waiting for motors).
"""

import logging
import time
from typing import Optional, Union

import serial

from . import config, protocol
from .command_mapper import PORT_LETTERS

logger = logging.getLogger(__name__)


class BrickError(RuntimeError):
    """The simulator answered a GET with RESP ERROR or an unreadable line."""


def make_nos(ports: str) -> int:
    """
    Motor bitfield for port letters.

    Args:
        ports: Any of 'A', 'B', 'C', 'D', e.g. 'AB'

    Returns:
        Bitfield with A=1, B=2, C=4, D=8
    """
    nos = 0
    for letter in ports.upper():
        if letter not in PORT_LETTERS:
            raise ValueError(f"unknown motor port {letter!r} in {ports!r}")
        nos |= 1 << PORT_LETTERS.index(letter)
    return nos


def _brake_flag(brake: Union[int, str]) -> int:
    if isinstance(brake, str):
        return 1 if brake.strip().lower() == 'brake' else 0
    return 1 if brake else 0


class SimBrickIO:
    """Line transport to the simulator."""

    def __init__(self, host: str = config.CLIENT_HOST, port: int = config.SERVER_PORT,
                 timeout: float = config.CLIENT_TIMEOUT, connection=None):
        """
        Args:
            host: Simulator address
            port: Simulator TCP port
            timeout: Seconds to wait for a reply line
            connection: Already-open serial-like object (write/readline/close)
        """
        self.url = f"socket://{host}:{port}"
        self.timeout = timeout

        self.stats = {
            'tx_lines': 0,
            'rx_lines': 0,
            'rx_timeouts': 0,
        }

        self.serial = connection
        if self.serial is None:
            self._connect()

    def _connect(self):
        try:
            self.serial = serial.serial_for_url(self.url, timeout=self.timeout)
        except serial.SerialException as e:
            raise ConnectionError(f"cannot reach simulator at {self.url}: {e}") from e
        logger.info(f"Connected to simulator at {self.url}")

    def write(self, line: str) -> None:
        logger.debug(f"[TX] {line}")
        self.serial.write((line + protocol.LINE_TERMINATOR).encode(protocol.ENCODING))
        self.stats['tx_lines'] += 1

    def read(self) -> str:
        data = self.serial.readline()
        if not data.endswith(protocol.LINE_TERMINATOR.encode(protocol.ENCODING)):
            self.stats['rx_timeouts'] += 1
            raise TimeoutError(f"no reply from {self.url} within {self.timeout}s")
        line = data.decode(protocol.ENCODING).strip()
        logger.debug(f"[RX] {line}")
        self.stats['rx_lines'] += 1
        return line

    def close(self) -> None:
        """Tell the simulator the session is over and drop the link."""
        if self.serial is None:
            return
        try:
            self.write(f"{protocol.VERB_SET} {protocol.OP_END}")
        except serial.SerialException as e:
            logger.warning(f"Could not send end: {e}")
        finally:
            self.serial.close()
            self.serial = None


class SimBrick:
    """Brick API backed by the simulator."""

    def __init__(self, io: Optional[SimBrickIO] = None, **kwargs):
        self.io = io if io is not None else SimBrickIO(**kwargs)

    def send(self, verb: str, op: str, *args) -> None:
        self.io.write(" ".join([verb, op] + [protocol.format_number(a) for a in args]))

    def query(self, op: str, *args) -> float:
        self.send(protocol.VERB_GET, op, *args)
        try:
            return protocol.parse_response(self.io.read())
        except protocol.ProtocolError as e:
            raise BrickError(f"{op}: {e}") from e

    def close(self) -> None:
        self.io.close()

    # ==================== Sensors ====================

    def input_read_si(self, no: int, mode: int = 0) -> float:
        return self.query(protocol.OP_INPUT_READ_SI, no, mode)

    def touch_pressed(self, no: int) -> int:
        return int(self.input_read_si(no))

    def color_color(self, no: int) -> int:
        return int(self.input_read_si(no))

    def ultrasonic_dist(self, no: int) -> float:
        return self.input_read_si(no)

    # ==================== Motors ====================

    def stop_motor(self, nos: str, brake: Union[int, str] = 0) -> None:
        self.send(protocol.VERB_SET, protocol.OP_MOTOR_STOP, make_nos(nos), _brake_flag(brake))

    def stop_all_motors(self, brake: Union[int, str] = 0) -> None:
        self.stop_motor('ABC', brake)

    def motor_power(self, nos: str, power: float) -> None:
        self.send(protocol.VERB_SET, protocol.OP_MOTOR_POWER, make_nos(nos), power)

    def motor_start(self, nos: str) -> None:
        self.send(protocol.VERB_SET, protocol.OP_MOTOR_START, make_nos(nos))

    def move_motor(self, nos: str, power: float) -> None:
        self.motor_power(nos, power)
        self.motor_start(nos)

    def motor_busy(self, nos: str) -> int:
        return int(self.query(protocol.OP_MOTOR_BUSY, make_nos(nos)))

    def motor_step_speed(self, nos: str, power: float, step1: float, step2: float,
                         step3: float, brake: Union[int, str] = 0) -> None:
        self.send(protocol.VERB_SET, protocol.OP_MOTOR_STEP_SPEED, make_nos(nos),
                  power, step1, step2, step3, _brake_flag(brake))

    def move_motor_angle_rel(self, nos: str, speed: float, angle: float,
                             brake: Union[int, str] = 0) -> None:
        """Turn by `angle` degrees: a third ramping up, a third steady, a third ramping down."""
        if angle < 0:
            speed, angle = -speed, -angle
        if angle > 0:
            third = angle / 3.0
            self.motor_step_speed(nos, speed, third, third, third, brake)

    def move_motor_angle_abs(self, nos: str, speed: float, angle: float,
                             brake: Union[int, str] = 0) -> None:
        """Turn to an absolute motor angle."""
        self.stop_motor(nos, 0)
        delta = angle - self.motor_get_count(nos)
        if delta:
            self.move_motor_angle_rel(nos, abs(speed), delta, brake)

    def motor_clr_count(self, nos: str) -> None:
        self.send(protocol.VERB_SET, protocol.OP_MOTOR_CLR_COUNT, make_nos(nos))

    def reset_motor_angle(self, nos: str) -> None:
        self.motor_clr_count(nos)

    def motor_get_count(self, nos: str) -> float:
        letter = nos.strip().upper()
        if len(letter) != 1 or letter not in PORT_LETTERS:
            raise ValueError(f"motor count needs exactly one port letter, got {nos!r}")
        return self.query(protocol.OP_MOTOR_GET_COUNT, PORT_LETTERS.index(letter))

    def get_motor_angle(self, nos: str) -> float:
        return self.motor_get_count(nos)

    def wait_for_motor(self, nos: str, poll_interval: float = 0.1) -> None:
        """Block until the motors finish their move and the angle settles."""
        while self.motor_busy(nos):
            time.sleep(poll_interval)

        letter = nos.strip().upper()[:1]
        previous = self.motor_get_count(letter)
        while True:
            time.sleep(poll_interval)
            current = self.motor_get_count(letter)
            if current == previous:
                return
            previous = current
