"""
Session - one client connection driving one simulated vehicle

Each loop iteration is exactly one physics step followed by at most one
command, so command handling never interleaves with a tick:

    sleep dt -> tick -> take one queued line -> dispatch -> reply
"""

import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple

from . import command_mapper, config, protocol
from .config import DriveConfig, VehicleConfig
from .maze_map import Maze
from .protocol import Command, ProtocolError
from .time_controller import TimeController
from .vehicle import Vehicle

logger = logging.getLogger(__name__)


class Session:
    """
    Owns one Vehicle bound to a shared, read-only Maze.

    Args:
        maze: Maze shared by all sessions
        reader, writer: asyncio stream pair; only needed for run()
        vehicle_config: Geometry for the new vehicle
        realtime: Pace ticks against the wall clock; False runs as fast as possible
        settle_delay: Seconds to wait before the first tick
    """

    def __init__(self, maze: Maze,
                 reader: Optional[asyncio.StreamReader] = None,
                 writer: Optional[asyncio.StreamWriter] = None,
                 vehicle_config: Optional[VehicleConfig] = None,
                 realtime: bool = config.REALTIME,
                 settle_delay: float = config.CONNECTION_SETTLE_DELAY):
        self.maze = maze
        self.reader = reader
        self.writer = writer
        self.realtime = realtime
        self.settle_delay = settle_delay

        self.vehicle = Vehicle(maze, vehicle_config, DriveConfig())
        self.time = TimeController()
        self.closed = False
        self.peer = writer.get_extra_info('peername') if writer is not None else None

        self.stats = {
            'ticks': 0,
            'commands': 0,
            'errors': 0,
            'dropped': 0,
            'responses': 0,
        }

        self._handlers: Dict[Tuple[str, str], Callable[[Command], Optional[str]]] = {
            (protocol.VERB_GET, protocol.OP_INPUT_READ_SI): self._input_read_si,
            (protocol.VERB_GET, protocol.OP_MOTOR_BUSY): self._motor_busy,
            (protocol.VERB_GET, protocol.OP_MOTOR_GET_COUNT): self._motor_get_count,
            (protocol.VERB_SET, protocol.OP_MOTOR_STOP): self._motor_stop,
            (protocol.VERB_SET, protocol.OP_MOTOR_POWER): self._motor_power,
            (protocol.VERB_SET, protocol.OP_MOTOR_START): self._motor_start,
            (protocol.VERB_SET, protocol.OP_MOTOR_STEP_SPEED): self._motor_step_speed,
            (protocol.VERB_SET, protocol.OP_MOTOR_CLR_COUNT): self._motor_clr_count,
            (protocol.VERB_SET, protocol.OP_SIMULATE_CLUTCH): self._simulate_clutch,
            (protocol.VERB_SET, protocol.OP_MOTOR_RANGE): self._motor_range,
            (protocol.VERB_SET, protocol.OP_DRIVE_GEAR_RATIO): self._drive_gear_ratio,
            (protocol.VERB_SET, protocol.OP_EFFECTIVE_WHEELBASE): self._effective_wheelbase,
            (protocol.VERB_SET, protocol.OP_END): self._end,
            (protocol.VERB_SET, protocol.OP_DISCONNECT): self._end,
        }

    # ==================== Physics ====================

    def next_dt(self) -> float:
        return self.time.next_dt(self.vehicle.running_speed())

    def tick(self) -> float:
        """Advance the vehicle by one adaptive step; returns the dt taken."""
        dt = self.time.step(self.vehicle.running_speed())
        self.vehicle.update_state(dt)
        self.stats['ticks'] += 1
        return dt

    # ==================== Dispatch ====================

    def handle_line(self, line: str) -> Optional[str]:
        """
        Execute one command line.

        Returns:
            The response line (without terminator), or None when nothing is
            sent back (successful SET, dropped line)
        """
        try:
            command = protocol.parse_line(line)
        except ProtocolError as e:
            self.stats['errors'] += 1
            logger.debug(f"Bad command {line.strip()!r}: {e}")
            return protocol.encode_error()

        if command is None:
            if line.strip():
                self.stats['dropped'] += 1
                logger.debug(f"Dropped unrecognised line {line.strip()!r}")
            return None

        self.stats['commands'] += 1
        try:
            response = self._handlers[command.key](command)
        except (ValueError, IndexError) as e:
            self.stats['errors'] += 1
            logger.debug(f"Rejected {command}: {e}")
            return protocol.encode_error()

        if logger.isEnabledFor(logging.DEBUG):
            for status in self.vehicle.status_lines():
                logger.debug(status)
        return response

    def _input_read_si(self, command: Command) -> str:
        port, mode = command.args
        return protocol.encode_float(command_mapper.read_input(self.vehicle, int(port), int(mode)))

    def _motor_busy(self, command: Command) -> str:
        return protocol.encode_int(self.vehicle.motor_busy(int(command.args[0])))

    def _motor_get_count(self, command: Command) -> str:
        return protocol.encode_int(self.vehicle.get_motor_count(int(command.args[0])))

    def _motor_stop(self, command: Command) -> None:
        self.vehicle.stop_motors(int(command.args[0]))

    def _motor_power(self, command: Command) -> None:
        nos, power = command.args
        self.vehicle.set_motor_power(int(nos), power)

    def _motor_start(self, command: Command) -> None:
        self.vehicle.start_motors(int(command.args[0]))

    def _motor_step_speed(self, command: Command) -> None:
        nos, power, s1, s2, s3 = command.args[:5]
        self.vehicle.motor_speed_step(int(nos), power, s1, s2, s3)

    def _motor_clr_count(self, command: Command) -> None:
        self.vehicle.motor_clear_count(int(command.args[0]))

    def _simulate_clutch(self, command: Command) -> None:
        has_clutch, direction = command.args
        self.vehicle.set_clutch(has_clutch != 0, int(direction))
        logger.info(f"Clutch {'enabled' if has_clutch else 'disabled'}, direction {int(direction)}")

    def _motor_range(self, command: Command) -> None:
        index, min_stop, max_stop = command.args
        self.vehicle.set_motor_range(int(index), min_stop, max_stop)

    def _drive_gear_ratio(self, command: Command) -> None:
        self.vehicle.set_gear_ratio(*command.args)

    def _effective_wheelbase(self, command: Command) -> None:
        self.vehicle.set_wheelbase(command.args[0])

    def _end(self, command: Command) -> None:
        logger.info(f"Client {self.peer} sent {command.op}")
        self.closed = command.terminates

    # ==================== Connection loop ====================

    def close(self) -> None:
        """Ask run() to finish after the current tick."""
        self.closed = True

    async def _read_lines(self, lines: asyncio.Queue) -> None:
        try:
            while True:
                data = await self.reader.readline()
                if not data:
                    break
                lines.put_nowait(data.decode(protocol.ENCODING, errors='replace'))
        except (ConnectionError, asyncio.IncompleteReadError, ValueError) as e:
            logger.warning(f"Read from {self.peer} failed: {e}")
        finally:
            lines.put_nowait(None)

    async def _send(self, response: str) -> None:
        self.writer.write((response + protocol.LINE_TERMINATOR).encode(protocol.ENCODING))
        await self.writer.drain()
        self.stats['responses'] += 1

    async def run(self) -> None:
        """Serve the connection until end/disconnect, EOF or a connection error."""
        logger.info(f"Session started for {self.peer}")
        lines: asyncio.Queue = asyncio.Queue()
        reader_task = asyncio.ensure_future(self._read_lines(lines))
        try:
            if self.settle_delay > 0:
                await asyncio.sleep(self.settle_delay)

            while not self.closed:
                await asyncio.sleep(self.next_dt() if self.realtime else 0)
                self.tick()

                try:
                    line = lines.get_nowait()
                except asyncio.QueueEmpty:
                    continue
                if line is None:
                    logger.info(f"Client {self.peer} closed the connection")
                    break

                response = self.handle_line(line)
                if response is not None:
                    await self._send(response)
        except ConnectionError as e:
            logger.warning(f"Connection to {self.peer} lost: {e}")
        finally:
            self.closed = True
            reader_task.cancel()
            await asyncio.gather(reader_task, return_exceptions=True)
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except ConnectionError:
                pass
            steps = self.time.get_stats()
            logger.info(f"Session ended for {self.peer} after {steps.total_steps} ticks, "
                        f"{steps.total_time:.1f}s simulated (dt {steps.min_dt:.3f}-{steps.max_dt:.3f}s, "
                        f"avg {steps.avg_dt:.3f}s), {self.stats['commands']} commands")
