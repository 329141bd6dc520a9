"""
Session and server tests

Dispatch is tested directly through Session.handle_line(); the connection
loop is exercised against a real asyncio server on an ephemeral port.
"""

import asyncio

import pytest

from bricksim.command_mapper import MOTOR_C
from bricksim.motor_state import MotorState
from bricksim.server import SimulatorServer


def tick_until_idle(session, limit=2000):
    for _ in range(limit):
        session.tick()
        if session.handle_line("GET motorBusy 15") == "RESP 0":
            return
    raise AssertionError("motors stayed busy")


class TestDispatch:
    """One command line at a time"""

    def test_read_color(self, session):
        assert session.handle_line("GET inputReadSI 3 0") == "RESP 7.000000"

    def test_read_unused_port(self, session):
        assert session.handle_line("GET inputReadSI 8 0") == "RESP 0.000000"

    def test_set_commands_are_silent(self, session):
        assert session.handle_line("SET motorPower 1 50") is None
        assert session.handle_line("SET motorStart 1") is None
        assert session.handle_line("SET motorStop 1 0") is None

    def test_power_and_start(self, session):
        session.handle_line("SET motorPower 4 50")
        session.handle_line("SET motorStart 4")
        session.tick()
        assert session.vehicle.motors[MOTOR_C].state == MotorState.RUNNING

    def test_step_speed_reaches_target(self, session):
        session.handle_line("SET motorStepSpeed 4 50 30 30 30")
        session.tick()
        assert session.handle_line("GET motorBusy 4") == "RESP 1"
        tick_until_idle(session)
        assert session.handle_line("GET motorGetCount 2") == "RESP 90"

    def test_clear_count(self, session):
        session.vehicle.motors[MOTOR_C].angle = 45.0
        session.handle_line("SET motorClrCount 4")
        assert session.handle_line("GET motorGetCount 2") == "RESP 0"

    def test_motor_range(self, session):
        session.handle_line("SET motorRange 2 -200 100")
        assert session.handle_line("GET motorGetCount 2") == "RESP -50"

    def test_clutch(self, session):
        session.handle_line("SET simulateClutch 1 -1")
        assert session.vehicle.drive.has_clutch
        assert session.vehicle.drive.clutch_dir == -1

    def test_gear_ratio_and_wheelbase(self, session):
        session.handle_line("SET driveGearRatio 3 2")
        session.handle_line("SET effectiveWheelbase 4.25")
        assert session.vehicle.config.drive_gear_ratio == 1.5
        assert session.vehicle.config.wheelbase == 4.25

    def test_end_and_disconnect(self, maze):
        from bricksim.session import Session
        for op in ("end", "disconnect"):
            session = Session(maze, realtime=False, settle_delay=0.0)
            assert session.handle_line(f"SET {op}") is None
            assert session.closed


class TestErrors:
    """Malformed and unknown commands"""

    def test_wrong_argument_count(self, session):
        assert session.handle_line("SET motorPower 1") == "RESP ERROR"
        assert session.stats['errors'] == 1

    def test_session_continues_after_error(self, session):
        session.handle_line("GET inputReadSI")
        assert session.handle_line("GET motorBusy 1") == "RESP 0"
        assert not session.closed

    def test_invalid_values(self, session):
        assert session.handle_line("SET driveGearRatio 1 0") == "RESP ERROR"
        assert session.handle_line("SET motorRange 7 0 10") == "RESP ERROR"
        assert session.handle_line("SET motorStepSpeed 1 50 -5 10 10") == "RESP ERROR"
        assert session.handle_line("GET inputReadSI x 0") == "RESP ERROR"

    def test_non_finite_values_rejected(self, session):
        assert session.handle_line("GET motorGetCount inf") == "RESP ERROR"
        assert session.handle_line("SET motorPower 1 nan") == "RESP ERROR"
        session.handle_line("SET motorStart 1")
        session.tick()
        session.tick()
        assert session.handle_line("GET motorBusy 1") == "RESP 0"
        assert session.vehicle.motors[0].power == 0.0

    def test_unknown_command_silently_dropped(self, session):
        """A client waiting on a reply to an unknown GET would block"""
        assert session.handle_line("GET version") is None
        assert session.handle_line("FOO bar baz") is None
        assert session.stats['dropped'] == 2

    def test_short_lines_dropped(self, session):
        assert session.handle_line("GET") is None
        assert session.handle_line("\n") is None


class TestTick:
    """Physics stepping"""

    def test_idle_tick_is_idle_dt(self, session):
        assert session.tick() == pytest.approx(0.05)

    def test_moving_tick_is_shorter(self, session):
        session.handle_line("SET motorPower 3 50")
        session.handle_line("SET motorStart 3")
        session.tick()
        dt = session.tick()
        assert dt * session.vehicle.running_speed() == pytest.approx(0.25)

    def test_step_stats_follow_ticks(self, session):
        for _ in range(4):
            session.tick()
        steps = session.time.get_stats()
        assert steps.total_steps == session.stats['ticks'] == 4
        assert steps.total_time == pytest.approx(0.2)


@pytest.mark.integration
class TestServer:
    """Connection loop over TCP"""

    def test_request_response(self, maze):
        async def scenario():
            server = SimulatorServer(maze, host="127.0.0.1", port=0, realtime=False, settle_delay=0.0)
            await server.start()
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)

            writer.write(b"GET version\nSET motorPower 4 50\nGET inputReadSI 3 0\n")
            await writer.drain()
            reply = await asyncio.wait_for(reader.readline(), 5)

            writer.write(b"SET end\n")
            await writer.drain()
            rest = await asyncio.wait_for(reader.read(), 5)

            writer.close()
            await server.stop()
            return reply, rest

        reply, rest = asyncio.run(scenario())
        assert reply == b"RESP 7.000000\n"
        assert rest == b""

    def test_client_eof_ends_session(self, maze):
        async def scenario():
            server = SimulatorServer(maze, host="127.0.0.1", port=0, realtime=False, settle_delay=0.0)
            await server.start()
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
            writer.write(b"GET motorBusy 1\n")
            await writer.drain()
            await asyncio.wait_for(reader.readline(), 5)
            assert len(server.sessions) == 1

            writer.close()
            for _ in range(500):
                if not server.sessions:
                    break
                await asyncio.sleep(0.01)
            remaining = len(server.sessions)
            await server.stop()
            return remaining

        assert asyncio.run(scenario()) == 0

    def test_sessions_are_independent(self, maze):
        async def scenario():
            server = SimulatorServer(maze, host="127.0.0.1", port=0, realtime=False, settle_delay=0.0)
            await server.start()
            first = await asyncio.open_connection("127.0.0.1", server.port)
            second = await asyncio.open_connection("127.0.0.1", server.port)

            first[1].write(b"SET motorRange 2 -100 300\nGET motorGetCount 2\n")
            await first[1].drain()
            second[1].write(b"GET motorGetCount 2\n")
            await second[1].drain()

            a = await asyncio.wait_for(first[0].readline(), 5)
            b = await asyncio.wait_for(second[0].readline(), 5)

            for _, writer in (first, second):
                writer.write(b"SET end\n")
                await writer.drain()
            for reader, writer in (first, second):
                await asyncio.wait_for(reader.read(), 5)
                writer.close()
            await server.stop()
            return a, b

        a, b = asyncio.run(scenario())
        assert a == b"RESP 100\n"
        assert b == b"RESP 0\n"

    def test_non_finite_argument_keeps_connection(self, maze):
        async def scenario():
            server = SimulatorServer(maze, host="127.0.0.1", port=0, realtime=False, settle_delay=0.0)
            await server.start()
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)

            writer.write(b"GET motorGetCount inf\nSET motorPower 1 nan\nSET motorStart 1\nGET motorBusy 1\n")
            await writer.drain()
            first = await asyncio.wait_for(reader.readline(), 5)
            second = await asyncio.wait_for(reader.readline(), 5)
            third = await asyncio.wait_for(reader.readline(), 5)

            writer.write(b"SET end\n")
            await writer.drain()
            await asyncio.wait_for(reader.read(), 5)
            writer.close()
            await server.stop()
            return first, second, third

        assert asyncio.run(scenario()) == (b"RESP ERROR\n", b"RESP ERROR\n", b"RESP 0\n")

    def test_stop_ends_connected_sessions(self, maze):
        async def scenario():
            server = SimulatorServer(maze, host="127.0.0.1", port=0, realtime=True, settle_delay=0.0)
            await server.start()
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
            writer.write(b"GET motorBusy 1\n")
            await writer.drain()
            await asyncio.wait_for(reader.readline(), 5)

            await asyncio.wait_for(server.stop(), 5)
            rest = await asyncio.wait_for(reader.read(), 5)
            writer.close()
            return rest

        assert asyncio.run(scenario()) == b""
