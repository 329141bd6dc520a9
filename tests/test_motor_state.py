"""
Unit tests for the motor state machine

Verifies:
1. Free running and immediate stop
2. Busy definition and command gating
3. Three-phase profile moves (targets, direction, round trip)
4. Travel stops and count clearing
5. Snapshot / restore
"""

import pytest

from bricksim.motor_state import Motor, MotorEvent, MotorSnapshot, MotorState


def run_until_idle(motor, dt=0.01, limit=5000):
    for _ in range(limit):
        motor.update_state(dt)
        if motor.state == MotorState.STOPPED:
            return
    raise AssertionError(f"motor never stopped: {motor!r}")


class TestFreeRunning:
    """Start, run and stop at a fixed power"""

    def test_start_takes_effect_on_next_tick(self, motor):
        """The start tick only changes state; motion begins the tick after"""
        motor.set_power(50)
        motor.start_motor()
        assert motor.state == MotorState.STOPPED

        motor.update_state(0.1)
        assert motor.state == MotorState.RUNNING
        assert motor.angle == 0.0

        motor.update_state(0.1)
        assert motor.angle == pytest.approx(51.0)

    def test_event_is_consumed(self, motor):
        """A latched event is cleared by the update that applies it"""
        motor.start_motor()
        motor.update_state(0.05)
        assert motor.event == MotorEvent.NONE

    def test_negative_power_runs_backwards(self, motor):
        motor.set_power(-25)
        motor.start_motor()
        motor.update_state(0.1)
        motor.update_state(0.1)
        assert motor.angle == pytest.approx(-25.5)

    def test_power_change_while_running(self, motor):
        """Running is not busy, so power can change on the fly"""
        motor.set_power(50)
        motor.start_motor()
        motor.update_state(0.1)
        motor.set_power(100)
        motor.update_state(0.1)
        assert motor.power == 100
        assert motor.angle == pytest.approx(102.0)

    def test_stop_is_immediate(self, motor):
        motor.set_power(80)
        motor.start_motor()
        motor.update_state(0.1)
        motor.stop_motor()
        assert motor.state == MotorState.STOPPED
        assert motor.power == 0.0

    def test_stop_discards_pending_start(self, motor):
        motor.start_motor()
        motor.stop_motor()
        motor.update_state(0.1)
        assert motor.state == MotorState.STOPPED

    def test_negative_dt_rejected(self, motor):
        with pytest.raises(ValueError):
            motor.update_state(-0.1)

    def test_aux_motor_speed(self):
        """Motor C turns at 270 rpm"""
        motor = Motor(max_rpm=270)
        assert motor.max_speed == 1620


class TestBusy:
    """Busy means a profile move is in progress"""

    @pytest.mark.parametrize("state,busy", [
        (MotorState.STOPPED, False),
        (MotorState.RUNNING, False),
        (MotorState.R1, True),
        (MotorState.STEADY, True),
        (MotorState.R2, True),
    ])
    def test_busy_by_state(self, motor, state, busy):
        motor.state = state
        assert motor.is_busy() is busy

    def test_set_power_ignored_during_profile(self, motor):
        motor.start_profile_move(50, 30, 30, 30)
        motor.update_state(0.01)
        assert motor.state == MotorState.R1
        before = motor.power
        motor.set_power(10)
        assert motor.power == before

    def test_start_ignored_during_profile(self, motor):
        motor.start_profile_move(50, 30, 30, 30)
        motor.update_state(0.01)
        motor.start_motor()
        assert motor.event == MotorEvent.NONE


class TestProfileMove:
    """Three-phase ramp profiles"""

    def test_profile_passes_through_all_phases(self, motor):
        motor.start_profile_move(50, 30, 30, 30)
        motor.update_state(0.01)
        assert motor.state == MotorState.R1

        seen = set()
        for _ in range(5000):
            motor.update_state(0.01)
            seen.add(motor.state)
            if motor.state == MotorState.STOPPED:
                break
        assert {MotorState.R1, MotorState.STEADY, MotorState.R2} <= seen

    def test_profile_ends_exactly_on_target(self, motor):
        motor.start_profile_move(50, 30, 30, 30)
        run_until_idle(motor)
        assert motor.angle == pytest.approx(90.0)
        assert motor.power == 0.0

    def test_negative_power_moves_backwards(self, motor):
        motor.start_profile_move(-50, 30, 30, 30)
        run_until_idle(motor)
        assert motor.angle == pytest.approx(-90.0)

    def test_boundaries_are_cumulative(self, motor):
        motor.angle = 100.0
        motor.start_profile_move(-40, 10, 20, 30)
        assert motor.r1_end_angle == 90.0
        assert motor.steady_end_angle == 70.0
        assert motor.r2_end_angle == 40.0

    def test_ramp_slopes(self, motor):
        """max_speed^2 * p^2 / (100^2 * 2 * s)"""
        motor.start_profile_move(50, 30, 30, 60)
        expected_r1 = 1020.0 ** 2 * 50.0 ** 2 / (100.0 ** 2 * 2 * 30)
        assert motor.r1_slope == pytest.approx(expected_r1)
        assert motor.r2_slope == pytest.approx(-expected_r1 / 2)

    def test_steady_power_reached(self, motor):
        motor.start_profile_move(60, 30, 300, 30)
        for _ in range(5000):
            motor.update_state(0.01)
            if motor.state == MotorState.STEADY:
                break
        assert motor.power == pytest.approx(60.0)

    def test_relative_move_round_trip(self, motor):
        """+A then -A returns to the starting angle"""
        motor.angle = 17.0
        motor.start_profile_move(40, 40, 40, 40)
        run_until_idle(motor, dt=0.013)
        assert motor.angle == pytest.approx(137.0)

        motor.start_profile_move(-40, 40, 40, 40)
        run_until_idle(motor, dt=0.013)
        assert motor.angle == pytest.approx(17.0, abs=1e-6)

    def test_profile_without_ramps(self, motor):
        """Zero ramp distances jump straight to full power and stop dead"""
        motor.start_profile_move(50, 0, 45, 0)
        assert motor.power == 50.0
        run_until_idle(motor)
        assert motor.angle == pytest.approx(45.0)

    def test_zero_power_profile_stops(self, motor):
        motor.set_power(30)
        motor.start_motor()
        motor.update_state(0.1)
        motor.start_profile_move(0, 10, 10, 10)
        assert motor.state == MotorState.STOPPED
        assert motor.power == 0.0

    def test_negative_distance_rejected(self, motor):
        with pytest.raises(ValueError):
            motor.start_profile_move(50, -1, 10, 10)

    def test_profile_replaces_free_running(self, motor):
        motor.set_power(50)
        motor.start_motor()
        motor.update_state(0.1)
        motor.start_profile_move(50, 10, 10, 10)
        motor.update_state(0.01)
        assert motor.state == MotorState.R1

    def test_ramp_from_running_speed(self, motor):
        """A moving motor ramps from its current power"""
        motor.set_power(30)
        motor.start_motor()
        motor.update_state(0.1)
        motor.start_profile_move(60, 30, 30, 30)
        assert motor.power == 30.0

    def test_opposite_direction_ramps_from_rest(self, motor):
        motor.set_power(30)
        motor.start_motor()
        motor.update_state(0.1)
        motor.start_profile_move(-60, 30, 30, 30)
        assert motor.power == 0.0


class TestStops:
    """Travel limits and count clearing"""

    def test_running_motor_clamps_at_max_stop(self, motor):
        motor.set_range(-10, 10)
        motor.set_power(100)
        motor.start_motor()
        for _ in range(20):
            motor.update_state(0.05)
        assert motor.angle == 10.0
        assert motor.state == MotorState.RUNNING

    def test_clamped_profile_holds_phase(self, motor):
        """A motor held by a stop does not advance its profile"""
        motor.set_max_stop(5)
        motor.start_profile_move(50, 30, 30, 30)
        for _ in range(200):
            motor.update_state(0.01)
        assert motor.angle == 5.0
        assert motor.state == MotorState.R1
        assert motor.is_busy()

    def test_set_range_centres_angle(self, motor):
        motor.set_range(-300, 100)
        assert motor.angle == -100.0
        assert (motor.min_stop, motor.max_stop) == (-300.0, 100.0)

    def test_set_range_rejects_inverted(self, motor):
        with pytest.raises(ValueError):
            motor.set_range(10, -10)

    def test_min_stop_must_be_below_angle(self, motor):
        motor.angle = 20.0
        motor.set_min_stop(30)
        assert motor.min_stop is None
        motor.set_min_stop(10)
        assert motor.min_stop == 10.0

    def test_max_stop_must_be_above_angle(self, motor):
        motor.angle = 20.0
        motor.set_max_stop(10)
        assert motor.max_stop is None
        motor.set_max_stop(30)
        assert motor.max_stop == 30.0

    def test_clear_stops(self, motor):
        motor.set_range(-5, 5)
        motor.clear_stops()
        assert motor.min_stop is None and motor.max_stop is None

    def test_clear_count_shifts_stops(self, motor):
        motor.set_range(-100, 100)
        motor.angle = 40.0
        motor.clear_count()
        assert motor.angle == 0.0
        assert motor.min_stop == -140.0
        assert motor.max_stop == 60.0

    def test_clear_count_ignored_while_busy(self, motor):
        motor.start_profile_move(50, 30, 30, 30)
        motor.update_state(0.01)
        motor.update_state(0.01)
        angle = motor.angle
        motor.clear_count()
        assert motor.angle == angle


class TestSnapshot:
    """Rollback support"""

    def test_restore_returns_angle_power_state(self, motor):
        motor.set_power(50)
        motor.start_motor()
        motor.update_state(0.1)
        snap = motor.snapshot()
        assert snap == MotorSnapshot(0.0, 50.0, MotorState.RUNNING)

        motor.update_state(0.1)
        motor.restore(snap)
        assert motor.angle == 0.0
        assert motor.state == MotorState.RUNNING

    def test_reset_keeps_stops(self, motor):
        motor.set_range(-10, 10)
        motor.angle = 4.0
        motor.reset()
        assert motor.angle == 0.0
        assert motor.max_stop == 10.0
