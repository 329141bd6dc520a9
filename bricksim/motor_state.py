"""
Motor state machine

One simulated brick motor. A motor is either idle, free-running at a fixed
power, or executing a three-phase profile move:

    R1      ramp from the current power to the target power over s1 degrees
    STEADY  hold the target power for s2 degrees
    R2      ramp down to zero over s3 degrees, ending exactly on the target

Commands only latch an event; the event is consumed by the next
update_state() call, which also integrates the motion for that tick.
Angles are in degrees, power in percent of full speed (-100..100).
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from . import config


class MotorState(IntEnum):
    STOPPED = 0
    RUNNING = 1
    R1 = 2
    STEADY = 3
    R2 = 4


class MotorEvent(IntEnum):
    NONE = 0
    START_RUNNING = 1
    START_RAMP = 2


STATE_NAMES = {
    MotorState.STOPPED: 'Stopped',
    MotorState.RUNNING: 'Running',
    MotorState.R1: 'Ramp up',
    MotorState.STEADY: 'Steady',
    MotorState.R2: 'Ramp down',
}


@dataclass(frozen=True)
class MotorSnapshot:
    """What a rolled-back tick restores."""
    angle: float
    power: float
    state: MotorState


class Motor:
    """
    Simulated motor with optional travel stops.

    Attributes:
        angle: Accumulated rotation in degrees
        power: Current power in percent
        state: MotorState
        min_stop, max_stop: Travel limits in degrees, or None
    """

    def __init__(self, max_rpm: float = config.DRIVE_MOTOR_MAX_RPM):
        self.max_rpm = float(max_rpm)
        self.min_stop: Optional[float] = None
        self.max_stop: Optional[float] = None
        self.reset()

        self._handlers = {
            MotorState.STOPPED: self._update_stopped,
            MotorState.RUNNING: self._update_running,
            MotorState.R1: self._update_r1,
            MotorState.STEADY: self._update_steady,
            MotorState.R2: self._update_r2,
        }

    def reset(self) -> None:
        """Back to rest at angle 0; travel stops are kept."""
        self.state = MotorState.STOPPED
        self.event = MotorEvent.NONE
        self.power = 0.0
        self.angle = 0.0

        self.steady_power = 0.0
        self.r1_slope = 0.0
        self.r2_slope = 0.0
        self.r1_end_angle = 0.0
        self.steady_end_angle = 0.0
        self.r2_end_angle = 0.0

    @property
    def max_speed(self) -> float:
        """Degrees per second at 100% power."""
        return self.max_rpm * 6.0

    def _velocity(self, power: float) -> float:
        return self.max_speed * power / 100.0

    def is_busy(self) -> bool:
        """True while a profile move is in progress."""
        return self.state in (MotorState.R1, MotorState.STEADY, MotorState.R2)

    # ==================== Commands ====================

    def set_power(self, power: float) -> None:
        """Set free-running power. Ignored during a profile move."""
        if self.is_busy():
            return
        self.power = float(power)

    def start_motor(self) -> None:
        """Latch a start; the motor runs at its set power from the next tick."""
        if self.is_busy():
            return
        self.event = MotorEvent.START_RUNNING

    def stop_motor(self) -> None:
        """Immediate stop, discarding any pending event or profile."""
        self.state = MotorState.STOPPED
        self.event = MotorEvent.NONE
        self.power = 0.0

    def start_profile_move(self, power: float, s1: float, s2: float, s3: float) -> None:
        """
        Latch a three-phase profile move.

        The motor ends s1 + s2 + s3 degrees away from its current angle, in
        the direction of `power`. Accepted in any state: a profile replaces
        whatever the motor was doing.

        Args:
            power: Target power for the STEADY phase
            s1: Ramp-up distance in degrees
            s2: Steady distance in degrees
            s3: Ramp-down distance in degrees

        Raises:
            ValueError: A negative distance
        """
        if s1 < 0 or s2 < 0 or s3 < 0:
            raise ValueError(f"profile distances must be >= 0, got {s1}, {s2}, {s3}")

        power = float(power)
        if power == 0.0:
            self.stop_motor()
            return

        direction = 1.0 if power > 0 else -1.0
        start_power = self.power if self.state != MotorState.STOPPED else 0.0
        if start_power * direction < 0:
            start_power = 0.0
        self.power = start_power

        scale = self.max_speed ** 2 / 100.0 ** 2
        self.steady_power = power
        if s1 > 0:
            self.r1_slope = direction * scale * (power ** 2 - start_power ** 2) / (2.0 * s1)
        else:
            self.r1_slope = 0.0
            self.power = power
        if s3 > 0:
            self.r2_slope = -direction * scale * power ** 2 / (2.0 * s3)
        else:
            self.r2_slope = 0.0

        self.r1_end_angle = self.angle + direction * s1
        self.steady_end_angle = self.r1_end_angle + direction * s2
        self.r2_end_angle = self.steady_end_angle + direction * s3
        self.event = MotorEvent.START_RAMP

    def clear_count(self) -> None:
        """Re-zero the angle, shifting the stops with it. Ignored while busy."""
        if self.is_busy():
            return
        if self.min_stop is not None:
            self.min_stop -= self.angle
        if self.max_stop is not None:
            self.max_stop -= self.angle
        self.angle = 0.0

    def set_min_stop(self, stop: float) -> None:
        """Ignored when the motor is already below the requested stop."""
        if stop > self.angle:
            return
        self.min_stop = float(stop)

    def set_max_stop(self, stop: float) -> None:
        """Ignored when the motor is already above the requested stop."""
        if stop < self.angle:
            return
        self.max_stop = float(stop)

    def clear_stops(self) -> None:
        self.min_stop = None
        self.max_stop = None

    def set_range(self, min_stop: float, max_stop: float) -> None:
        """Install both stops and centre the motor between them."""
        if min_stop > max_stop:
            raise ValueError(f"min stop {min_stop} is above max stop {max_stop}")
        self.min_stop = float(min_stop)
        self.max_stop = float(max_stop)
        self.angle = (self.min_stop + self.max_stop) / 2.0

    def snapshot(self) -> MotorSnapshot:
        return MotorSnapshot(self.angle, self.power, self.state)

    def restore(self, snapshot: MotorSnapshot) -> None:
        self.angle = snapshot.angle
        self.power = snapshot.power
        self.state = snapshot.state

    # ==================== Tick ====================

    def update_state(self, dt: float) -> None:
        """Advance the motor by dt seconds, then apply the pending event."""
        if dt < 0:
            raise ValueError(f"dt must be >= 0, got {dt}")

        previous = self.state
        next_state = self._handlers[previous](dt)

        if self.event == MotorEvent.START_RAMP:
            next_state = MotorState.R1
        elif self.event == MotorEvent.START_RUNNING and previous == MotorState.STOPPED:
            next_state = MotorState.RUNNING

        self.state = next_state
        self.event = MotorEvent.NONE

    def _clamp_to_stops(self) -> bool:
        if self.min_stop is not None and self.angle < self.min_stop:
            self.angle = self.min_stop
            return True
        if self.max_stop is not None and self.angle > self.max_stop:
            self.angle = self.max_stop
            return True
        return False

    def _passed(self, boundary: float) -> bool:
        if self.steady_power > 0:
            return self.angle >= boundary
        return self.angle <= boundary

    def _update_stopped(self, dt: float) -> MotorState:
        return MotorState.STOPPED

    def _update_running(self, dt: float) -> MotorState:
        self.angle += self._velocity(self.power) * dt
        self._clamp_to_stops()
        return MotorState.RUNNING

    def _update_r1(self, dt: float) -> MotorState:
        slope = self.r1_slope
        self.angle += self._velocity(self.power) * dt + 0.5 * slope * dt * dt
        if self._clamp_to_stops():
            return MotorState.R1

        self.power += 100.0 * slope * dt / self.max_speed
        if slope and (self.power - self.steady_power) * slope > 0:
            self.power = self.steady_power

        if self._passed(self.r1_end_angle):
            return self._enter_steady()
        return MotorState.R1

    def _enter_steady(self) -> MotorState:
        # Re-run the time spent past the R1 boundary at steady power.
        overshoot = self.angle - self.r1_end_angle
        crossing_speed = self._velocity((self.power + self.steady_power) / 2.0)
        elapsed = overshoot / crossing_speed if crossing_speed else 0.0
        self.power = self.steady_power
        self.angle = self.r1_end_angle + self._velocity(self.steady_power) * elapsed
        return self._leave_steady_if_done()

    def _update_steady(self, dt: float) -> MotorState:
        self.angle += self._velocity(self.steady_power) * dt
        if self._clamp_to_stops():
            return MotorState.STEADY
        return self._leave_steady_if_done()

    def _leave_steady_if_done(self) -> MotorState:
        if not self._passed(self.steady_end_angle):
            return MotorState.STEADY
        if self.r2_slope == 0.0:
            return self._finish()

        elapsed = (self.angle - self.steady_end_angle) / self._velocity(self.steady_power)
        slope = self.r2_slope
        self.angle = (self.steady_end_angle + self._velocity(self.steady_power) * elapsed
                      + 0.5 * slope * elapsed * elapsed)
        self.power = self.steady_power + 100.0 * slope * elapsed / self.max_speed
        return self._finish_if_done()

    def _update_r2(self, dt: float) -> MotorState:
        slope = self.r2_slope
        self.angle += self._velocity(self.power) * dt + 0.5 * slope * dt * dt
        if self._clamp_to_stops():
            return MotorState.R2
        self.power += 100.0 * slope * dt / self.max_speed
        return self._finish_if_done()

    def _finish_if_done(self) -> MotorState:
        if self._passed(self.r2_end_angle) or self.power * self.steady_power <= 0:
            return self._finish()
        return MotorState.R2

    def _finish(self) -> MotorState:
        self.power = 0.0
        self.angle = self.r2_end_angle
        return MotorState.STOPPED

    def __repr__(self) -> str:
        return (f"Motor(state={STATE_NAMES[self.state]}, angle={self.angle:.1f}, "
                f"power={self.power:.1f})")
