"""
Time controller - adaptive simulation step

The step shrinks as the vehicle speeds up so that no tick moves it more
than MAX_STEP_DISTANCE inches, up to MAX_TIME_STEP; an idle vehicle ticks
at IDLE_TIME_STEP.
"""

from dataclasses import dataclass

from . import config


@dataclass
class TimeStats:
    """Time-step statistics"""
    total_steps: int
    total_time: float
    min_dt: float
    max_dt: float
    avg_dt: float


class TimeController:
    """
    Tracks simulated time and picks the next step size.

    Features:
    - dt = min(max_dt, max_step_distance / running_speed) while moving
    - dt = idle_dt while the drive wheels are still
    - accumulated time and step statistics
    """

    def __init__(
        self,
        max_dt: float = config.MAX_TIME_STEP,
        max_step_distance: float = config.MAX_STEP_DISTANCE,
        idle_dt: float = config.IDLE_TIME_STEP
    ):
        """
        Args:
            max_dt: Longest allowed step while moving (seconds)
            max_step_distance: Travel allowed per step (inches)
            idle_dt: Step used when the vehicle is not moving (seconds)
        """
        if max_dt <= 0 or max_step_distance <= 0 or idle_dt <= 0:
            raise ValueError("max_dt, max_step_distance and idle_dt must be positive")
        self.max_dt = max_dt
        self.max_step_distance = max_step_distance
        self.idle_dt = idle_dt

        self.current_time = 0.0
        self.step_count = 0

        self._min_dt = float('inf')
        self._max_dt = 0.0
        self._dt_sum = 0.0

    def next_dt(self, running_speed: float = 0.0) -> float:
        """
        Step size for a vehicle moving at running_speed inches per second.

        Args:
            running_speed: Fastest drive-wheel speed (inches/s, sign ignored)

        Returns:
            dt in seconds
        """
        speed = abs(running_speed)
        if speed > 0:
            return min(self.max_dt, self.max_step_distance / speed)
        return self.idle_dt

    def step(self, running_speed: float = 0.0) -> float:
        """
        Advance simulated time by one step.

        Returns:
            The dt that was taken (seconds)
        """
        dt = self.next_dt(running_speed)

        self.current_time += dt
        self.step_count += 1
        self._min_dt = min(self._min_dt, dt)
        self._max_dt = max(self._max_dt, dt)
        self._dt_sum += dt

        return dt

    def get_stats(self) -> TimeStats:
        avg_dt = self._dt_sum / self.step_count if self.step_count > 0 else 0.0

        return TimeStats(
            total_steps=self.step_count,
            total_time=self.current_time,
            min_dt=self._min_dt if self._min_dt != float('inf') else 0.0,
            max_dt=self._max_dt,
            avg_dt=avg_dt
        )
