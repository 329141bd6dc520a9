"""
Collision Detection Models and Events

Data structures for wall-collision bookkeeping:
- BodyEdge: Which side of the vehicle envelope touched a wall
- CollisionEvent: Records a collision transition
- CollisionState: Tracks the current collision status
- EdgeCollisionDetector: Detects transitions (clear -> colliding -> clear)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class BodyEdge(Enum):
    """Edges of the vehicle envelope"""
    FRONT = "front"
    BACK = "back"
    RIGHT = "right"
    LEFT = "left"


@dataclass
class CollisionEvent:
    """
    Records a collision transition.

    Attributes:
        time_s: Simulation time of the transition (seconds)
        x, y: Vehicle pivot position (inches)
        heading: Vehicle heading (degrees)
        edges: Envelope edges touching a wall (empty when the collision cleared)
        started: True when the collision began, False when it ended
    """
    time_s: float
    x: float
    y: float
    heading: float = 0.0
    edges: List[BodyEdge] = field(default_factory=list)
    started: bool = True

    def __repr__(self) -> str:
        what = "started" if self.started else "cleared"
        names = ",".join(e.value for e in self.edges) or "-"
        return (f"CollisionEvent({what}, t={self.time_s:.2f}s, pos=({self.x:.1f}, {self.y:.1f}), "
                f"heading={self.heading:.1f}, edges={names})")


@dataclass
class CollisionState:
    """
    Tracks current collision state of the vehicle.

    Attributes:
        is_colliding: Whether the last tick was rolled back
        collision_count: Number of collisions started
        blocked_ticks: Ticks rolled back since the collision started
        last_collision_time: Time of the last collision start (seconds)
    """
    is_colliding: bool = False
    collision_count: int = 0
    blocked_ticks: int = 0
    last_collision_time: float = 0.0


class EdgeCollisionDetector:
    """
    Detects collision state transitions.

    A vehicle pushing against a wall collides on every tick; only the first
    tick of such a run (and the first clear tick after it) produces an event.
    """

    def __init__(self):
        self.collision_history: List[CollisionEvent] = []
        self.state = CollisionState()

    def update(self, current_collision: bool, event: CollisionEvent) -> Optional[CollisionEvent]:
        """
        Feed one tick's collision result.

        Args:
            current_collision: Whether this tick hit a wall
            event: Details of this tick, used if a transition occurred

        Returns:
            The event (with `started` set) on a transition, otherwise None
        """
        previous = self.state.is_colliding
        self.state.is_colliding = current_collision

        if current_collision:
            self.state.blocked_ticks += 1
        if current_collision == previous:
            return None

        event.started = current_collision
        if current_collision:
            self.state.collision_count += 1
            self.state.last_collision_time = event.time_s
        else:
            self.state.blocked_ticks = 0
            event.edges = []
        self.collision_history.append(event)
        return event

    def get_collision_history(self) -> List[CollisionEvent]:
        """
        Get all recorded transitions.

        Returns:
            List of collision events in chronological order
        """
        return self.collision_history.copy()

    def reset(self) -> None:
        """Clear collision history and state"""
        self.collision_history.clear()
        self.state = CollisionState()
