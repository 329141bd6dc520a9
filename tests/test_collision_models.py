"""
Tests for collision transition detection
"""

from bricksim.collision_models import BodyEdge, CollisionEvent, EdgeCollisionDetector


def event(t, edges=None):
    return CollisionEvent(time_s=t, x=1.0, y=-1.0, heading=90.0, edges=edges or [BodyEdge.FRONT])


class TestEdgeDetection:
    """Only transitions produce events"""

    def test_no_event_while_clear(self):
        detector = EdgeCollisionDetector()
        assert detector.update(False, event(0.1)) is None
        assert detector.get_collision_history() == []

    def test_start_reported_once(self):
        detector = EdgeCollisionDetector()
        first = detector.update(True, event(0.1))
        assert first is not None and first.started
        assert detector.update(True, event(0.2)) is None
        assert detector.update(True, event(0.3)) is None
        assert detector.state.collision_count == 1
        assert detector.state.blocked_ticks == 3

    def test_clear_reported(self):
        detector = EdgeCollisionDetector()
        detector.update(True, event(0.1))
        cleared = detector.update(False, event(0.2))
        assert cleared is not None
        assert not cleared.started
        assert cleared.edges == []
        assert detector.state.blocked_ticks == 0

    def test_history_and_reset(self):
        detector = EdgeCollisionDetector()
        detector.update(True, event(0.1))
        detector.update(False, event(0.2))
        detector.update(True, event(0.3))
        assert [e.time_s for e in detector.get_collision_history()] == [0.1, 0.2, 0.3]
        assert detector.state.last_collision_time == 0.3

        detector.reset()
        assert detector.get_collision_history() == []
        assert not detector.state.is_colliding

    def test_repr_names_edges(self):
        assert "front" in repr(event(1.0))
