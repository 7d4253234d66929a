"""Tests for jettypilot.core.kinematics: trajectory prediction."""

import numpy as np
import pytest

from jettypilot.config import PhysicsConfig
from jettypilot.core.kinematics import JumpSolution, KinematicPredictor, Trajectory

PHYSICS = PhysicsConfig()


@pytest.fixture
def predictor():
    return KinematicPredictor(PHYSICS)


# ---------------------------------------------------------------------------
# Velocity tracking
# ---------------------------------------------------------------------------

class TestVelocity:
    def test_update_from_position(self, predictor):
        predictor.update_from_position(110, 100, 0.1)
        assert predictor.velocity_y == pytest.approx(100.0)

    def test_update_ignores_zero_dt(self, predictor):
        predictor.set_velocity(42.0)
        predictor.update_from_position(110, 100, 0.0)
        assert predictor.velocity_y == 42.0

    def test_simulate_jump_overwrites_velocity(self, predictor):
        predictor.set_velocity(480.0)
        predictor.simulate_jump()
        assert predictor.velocity_y == PHYSICS.jump_impulse_velocity

    def test_reset_then_predict_is_identity(self, predictor):
        predictor.set_velocity(123.0)
        predictor.reset()
        point = predictor.predict_position(42.0, 0.0)
        assert (point.y, point.velocity_y) == (42.0, 0.0)

    def test_reset_is_idempotent(self, predictor):
        predictor.reset()
        predictor.reset()
        assert predictor.velocity_y == 0.0


# ---------------------------------------------------------------------------
# Closed form prediction
# ---------------------------------------------------------------------------

class TestPredictPosition:
    @pytest.mark.parametrize("dt", [0.01, 0.1, 0.5, 1.0, 5.0])
    def test_velocity_never_exceeds_terminal(self, predictor, dt):
        predictor.set_velocity(300.0)
        assert predictor.predict_position(100.0, dt).velocity_y <= PHYSICS.terminal_velocity

    def test_displacement_is_not_clamped(self, predictor):
        point = predictor.predict_position(100.0, 1.0)
        assert point.y == pytest.approx(500.0)
        assert point.velocity_y == PHYSICS.terminal_velocity

    def test_upward_motion(self, predictor):
        predictor.simulate_jump()
        point = predictor.predict_position(200.0, 0.1)
        assert point.y == pytest.approx(200.0 - 30.0 + 4.0)
        assert point.velocity_y == pytest.approx(-220.0)

    def test_position_after_jump(self, predictor):
        assert predictor.position_after_jump(200.0, 0.375) == pytest.approx(143.75)


class TestTimeToReach:
    def test_time_to_reach_x(self, predictor):
        assert predictor.time_to_reach_x(100, 250) == pytest.approx(1.0)

    def test_obstacle_behind_is_zero(self, predictor):
        assert predictor.time_to_reach_x(200, 150) == 0.0

    def test_time_to_reach_y_falling(self, predictor):
        assert predictor.time_to_reach_y(100.0, 500.0) == pytest.approx(1.0)

    def test_time_to_reach_y_unreachable(self, predictor):
        assert predictor.time_to_reach_y(100.0, 50.0) is None

    def test_time_to_reach_y_while_rising(self, predictor):
        predictor.simulate_jump()
        # Rising from 200 with -300 px/s reaches 150 before the apex
        t = predictor.time_to_reach_y(200.0, 150.0)
        assert t is not None
        assert 200.0 - 300.0 * t + 400.0 * t * t == pytest.approx(150.0)
        assert t < 0.375


# ---------------------------------------------------------------------------
# Trajectories
# ---------------------------------------------------------------------------

class TestTrajectory:
    def test_length_includes_both_ends(self, predictor):
        assert len(predictor.predict_trajectory(100.0, 0.5, 0.1)) == 6

    def test_negative_duration_is_empty(self, predictor):
        assert list(predictor.predict_trajectory(100.0, -1.0, 0.1)) == []

    def test_can_be_iterated_twice(self, predictor):
        predictor.set_velocity(50.0)
        trajectory = predictor.predict_trajectory(100.0, 0.5, 0.05)
        assert list(trajectory) == list(trajectory)

    def test_is_lazy_snapshot_of_velocity(self, predictor):
        predictor.set_velocity(50.0)
        trajectory = predictor.predict_trajectory(100.0, 0.5, 0.1)
        predictor.set_velocity(-300.0)
        assert next(iter(trajectory)).velocity_y == 50.0

    def test_velocity_clamped_to_terminal(self, predictor):
        for point in predictor.predict_trajectory(0.0, 3.0, 0.05):
            assert point.velocity_y <= PHYSICS.terminal_velocity

    def test_semi_implicit_euler(self, predictor):
        points = list(predictor.predict_trajectory(100.0, 0.2, 0.1))
        # v1 = 80, y1 = 100 + 80 * 0.1
        assert points[1].velocity_y == pytest.approx(80.0)
        assert points[1].y == pytest.approx(108.0)
        assert points[2].y == pytest.approx(108.0 + 160.0 * 0.1)

    def test_jump_trajectory_matches_until_jump(self, predictor):
        plain = list(predictor.predict_trajectory(200.0, 0.5, 0.1))
        jumped = list(predictor.predict_trajectory_with_jump(200.0, 0.25, 0.5, 0.1))

        for a, b in zip(plain, jumped):
            if a.time < 0.25:
                assert (a.y, a.velocity_y) == (b.y, b.velocity_y)
            else:
                assert (a.y, a.velocity_y) != (b.y, b.velocity_y)

    def test_jump_marked_once(self, predictor):
        jumped = list(predictor.predict_trajectory_with_jump(200.0, 0.25, 0.5, 0.1))
        assert sum(point.jumped for point in jumped) == 1
        jump_point = next(point for point in jumped if point.jumped)
        assert jump_point.velocity_y == PHYSICS.jump_impulse_velocity

    def test_jump_outside_window_changes_nothing(self, predictor):
        plain = list(predictor.predict_trajectory(200.0, 0.5, 0.1))
        late = list(predictor.predict_trajectory_with_jump(200.0, 1.0, 0.5, 0.1))
        assert plain == late

    def test_to_array(self, predictor):
        array = predictor.predict_trajectory(100.0, 0.5, 0.1).to_array()
        assert array.shape == (6, 3)
        assert np.allclose(array[:, 0], [0.0, 0.1, 0.2, 0.3, 0.4, 0.5])

    def test_non_positive_step_rejected(self):
        with pytest.raises(ValueError):
            Trajectory(100.0, 0.0, 1.0, 0.0, PHYSICS)


# ---------------------------------------------------------------------------
# Jump planning
# ---------------------------------------------------------------------------

class TestFindOptimalJumpTime:
    def test_solution_inside_safe_gap(self, predictor):
        # Obstacle 75 px away: 0.5 s of travel
        solution = predictor.find_optimal_jump_time(
            100, 250, 175, gap_top=200, gap_bottom=300, safety_margin=15
        )

        assert solution is not None
        assert 200 + 15 <= solution.predicted_y_at_obstacle <= 300 - 15
        assert solution.time_to_obstacle == pytest.approx(0.5)
        assert solution.jump_time == pytest.approx(0.32, abs=0.011)
        assert solution.gap_center == 250
        assert solution.confidence > 0.9
        assert not solution.should_jump_now()

    def test_immediate_jump(self, predictor):
        solution = predictor.find_optimal_jump_time(
            100, 250, 175, gap_top=150, gap_bottom=250, safety_margin=15
        )

        assert solution is not None
        assert solution.jump_time == 0.0
        assert solution.predicted_y_at_obstacle == pytest.approx(200.0)
        assert solution.confidence == pytest.approx(1.0)
        assert solution.should_jump_now()

    def test_no_solution(self, predictor):
        # Far below a high gap, the jump arc never climbs high enough
        solution = predictor.find_optimal_jump_time(
            100, 400, 400, gap_top=100, gap_bottom=160, safety_margin=15
        )
        assert solution is None

    def test_margin_larger_than_gap(self, predictor):
        solution = predictor.find_optimal_jump_time(
            100, 250, 175, gap_top=190, gap_bottom=210, safety_margin=15
        )
        assert solution is None


class TestJumpSolution:
    def test_should_jump_now_threshold(self):
        solution = JumpSolution(0.04, 0.5, 250.0, 250.0, 1.0)
        assert solution.should_jump_now(0.05)
        assert not solution.should_jump_now(0.03)
