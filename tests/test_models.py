"""Tests for jettypilot.models: observation and action records."""

import numpy as np
import pytest

from jettypilot.models.action import GameAction, JumpDecision, LoopStatistics
from jettypilot.models.game_state import (
    FrameObservation,
    ObstacleObservation,
    PlayAreaBounds,
    PlayerObservation,
)


class TestObstacleObservation:
    def test_gap_geometry(self):
        obstacle = ObstacleObservation(x=300, width=60, gap_top=120, gap_bottom=250)
        assert obstacle.gap_height == 130
        assert obstacle.gap_center == 185.0
        assert obstacle.right_edge == 360
        assert obstacle.distance_from(100) == 200

    @pytest.mark.parametrize("gap_bottom", [120, 100])
    def test_invalid_gap(self, gap_bottom):
        with pytest.raises(ValueError):
            ObstacleObservation(x=300, width=60, gap_top=120, gap_bottom=gap_bottom)


class TestPlayAreaBounds:
    def test_geometry(self):
        bounds = PlayAreaBounds(250, 680, 50, 380)
        assert (bounds.width, bounds.height) == (430, 330)
        assert bounds.center_y == 215.0
        assert bounds.zone_y(0.70) == pytest.approx(281.0)

    @pytest.mark.parametrize(
        "bounds",
        [PlayAreaBounds(300, 300, 50, 380), PlayAreaBounds(250, 680, 400, 380)],
    )
    def test_degenerate(self, bounds):
        assert not bounds.is_valid()


class TestObservations:
    def test_not_detected(self):
        player = PlayerObservation.not_detected()
        assert not player.detected
        assert player.confidence == 0.0

    def test_frame_not_compared(self):
        player = PlayerObservation(detected=True, x=10, y=20)
        a = FrameObservation(player, frame=np.zeros((2, 2, 3), dtype=np.uint8))
        b = FrameObservation(player, frame=None)
        assert a == b


class TestDecisions:
    def test_jump(self):
        decision = JumpDecision.jump("danger zone", 1.0)
        assert decision.should_jump
        assert decision.confidence == 1.0

    def test_no_jump_has_no_confidence(self):
        decision = JumpDecision.no_jump("stable")
        assert not decision.should_jump
        assert decision.confidence == 0.0

    def test_actions(self):
        assert {a.name for a in GameAction} == {"NONE", "JUMP", "START_GAME", "RESTART"}

    def test_statistics_summary(self):
        stats = LoopStatistics(ticks=30, jumps_issued=4, games_played=1, average_rate=29.5)
        assert "Jumps: 4" in str(stats)
        assert "Rate: 29.5/s" in str(stats)
