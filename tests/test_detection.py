"""Tests for jettypilot.environment.detection and play_area on synthetic frames."""

import numpy as np
import pytest

pytest.importorskip("cv2")

from jettypilot.config import DetectionConfig  # noqa: E402
from jettypilot.environment.detection import (  # noqa: E402
    FrameAnalyzer,
    GameStateClassifier,
    ObstacleDetector,
    PlayerDetector,
    score_player_candidate,
)
from jettypilot.environment.play_area import PlayAreaDetector  # noqa: E402
from jettypilot.models.game_state import GameState, ObstacleObservation, PlayAreaBounds  # noqa: E402

HEIGHT, WIDTH = 600, 800
ORANGE = (0, 165, 255)
PIPE_GREEN = (0, 200, 0)
BORDER_GREEN = (0, 255, 0)
YELLOW = (0, 255, 255)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def blank():
    return np.zeros((HEIGHT, WIDTH, 3), dtype=np.uint8)


def with_player(frame, left=100, top=200, size=30):
    frame[top : top + size, left : left + size] = ORANGE
    return frame


def with_pipe(frame, left=400, width=60, gap_top=200, gap_bottom=330):
    frame[:gap_top, left : left + width] = PIPE_GREEN
    frame[gap_bottom:, left : left + width] = PIPE_GREEN
    return frame


def with_border(frame):
    frame[50:60, 100:700] = BORDER_GREEN
    frame[540:550, 100:700] = BORDER_GREEN
    frame[50:550, 100:110] = BORDER_GREEN
    frame[50:550, 690:700] = BORDER_GREEN
    return frame


# ---------------------------------------------------------------------------
# Player scoring
# ---------------------------------------------------------------------------

class TestScorePlayerCandidate:
    def test_left_side_bonus(self):
        left = score_player_candidate(50, 100, 20, 20, 400, WIDTH)
        right = score_player_candidate(600, 100, 20, 20, 400, WIDTH)
        assert left == pytest.approx(0.9)
        assert right == pytest.approx(0.7)

    def test_area_bonus_capped(self):
        assert score_player_candidate(600, 100, 20, 20, 9000, WIDTH) == pytest.approx(0.7)
        assert score_player_candidate(600, 100, 20, 20, 200, WIDTH) == pytest.approx(0.6)

    def test_continuity_bonus(self):
        far = score_player_candidate(600, 100, 20, 20, 200, WIDTH, last_position=(100, 400))
        near = score_player_candidate(600, 100, 20, 20, 200, WIDTH, last_position=(610, 110))
        assert far == pytest.approx(0.6)
        assert near == pytest.approx(0.9)

    def test_score_capped_at_one(self):
        score = score_player_candidate(50, 100, 20, 20, 400, WIDTH, last_position=(60, 110))
        assert score == 1.0

    def test_same_input_same_score(self):
        args = (50, 100, 20, 20, 400, WIDTH, (70, 120), 100)
        assert score_player_candidate(*args) == score_player_candidate(*args)


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------

class TestPlayerDetector:
    def test_finds_player(self):
        player = PlayerDetector(DetectionConfig()).detect(with_player(blank()))

        assert player.detected
        assert player.x == pytest.approx(115, abs=2)
        assert player.y == pytest.approx(215, abs=2)
        assert player.confidence >= 0.5

    def test_empty_frame(self):
        assert not PlayerDetector(DetectionConfig()).detect(blank()).detected

    def test_too_small_blob_ignored(self):
        assert not PlayerDetector(DetectionConfig()).detect(with_player(blank(), size=6)).detected


class TestObstacleDetector:
    def test_finds_pipe_and_gap(self):
        obstacles = ObstacleDetector(DetectionConfig()).detect(with_pipe(blank()))
        assert obstacles == [ObstacleObservation(x=400, width=60, gap_top=200, gap_bottom=330)]

    def test_sorted_by_x(self):
        frame = with_pipe(with_pipe(blank(), left=600), left=300, gap_top=100, gap_bottom=250)
        obstacles = ObstacleDetector(DetectionConfig()).detect(frame)
        assert [o.x for o in obstacles] == [300, 600]

    def test_gap_too_small(self):
        frame = with_pipe(blank(), gap_top=200, gap_bottom=230)
        assert ObstacleDetector(DetectionConfig()).detect(frame) == []

    def test_empty_frame(self):
        assert ObstacleDetector(DetectionConfig()).detect(blank()) == []


class TestGameStateClassifier:
    def test_dark_frame_is_playing(self):
        assert GameStateClassifier(DetectionConfig()).classify(blank()) == (GameState.PLAYING, 0.5)

    def test_yellow_text_is_game_over(self):
        frame = blank()
        frame[250:350, 300:500] = YELLOW
        assert GameStateClassifier(DetectionConfig()).classify(frame) == (GameState.GAME_OVER, 0.7)

    def test_empty_image_is_unknown(self):
        empty = np.zeros((0, 0, 3), dtype=np.uint8)
        assert GameStateClassifier(DetectionConfig()).classify(empty) == (GameState.UNKNOWN, 0.0)


class TestFrameAnalyzer:
    def test_bundle(self):
        frame = with_pipe(with_player(blank()))
        observation = FrameAnalyzer(DetectionConfig()).analyze(frame)

        assert observation.player.detected
        assert len(observation.obstacles) == 1
        assert observation.raw_state == GameState.PLAYING
        assert observation.frame is frame
        assert observation.analysis_time_ms >= 0.0


# ---------------------------------------------------------------------------
# Play area
# ---------------------------------------------------------------------------

class TestPlayAreaDetector:
    def test_detects_border(self):
        bounds = PlayAreaDetector(lambda: None).detect_from_frame(with_border(blank()))
        assert bounds == PlayAreaBounds(120, 679, 70, 529, detected=True)
        assert bounds.is_valid()

    def test_no_border(self):
        assert PlayAreaDetector(lambda: None).detect_from_frame(blank()) is None

    def test_all_green_is_rejected(self):
        frame = np.full((HEIGHT, WIDTH, 3), BORDER_GREEN, dtype=np.uint8)
        assert PlayAreaDetector(lambda: None).detect_from_frame(frame) is None

    def test_uses_frame_source(self):
        frame = with_border(blank())
        assert PlayAreaDetector(lambda: frame).detect_bounds() is not None
        assert PlayAreaDetector(lambda: None).detect_bounds() is None
