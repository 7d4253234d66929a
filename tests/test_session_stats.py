"""Tests for jettypilot.core.session_stats: per-game records."""

import csv

from jettypilot.core.session_stats import GameRecord, SessionStats
from jettypilot.models.game_state import ObstacleObservation, PlayerObservation

PLAYER = PlayerObservation(detected=True, x=100, y=200, confidence=0.9)


def obstacle(x):
    return ObstacleObservation(x=x, width=50, gap_top=150, gap_bottom=260)


class TestGames:
    def test_game_record(self):
        session = SessionStats()
        session.start_game(10.0)
        session.record_tick(jumped=False)
        session.record_tick(jumped=True)
        record = session.end_game(25.0)

        assert record == GameRecord(game=1, duration=15.0, ticks=2, jumps=1, obstacles_cleared=0)
        assert session.games == [record]
        assert not session.in_game

    def test_end_without_start(self):
        assert SessionStats().end_game(5.0) is None

    def test_ticks_outside_game_ignored(self):
        session = SessionStats()
        session.record_tick(jumped=True)
        session.start_game(0.0)
        assert session.end_game(1.0).jumps == 0

    def test_best_game(self):
        session = SessionStats()
        for start, cleared in [(0.0, 2), (10.0, 5), (20.0, 1)]:
            session.start_game(start)
            for x in range(cleared + 1):
                session.observe_obstacles(PLAYER, [obstacle(200 + 100 * x)])
            session.end_game(start + 5.0)

        assert session.best_game.game == 2
        assert session.best_game.obstacles_cleared == 5

    def test_reset(self):
        session = SessionStats()
        session.start_game(0.0)
        session.end_game(1.0)
        session.reset()
        assert session.games == []
        assert session.best_game is None


class TestObstacleTracking:
    def test_cleared_when_next_obstacle_moves_away(self):
        session = SessionStats()
        session.start_game(0.0)

        assert not session.observe_obstacles(PLAYER, [obstacle(300)])
        assert not session.observe_obstacles(PLAYER, [obstacle(280)])
        assert session.observe_obstacles(PLAYER, [obstacle(50), obstacle(450)])
        assert session.obstacles_cleared == 1

    def test_cleared_when_obstacle_passes_player(self):
        session = SessionStats()
        session.start_game(0.0)
        session.observe_obstacles(PLAYER, [obstacle(150)])

        assert session.observe_obstacles(PLAYER, [obstacle(95)])
        # Still behind the player on the next frame, not a second clear
        assert not session.observe_obstacles(PLAYER, [obstacle(90)])
        assert session.obstacles_cleared == 1

    def test_jitter_is_not_a_clear(self):
        session = SessionStats()
        session.start_game(0.0)

        for x in [400, 396, 397, 393, None, 389]:
            session.observe_obstacles(PLAYER, [] if x is None else [obstacle(x)])

        assert session.obstacles_cleared == 0

    def test_missed_detection_keeps_tracking(self):
        session = SessionStats()
        session.start_game(0.0)
        session.observe_obstacles(PLAYER, [obstacle(300)])

        assert not session.observe_obstacles(PLAYER, [])
        assert not session.observe_obstacles(PLAYER, [obstacle(295)])
        assert session.obstacles_cleared == 0

    def test_clear_while_detection_dropped(self):
        session = SessionStats()
        session.start_game(0.0)
        session.observe_obstacles(PLAYER, [obstacle(150)])
        session.observe_obstacles(PLAYER, [])

        assert session.observe_obstacles(PLAYER, [obstacle(400)])

    def test_min_advance(self):
        session = SessionStats(min_advance=60)
        session.start_game(0.0)
        session.observe_obstacles(PLAYER, [obstacle(300)])

        assert not session.observe_obstacles(PLAYER, [obstacle(350)])
        assert session.observe_obstacles(PLAYER, [obstacle(420)])

    def test_undetected_player_ignored(self):
        session = SessionStats()
        session.start_game(0.0)
        session.observe_obstacles(PLAYER, [obstacle(300)])
        assert not session.observe_obstacles(PlayerObservation.not_detected(), [])
        assert session.obstacles_cleared == 0


class TestHistory:
    def test_save_history(self, tmp_path):
        session = SessionStats()
        session.start_game(0.0)
        session.record_tick(jumped=True)
        session.end_game(3.0)

        path = tmp_path / "history.csv"
        assert session.save_history(path)

        with path.open() as f:
            rows = list(csv.DictReader(f))
        assert rows == [
            {"game": "1", "duration": "3.0", "ticks": "1", "jumps": "1", "obstacles_cleared": "0"}
        ]

    def test_nothing_to_save(self, tmp_path):
        path = tmp_path / "history.csv"
        assert not SessionStats().save_history(path)
        assert not path.exists()
