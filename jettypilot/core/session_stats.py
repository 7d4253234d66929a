import csv
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable

from loguru import logger

from jettypilot.models.game_state import ObstacleObservation, PlayerObservation


@dataclass(frozen=True)
class GameRecord:
    """Summary of one finished game"""

    game: int
    duration: float
    ticks: int
    jumps: int
    obstacles_cleared: int


class SessionStats:
    """Counts what happened during a session, game by game.

    The nearest obstacle ahead of the player is tracked. It counts as
    cleared once it scrolls to or behind the player, seen either as no
    obstacle left ahead or as the nearest one ahead jumping more than
    ``min_advance`` pixels further right. Smaller rightward moves are
    detection jitter, and frames without any obstacle keep the tracked one.

    Parameters
    ----------
    min_advance : int, optional
        Pixels the nearest obstacle must jump to the right to count as a
        new one, by default 30 (the narrowest detected obstacle).

    Attributes
    ----------
    games : list[GameRecord]
        Finished games, oldest first.
    obstacles_cleared : int
        Obstacles cleared over the whole session.
    """

    def __init__(self, min_advance: int = 30):
        self.min_advance = min_advance
        self.games: list[GameRecord] = []
        self.obstacles_cleared = 0

        self._game_start: float | None = None
        self._game_ticks = 0
        self._game_jumps = 0
        self._game_cleared = 0
        self._next_obstacle_x: int | None = None

    @property
    def in_game(self) -> bool:
        return self._game_start is not None

    def start_game(self, timestamp: float) -> None:
        self._game_start = timestamp
        self._game_ticks = 0
        self._game_jumps = 0
        self._game_cleared = 0
        self._next_obstacle_x = None

    def record_tick(self, jumped: bool) -> None:
        if not self.in_game:
            return
        self._game_ticks += 1
        if jumped:
            self._game_jumps += 1

    def observe_obstacles(
        self, player: PlayerObservation, obstacles: Iterable[ObstacleObservation]
    ) -> bool:
        """Update obstacle tracking, return True if one was just cleared."""
        if not self.in_game or not player.detected:
            return False

        xs = [o.x for o in obstacles]
        if not xs:
            # Missed detection, keep tracking the last obstacle
            return False

        ahead = [x for x in xs if x > player.x]
        next_x = min(ahead) if ahead else None
        tracked = self._next_obstacle_x
        self._next_obstacle_x = next_x

        if tracked is None:
            return False
        if next_x is not None and next_x <= tracked + self.min_advance:
            return False

        self.obstacles_cleared += 1
        self._game_cleared += 1
        logger.debug(f"Obstacle cleared (total this game: {self._game_cleared})")
        return True

    def end_game(self, timestamp: float) -> GameRecord | None:
        """Close the current game and return its record."""
        if not self.in_game:
            return None

        record = GameRecord(
            game=len(self.games) + 1,
            duration=timestamp - self._game_start,
            ticks=self._game_ticks,
            jumps=self._game_jumps,
            obstacles_cleared=self._game_cleared,
        )
        self.games.append(record)
        self._game_start = None
        self._next_obstacle_x = None

        logger.info(
            f"Game {record.game} over: {record.duration:.1f}s, {record.jumps} jumps, "
            f"{record.obstacles_cleared} obstacles cleared"
        )
        return record

    @property
    def best_game(self) -> GameRecord | None:
        if not self.games:
            return None
        return max(self.games, key=lambda g: (g.obstacles_cleared, g.duration))

    def reset(self) -> None:
        self.games.clear()
        self.obstacles_cleared = 0
        self._game_start = None
        self._next_obstacle_x = None

    def save_history(self, filepath: str | Path) -> bool:
        """Save finished games to a CSV file."""
        if not self.games:
            return False

        logger.info("Saving session history...")
        keys = list(asdict(self.games[0]).keys())
        with Path(filepath).open("w", newline="") as output_file:
            dict_writer = csv.DictWriter(output_file, keys)
            dict_writer.writeheader()
            dict_writer.writerows(asdict(game) for game in self.games)
        logger.success(f"Saved session history to {filepath}")
        return True
