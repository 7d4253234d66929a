from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class GameState(Enum):
    """Coarse phase of the game as seen on screen."""

    UNKNOWN = "unknown"
    MENU = "menu"
    PLAYING = "playing"
    GAME_OVER = "game_over"


@dataclass(frozen=True)
class PlayerObservation:
    """Player detection for one frame.

    ``x`` and ``y`` are the pixel centre of the avatar. ``width`` and
    ``height`` describe its bounding box when the detector knows it.
    """

    detected: bool
    x: int = 0
    y: int = 0
    confidence: float = 0.0
    width: int = 0
    height: int = 0

    @classmethod
    def not_detected(cls) -> "PlayerObservation":
        return cls(detected=False)


@dataclass(frozen=True)
class ObstacleObservation:
    """A pipe pair with the gap the player has to fly through."""

    x: int
    width: int
    gap_top: int
    gap_bottom: int

    def __post_init__(self):
        if self.gap_top >= self.gap_bottom:
            raise ValueError(
                f"Obstacle gap top ({self.gap_top}) must be above its bottom ({self.gap_bottom})"
            )

    @property
    def gap_height(self) -> int:
        return self.gap_bottom - self.gap_top

    @property
    def gap_center(self) -> float:
        return self.gap_top + self.gap_height / 2

    @property
    def right_edge(self) -> int:
        return self.x + self.width

    def distance_from(self, x: int) -> int:
        return self.x - x


@dataclass(frozen=True)
class PlayAreaBounds:
    """Pixel rectangle of the play field.

    The top and bottom edges are lethal. Values are only trusted when
    ``is_valid()`` holds, a detector may hand back a degenerate rectangle.
    """

    min_x: int
    max_x: int
    min_y: int
    max_y: int
    detected: bool = False

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @property
    def center_y(self) -> float:
        return (self.min_y + self.max_y) / 2

    def is_valid(self) -> bool:
        return self.width > 0 and self.height > 0

    def zone_y(self, fraction: float) -> float:
        """Y coordinate ``fraction`` of the way from the ceiling to the floor."""
        return self.min_y + fraction * self.height


@dataclass(frozen=True)
class FrameObservation:
    """Everything the detectors report about one captured frame."""

    player: PlayerObservation
    obstacles: tuple[ObstacleObservation, ...] = ()
    raw_state: GameState = GameState.UNKNOWN
    raw_confidence: float = 0.0
    timestamp: float = 0.0
    frame: np.ndarray | None = field(default=None, compare=False, repr=False)
    analysis_time_ms: float = 0.0
