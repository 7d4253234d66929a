from dataclasses import dataclass
from enum import Enum

from jettypilot.models.game_state import FrameObservation, GameState, PlayAreaBounds


class GameAction(Enum):
    """Input sent to the game, at most one per tick."""

    NONE = "none"
    JUMP = "jump"
    START_GAME = "start_game"
    RESTART = "restart"


@dataclass(frozen=True)
class JumpDecision:
    """Outcome of the jump policy for one tick."""

    should_jump: bool
    reason: str = ""
    confidence: float = 0.0

    @classmethod
    def jump(cls, reason: str, confidence: float) -> "JumpDecision":
        return cls(should_jump=True, reason=reason, confidence=confidence)

    @classmethod
    def no_jump(cls, reason: str) -> "JumpDecision":
        return cls(should_jump=False, reason=reason, confidence=0.0)


@dataclass(frozen=True)
class ActionDecision:
    """Action chosen by the control loop and why."""

    action: GameAction
    reason: str = ""
    confidence: float = 0.0
    jump_decision: JumpDecision | None = None


@dataclass(frozen=True)
class LoopStatistics:
    """Read-only snapshot of the control loop counters.

    Attributes
    ----------
    ticks : int
        Ticks that consumed an observation.
    jumps_issued : int
        Jump actions dispatched successfully.
    games_played : int
        Transitions into the game over state.
    average_rate : float
        Ticks per second since the loop (re)started.
    failed_dispatches : int
        Actions the executor reported as failed.
    skipped_ticks : int
        Ticks abandoned because no observation arrived.
    obstacles_cleared : int
        Obstacles that moved behind the player while playing.
    run_time : float
        Seconds since the loop (re)started.
    """

    ticks: int = 0
    jumps_issued: int = 0
    games_played: int = 0
    average_rate: float = 0.0
    failed_dispatches: int = 0
    skipped_ticks: int = 0
    obstacles_cleared: int = 0
    run_time: float = 0.0

    def __str__(self) -> str:
        return (
            f"Ticks: {self.ticks}, Jumps: {self.jumps_issued}, Games: {self.games_played}, "
            f"Cleared: {self.obstacles_cleared}, Time: {self.run_time:.0f}s, "
            f"Rate: {self.average_rate:.1f}/s"
        )


@dataclass(frozen=True)
class TickStatus:
    """Per-tick record published by the control loop."""

    tick: int
    timestamp: float
    state: GameState
    state_confidence: float
    observation: FrameObservation
    decision: ActionDecision
    dispatched: bool
    velocity_y: float
    bounds: PlayAreaBounds
    tick_time_ms: float
    statistics: LoopStatistics
