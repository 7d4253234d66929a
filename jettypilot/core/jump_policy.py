import math
import time
from typing import Callable, Iterable

from loguru import logger

from jettypilot.config import PolicyConfig
from jettypilot.core.kinematics import KinematicPredictor
from jettypilot.models.action import JumpDecision
from jettypilot.models.game_state import ObstacleObservation, PlayAreaBounds, PlayerObservation


class JumpPolicy:
    """Decides once per tick whether the player should jump.

    The rules are checked in a fixed order and the first one that applies
    wins: jump-zone guard, cooldown, detection, ceiling guard, danger zone,
    obstacle planning and finally the centering rules used when nothing
    is ahead.

    The policy does not know about game states. Besides its cooldown it
    only keeps the last player Y and a count of consecutive falling
    frames.

    Parameters
    ----------
    predictor : KinematicPredictor
        Shared trajectory model, also updated by the control loop.
    config : PolicyConfig
        Thresholds and play style.
    clock : Callable[[], float], optional
        Monotonic time source, by default ``time.monotonic``.

    Attributes
    ----------
    predictor : KinematicPredictor
        Trajectory model.
    config : PolicyConfig
        Policy thresholds.
    min_jump_interval : float
        Cooldown between two jumps in seconds, after the play style.
    safety_margin : int
        Pixels kept clear of each gap edge, after the play style.
    last_jump_time : float
        Clock value of the last jump, -inf before the first one.
    falling_frames : int
        Consecutive ticks the player has been moving down.
    last_player_y : int | None
        Player Y on the previous tracked tick.
    """

    def __init__(
        self,
        predictor: KinematicPredictor,
        config: PolicyConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.predictor = predictor
        self.config = config or PolicyConfig()
        self.clock = clock

        self.min_jump_interval = self.config.effective_min_jump_interval
        self.safety_margin = self.config.effective_safety_margin
        self.last_jump_time = -math.inf
        self.falling_frames = 0
        self.last_player_y: int | None = None

    def decide(
        self,
        player: PlayerObservation,
        obstacles: Iterable[ObstacleObservation],
        bounds: PlayAreaBounds,
    ) -> JumpDecision:
        """Evaluate the rules for the current tick.

        A jump decision also starts the cooldown, so two jump decisions are
        never closer than ``min_jump_interval``.
        """
        decision = self._evaluate(player, tuple(obstacles), bounds)
        if decision.should_jump:
            self.record_jump()
        return decision

    def _evaluate(
        self,
        player: PlayerObservation,
        obstacles: tuple[ObstacleObservation, ...],
        bounds: PlayAreaBounds,
    ) -> JumpDecision:
        max_jump_zone_y = self.config.max_jump_zone_y
        if max_jump_zone_y is None:
            max_jump_zone_y = bounds.max_y

        if player.detected and player.y > max_jump_zone_y:
            self._reset_tracking()
            return JumpDecision.no_jump(
                f"below jump zone (Y={player.y} > {max_jump_zone_y})"
            )

        elapsed = self.clock() - self.last_jump_time
        if elapsed < self.min_jump_interval:
            return JumpDecision.no_jump(
                f"cooldown ({self.min_jump_interval - elapsed:.2f}s remaining)"
            )

        if not player.detected:
            self._reset_tracking()
            return JumpDecision.no_jump("undetected")

        y = player.y
        self._track_falling(y)

        if y < bounds.min_y + self.config.ceiling_margin:
            self.falling_frames = 0
            return JumpDecision.no_jump(f"near ceiling (Y={y})")

        danger_y = bounds.zone_y(self.config.danger_zone_fraction)
        if y >= danger_y:
            return JumpDecision.jump(
                f"danger zone (Y={y} >= {danger_y:.0f}){self._falling_suffix()}", 1.0
            )

        ahead = [o for o in obstacles if o.x > player.x]
        if ahead:
            return self._decide_for_obstacle(player, min(ahead, key=lambda o: o.x))

        if self.config.centering_enabled:
            return self._decide_centering(y, bounds)
        return self._decide_without_centering(y, bounds)

    def _decide_for_obstacle(
        self, player: PlayerObservation, obstacle: ObstacleObservation
    ) -> JumpDecision:
        solution = self.predictor.find_optimal_jump_time(
            player.x,
            player.y,
            obstacle.x,
            obstacle.gap_top,
            obstacle.gap_bottom,
            safety_margin=self.safety_margin,
            resolution=self.config.search_resolution,
        )

        if solution is None:
            logger.debug(
                f"No jump solution for obstacle at X={obstacle.x} "
                f"(gap {obstacle.gap_top}-{obstacle.gap_bottom}), using heuristic"
            )
            return self._handle_no_solution(player, obstacle)

        if solution.should_jump_now(self.config.lead_time):
            return JumpDecision.jump(
                f"optimal jump for obstacle at X={obstacle.x} "
                f"(predicted Y={solution.predicted_y_at_obstacle:.0f})",
                solution.confidence,
            )

        # Only informational, the jump is re-planned next tick
        current = self.predictor.predict_position_at_obstacle(player.x, player.y, obstacle.x)
        on_track = obstacle.gap_top <= current.y <= obstacle.gap_bottom
        return JumpDecision.no_jump(
            f"jump needed in {solution.jump_time:.2f}s "
            f"(predicted Y: {current.y:.0f}, gap: {obstacle.gap_top}-{obstacle.gap_bottom}, "
            f"{'on track' if on_track else 'off track'})"
        )

    def _handle_no_solution(
        self, player: PlayerObservation, obstacle: ObstacleObservation
    ) -> JumpDecision:
        time_to_obstacle = self.predictor.time_to_reach_x(player.x, obstacle.x)
        if time_to_obstacle <= 0:
            return JumpDecision.no_jump("obstacle behind player")

        distance_below = player.y - obstacle.gap_center
        if (
            distance_below > self.config.heuristic_min_distance
            and time_to_obstacle >= self.config.heuristic_min_time
        ):
            return JumpDecision.jump(
                f"heuristic: below gap center by {distance_below:.0f}px", 0.5
            )

        if distance_below < 0:
            return JumpDecision.no_jump("no solution, above gap center, letting gravity work")
        return JumpDecision.no_jump("no solution, no clear action")

    def _decide_centering(self, y: int, bounds: PlayAreaBounds) -> JumpDecision:
        center_y = bounds.center_y
        caution_y = bounds.zone_y(self.config.caution_zone_fraction)
        tolerance = bounds.height * self.config.centering_tolerance_fraction
        distance_from_center = y - center_y
        falling = self.falling_frames

        if distance_from_center > tolerance and falling >= self.config.centering_falling_frames:
            return JumpDecision.jump(
                f"centering: {distance_from_center:.0f}px below center{self._falling_suffix()}",
                0.7,
            )

        if y >= caution_y and falling >= self.config.caution_falling_frames:
            return JumpDecision.jump(
                f"below safe zone (Y={y} >= {caution_y:.0f}){self._falling_suffix()}", 0.8
            )

        if distance_from_center > 0 and falling >= self.config.max_falling_frames:
            return JumpDecision.jump(f"Falling {falling} frames while below center", 0.6)

        return JumpDecision.no_jump(f"stable (Y={y}, center={center_y:.0f}, falling={falling})")

    def _decide_without_centering(self, y: int, bounds: PlayAreaBounds) -> JumpDecision:
        caution_y = bounds.zone_y(self.config.caution_zone_fraction)
        falling = self.falling_frames

        if y >= caution_y and falling >= self.config.max_falling_frames:
            return JumpDecision.jump(f"Falling {falling} frames in caution zone", 0.8)

        if falling >= self.config.max_falling_frames * 2:
            return JumpDecision.jump(f"Falling too long ({falling} frames)", 0.6)

        return JumpDecision.no_jump(f"stable (Y={y}, falling={falling})")

    def _track_falling(self, y: int) -> None:
        noise = self.config.falling_noise_threshold
        if self.last_player_y is not None:
            if y > self.last_player_y + noise:
                self.falling_frames += 1
            elif y < self.last_player_y - noise:
                self.falling_frames = 0
        self.last_player_y = y

    def _falling_suffix(self) -> str:
        if self.falling_frames <= 0:
            return ""
        return f", Falling {self.falling_frames} frames"

    def _reset_tracking(self) -> None:
        self.falling_frames = 0
        self.last_player_y = None

    def record_jump(self) -> None:
        """Start the cooldown at the current clock time."""
        self.last_jump_time = self.clock()

    def reset(self) -> None:
        """Forget cooldown and falling history, for a new game."""
        self.last_jump_time = -math.inf
        self._reset_tracking()
