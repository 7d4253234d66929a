from dataclasses import dataclass
import math
from typing import Iterator

import numpy as np

from jettypilot.config import PhysicsConfig


@dataclass(frozen=True)
class TrajectoryPoint:
    """Predicted vertical state ``time`` seconds from now."""

    time: float
    y: float
    velocity_y: float
    jumped: bool = False


@dataclass(frozen=True)
class JumpSolution:
    """When to jump so the player crosses an obstacle inside its gap.

    Attributes
    ----------
    jump_time : float
        Seconds from now at which to jump.
    time_to_obstacle : float
        Seconds until the player reaches the obstacle.
    predicted_y_at_obstacle : float
        Player Y when it reaches the obstacle, given the jump.
    gap_center : float
        Centre of the targeted gap.
    confidence : float
        1.0 at the gap centre, falling to 0.0 at the gap edges.
    """

    jump_time: float
    time_to_obstacle: float
    predicted_y_at_obstacle: float
    gap_center: float
    confidence: float

    def should_jump_now(self, threshold: float = 0.05) -> bool:
        return self.jump_time <= threshold


class Trajectory:
    """Lazy, finite sequence of predicted trajectory points.

    Nothing is computed until the trajectory is iterated, and every
    iteration integrates again from the initial conditions, so one
    instance can be walked any number of times.

    Parameters
    ----------
    start_y : float
        Current Y position.
    start_velocity : float
        Current vertical velocity.
    duration : float
        Seconds to predict. Samples are taken at ``0, step, 2*step, ...``
        up to and including ``duration``.
    step : float
        Integration step in seconds.
    physics : PhysicsConfig
        Gravity, terminal velocity and jump impulse.
    jump_at : float | None, optional
        Jump at the first sample with ``time >= jump_at``, by default None.
    """

    def __init__(
        self,
        start_y: float,
        start_velocity: float,
        duration: float,
        step: float,
        physics: PhysicsConfig,
        jump_at: float | None = None,
    ):
        if step <= 0:
            raise ValueError("Trajectory step must be positive")
        self.start_y = start_y
        self.start_velocity = start_velocity
        self.duration = duration
        self.step = step
        self.physics = physics
        self.jump_at = jump_at

    def __len__(self) -> int:
        if self.duration < 0:
            return 0
        # Tolerate float noise so 0.5 / 0.1 still yields the sample at 0.5
        return int(math.floor(self.duration / self.step + 1e-9)) + 1

    def __iter__(self) -> Iterator[TrajectoryPoint]:
        gravity = self.physics.gravity
        terminal = self.physics.terminal_velocity
        y = float(self.start_y)
        velocity = float(self.start_velocity)
        jumped = False

        for i in range(len(self)):
            t = i * self.step
            jump_now = False
            if self.jump_at is not None and not jumped and t >= self.jump_at:
                velocity = self.physics.jump_impulse_velocity
                jumped = True
                jump_now = True

            yield TrajectoryPoint(time=t, y=y, velocity_y=velocity, jumped=jump_now)

            velocity = min(velocity + gravity * self.step, terminal)
            y += velocity * self.step

    def to_array(self) -> np.ndarray:
        """Materialise as an ``(n, 3)`` array of ``(time, y, velocity_y)``."""
        points = np.empty((len(self), 3), dtype=np.float64)
        for i, point in enumerate(self):
            points[i] = (point.time, point.y, point.velocity_y)
        return points


class KinematicPredictor:
    """Ballistic model of the player's vertical motion.

    The game uses Flappy Bird physics: constant gravity, a capped falling
    speed and a jump that overwrites the vertical velocity. Screen Y grows
    downwards, so positive velocity means falling.

    Parameters
    ----------
    physics : PhysicsConfig
        Physics constants. Calibrate them against the real game.

    Attributes
    ----------
    physics : PhysicsConfig
        Physics constants.
    velocity_y : float
        Current vertical velocity estimate in px/s.
    """

    def __init__(self, physics: PhysicsConfig | None = None):
        self.physics = physics or PhysicsConfig()
        self.velocity_y: float = 0.0

    @property
    def gravity(self) -> float:
        return self.physics.gravity

    @property
    def jump_impulse_velocity(self) -> float:
        return self.physics.jump_impulse_velocity

    @property
    def terminal_velocity(self) -> float:
        return self.physics.terminal_velocity

    @property
    def horizontal_speed(self) -> float:
        return self.physics.horizontal_speed

    def update_from_position(self, current_y: float, previous_y: float, dt: float) -> None:
        """Resynchronise velocity with the motion observed between two ticks."""
        if dt > 0:
            self.velocity_y = (current_y - previous_y) / dt

    def set_velocity(self, velocity_y: float) -> None:
        self.velocity_y = velocity_y

    def simulate_jump(self) -> None:
        """Apply a committed jump to the velocity estimate."""
        self.velocity_y = self.physics.jump_impulse_velocity

    def reset(self) -> None:
        self.velocity_y = 0.0

    def predict_position(self, y: float, dt: float) -> TrajectoryPoint:
        """Predict position and velocity ``dt`` seconds ahead without jumping.

        The displacement uses ``y + v*dt + g*dt^2/2`` while the returned
        velocity is capped at the terminal velocity.
        """
        v = self.velocity_y
        g = self.physics.gravity
        new_velocity = min(v + g * dt, self.physics.terminal_velocity)
        new_y = y + v * dt + 0.5 * g * dt * dt
        return TrajectoryPoint(time=dt, y=new_y, velocity_y=new_velocity)

    def predict_trajectory(self, y: float, duration: float, step: float = 0.016) -> Trajectory:
        return Trajectory(y, self.velocity_y, duration, step, self.physics)

    def predict_trajectory_with_jump(
        self, y: float, jump_at: float, duration: float, step: float = 0.016
    ) -> Trajectory:
        return Trajectory(y, self.velocity_y, duration, step, self.physics, jump_at=jump_at)

    def time_to_reach_x(self, player_x: float, obstacle_x: float) -> float:
        """Seconds until an obstacle scrolls to the player, 0 if already there."""
        if self.physics.horizontal_speed <= 0 or obstacle_x <= player_x:
            return 0.0
        return (obstacle_x - player_x) / self.physics.horizontal_speed

    def time_to_reach_y(self, current_y: float, target_y: float) -> float | None:
        """First positive time at which the free fall passes ``target_y``.

        Solves ``target = y + v*t + g*t^2/2``; returns None if the target is
        never reached.
        """
        a = 0.5 * self.physics.gravity
        b = self.velocity_y
        c = current_y - target_y

        if a == 0:
            if b == 0:
                return None
            t = -c / b
            return t if t > 0 else None

        discriminant = b * b - 4 * a * c
        if discriminant < 0:
            return None

        root = math.sqrt(discriminant)
        candidates = [t for t in ((-b - root) / (2 * a), (-b + root) / (2 * a)) if t > 0]
        return min(candidates) if candidates else None

    def position_after_jump(self, y: float, time_after_jump: float) -> float:
        """Y position ``time_after_jump`` seconds after jumping from ``y``."""
        v = self.physics.jump_impulse_velocity
        return y + v * time_after_jump + 0.5 * self.physics.gravity * time_after_jump**2

    def predict_position_at_obstacle(
        self, player_x: float, player_y: float, obstacle_x: float
    ) -> TrajectoryPoint:
        """Where the player will be when it reaches ``obstacle_x`` without jumping."""
        return self.predict_position(player_y, self.time_to_reach_x(player_x, obstacle_x))

    def find_optimal_jump_time(
        self,
        player_x: float,
        player_y: float,
        obstacle_x: float,
        gap_top: float,
        gap_bottom: float,
        safety_margin: float = 10,
        resolution: float = 0.01,
    ) -> JumpSolution | None:
        """Search the jump instant that crosses the obstacle closest to the gap centre.

        Every candidate jump time between now and the moment the obstacle
        arrives is tried at ``resolution`` steps: the player falls freely
        until the candidate time, then follows the jump arc until the
        obstacle. Candidates landing inside the gap shrunk by
        ``safety_margin`` are valid.

        Parameters
        ----------
        player_x, player_y : float
            Player centre.
        obstacle_x : float
            Left edge of the obstacle.
        gap_top, gap_bottom : float
            Gap edges.
        safety_margin : float, optional
            Pixels kept clear of each gap edge, by default 10.
        resolution : float, optional
            Search step in seconds, by default 0.01.

        Returns
        -------
        JumpSolution | None
            Best solution, or None when no candidate lands inside the gap.
        """
        time_to_obstacle = self.time_to_reach_x(player_x, obstacle_x)
        gap_center = (gap_top + gap_bottom) / 2
        safe_top = gap_top + safety_margin
        safe_bottom = gap_bottom - safety_margin

        best_time = None
        best_y = 0.0
        best_distance = math.inf

        n_candidates = int(math.floor(time_to_obstacle / resolution + 1e-9)) + 1
        for i in range(n_candidates):
            jump_time = i * resolution
            y_at_jump = self.predict_position(player_y, jump_time).y
            y_at_obstacle = self.position_after_jump(y_at_jump, time_to_obstacle - jump_time)

            if safe_top <= y_at_obstacle <= safe_bottom:
                distance = abs(y_at_obstacle - gap_center)
                if distance < best_distance:
                    best_distance = distance
                    best_time = jump_time
                    best_y = y_at_obstacle

        if best_time is None:
            return None

        half_gap = (gap_bottom - gap_top) / 2
        confidence = 1.0 - best_distance / half_gap if half_gap > 0 else 0.0
        return JumpSolution(
            jump_time=best_time,
            time_to_obstacle=time_to_obstacle,
            predicted_y_at_obstacle=best_y,
            gap_center=gap_center,
            confidence=max(0.0, min(1.0, confidence)),
        )
