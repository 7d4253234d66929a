import cv2
import numpy as np

from jettypilot.config import AppConfig
from jettypilot.core.kinematics import KinematicPredictor
from jettypilot.models.action import GameAction, TickStatus

WHITE = (255, 255, 255)
GREEN = (0, 255, 0)
RED = (0, 0, 255)
CYAN = (255, 255, 0)
ORANGE = (0, 165, 255)

ACTION_COLORS = {
    GameAction.JUMP: GREEN,
    GameAction.START_GAME: CYAN,
    GameAction.RESTART: CYAN,
}

KEY_COMMANDS = {
    ord("q"): "quit",
    ord("Q"): "quit",
    27: "quit",  # ESC
    ord("p"): "pause",
    ord("P"): "pause",
    ord("r"): "reset",
    ord("R"): "reset",
}


def time_to_floor(predictor: KinematicPredictor, status: TickStatus) -> float | None:
    """Seconds until the player reaches the floor if it does not jump."""
    player = status.observation.player
    if not player.detected:
        return None
    predictor.set_velocity(status.velocity_y)
    return predictor.time_to_reach_y(player.y, status.bounds.max_y)


class DebugOverlay:
    """Window that shows what the agent sees and decides"""

    def __init__(self, config: AppConfig, width=800, height=600, dry_run=False):
        self.config = config
        self.width = width
        self.height = height
        self.dry_run = dry_run
        self.window_name = "JettyPilot"
        self.predictor = KinematicPredictor(config.physics)

        cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(self.window_name, self.width, self.height)

    def render(self, status: TickStatus) -> np.ndarray:
        frame = status.observation.frame
        if frame is None:
            canvas = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        else:
            canvas = frame.copy()

        self._draw_zones(canvas, status)
        self._draw_obstacles(canvas, status)
        self._draw_player(canvas, status)
        self._draw_text(canvas, status)
        return canvas

    def _draw_zones(self, canvas, status):
        bounds = status.bounds
        policy = self.config.policy
        lines = [
            (bounds.min_y, WHITE),
            (bounds.max_y, WHITE),
            (bounds.center_y, GREEN),
            (bounds.zone_y(policy.caution_zone_fraction), ORANGE),
            (bounds.zone_y(policy.danger_zone_fraction), RED),
        ]
        for y, color in lines:
            cv2.line(canvas, (bounds.min_x, int(y)), (bounds.max_x, int(y)), color, 1)

    def _draw_obstacles(self, canvas, status):
        player = status.observation.player
        frame_height = canvas.shape[0]
        for obstacle in status.observation.obstacles:
            right = obstacle.right_edge
            cv2.rectangle(canvas, (obstacle.x, 0), (right, obstacle.gap_top), RED, 2)
            cv2.rectangle(canvas, (obstacle.x, obstacle.gap_bottom), (right, frame_height), RED, 2)
            cv2.rectangle(canvas, (obstacle.x, obstacle.gap_top), (right, obstacle.gap_bottom), CYAN, 2)
            center = int(obstacle.gap_center)
            cv2.line(canvas, (obstacle.x, center), (right, center), CYAN, 1)

            if player.detected:
                cv2.putText(
                    canvas,
                    f"D:{obstacle.distance_from(player.x)}",
                    (obstacle.x, max(obstacle.gap_top - 10, 10)),
                    cv2.FONT_HERSHEY_SIMPLEX,
                    0.5,
                    CYAN,
                    1,
                )

    def _draw_player(self, canvas, status):
        player = status.observation.player
        if not player.detected:
            return

        half_w, half_h = player.width // 2, player.height // 2
        cv2.rectangle(
            canvas, (player.x - half_w, player.y - half_h), (player.x + half_w, player.y + half_h), GREEN, 2
        )
        cv2.circle(canvas, (player.x, player.y), 5, GREEN, -1)
        cv2.putText(
            canvas,
            f"Player: {player.confidence:.0%}",
            (player.x - half_w, player.y - half_h - 10),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            GREEN,
            1,
        )

        # Predicted path if the player does not jump
        debug = self.config.debug
        self.predictor.set_velocity(status.velocity_y)
        speed = self.config.physics.horizontal_speed
        height, width = canvas.shape[:2]
        for i, point in enumerate(
            self.predictor.predict_trajectory(player.y, debug.trajectory_horizon, debug.trajectory_step)
        ):
            if i == 0:
                continue
            x = player.x + int(point.time * speed)
            y = int(point.y)
            if 0 <= x < width and 0 <= y < height:
                alpha = max(50, 255 - i * 15)
                cv2.circle(canvas, (x, y), 2, (alpha, alpha, 0), -1)

    def _draw_text(self, canvas, status):
        height, width = canvas.shape[:2]
        decision = status.decision
        stats = status.statistics

        cv2.putText(
            canvas,
            f"State: {status.state.name} ({status.state_confidence:.0%})",
            (10, 30),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.7,
            WHITE,
            2,
        )
        cv2.putText(
            canvas,
            f"Analysis: {status.observation.analysis_time_ms:.1f}ms  Tick: {status.tick_time_ms:.1f}ms",
            (10, 60),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            WHITE,
            1,
        )

        action_text = decision.action.name
        if self.dry_run:
            action_text = f"[DRY RUN] {action_text}"
        cv2.putText(
            canvas,
            action_text,
            (10, 90),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.6,
            ACTION_COLORS.get(decision.action, WHITE),
            2,
        )
        cv2.putText(canvas, decision.reason[:80], (10, 115), cv2.FONT_HERSHEY_SIMPLEX, 0.4, WHITE, 1)

        right_column = [
            f"Jumps: {stats.jumps_issued}",
            f"Games: {stats.games_played}",
            f"Cleared: {stats.obstacles_cleared}",
            f"Vy: {status.velocity_y:.0f}",
        ]
        floor_eta = time_to_floor(self.predictor, status)
        if floor_eta is not None:
            right_column.append(f"Floor: {floor_eta:.2f}s")
        for i, text in enumerate(right_column):
            cv2.putText(
                canvas, text, (width - 140, 30 + i * 20), cv2.FONT_HERSHEY_SIMPLEX, 0.5, WHITE, 1
            )

        cv2.putText(
            canvas,
            "Q=Quit P=Pause R=Reset",
            (10, height - 45),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.4,
            (180, 180, 180),
            1,
        )
        cv2.putText(
            canvas,
            f"Rate: {stats.average_rate:.1f}/s",
            (10, height - 20),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.6,
            WHITE,
            2,
        )

    def display(self, status: TickStatus) -> str | None:
        """Show the overlay for ``status`` and return a key command, if any."""
        cv2.imshow(self.window_name, self.render(status))
        key = cv2.waitKey(1) & 0xFF
        return KEY_COMMANDS.get(key)

    def poll(self) -> str | None:
        """Handle window events when no new status is available."""
        key = cv2.waitKey(1) & 0xFF
        return KEY_COMMANDS.get(key)

    def close(self):
        cv2.destroyWindow(self.window_name)
