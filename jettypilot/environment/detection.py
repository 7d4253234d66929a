import math
import time

import cv2
from loguru import logger
import numpy as np

from jettypilot.config import DetectionConfig
from jettypilot.models.game_state import (
    FrameObservation,
    GameState,
    ObstacleObservation,
    PlayerObservation,
)

# "GAME OVER" is drawn in yellow on a dark background
GAME_OVER_HSV_LOWER = (15, 100, 150)
GAME_OVER_HSV_UPPER = (45, 255, 255)
GAME_OVER_PIXEL_RATIO = 0.02
TEMPLATE_MATCH_THRESHOLD = 0.7


def color_mask(frame: np.ndarray, lower, upper) -> np.ndarray:
    """Binary mask of the pixels of a BGR frame inside an HSV range."""
    hsv = cv2.cvtColor(frame, cv2.COLOR_BGR2HSV)
    return cv2.inRange(hsv, np.array(lower, dtype=np.uint8), np.array(upper, dtype=np.uint8))


def score_player_candidate(
    x: int,
    y: int,
    width: int,
    height: int,
    area: float,
    frame_width: int,
    last_position: tuple[int, int] | None = None,
    search_radius: int = 100,
) -> float:
    """Score how likely a blob is to be the player, between 0 and 1.

    Parameters
    ----------
    x, y, width, height : int
        Bounding box of the blob.
    area : float
        Contour area in pixels.
    frame_width : int
        Width of the analysed frame.
    last_position : tuple[int, int] | None, optional
        Centre of the player on the previous frame. Blobs close to it
        get a continuity bonus.
    search_radius : int, optional
        Distance within which the continuity bonus applies, by default 100.

    Returns
    -------
    float
        Candidate score.
    """
    score = 0.5

    # The player flies on the left side of the screen
    if frame_width > 0 and x / frame_width < 0.4:
        score += 0.2

    score += min(area / 2000.0, 0.2)

    if last_position is not None and search_radius > 0:
        dx = x + width // 2 - last_position[0]
        dy = y + height // 2 - last_position[1]
        distance = math.hypot(dx, dy)
        if distance < search_radius:
            score += 0.3 * (1.0 - distance / search_radius)

    return min(score, 1.0)


class PlayerDetector:
    """Finds the player as the best scoring blob of the player colour"""

    def __init__(self, config: DetectionConfig):
        self.config = config
        self.kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (5, 5))

    def detect(
        self, frame: np.ndarray, last_position: tuple[int, int] | None = None
    ) -> PlayerObservation:
        if frame is None or frame.size == 0:
            return PlayerObservation.not_detected()

        mask = color_mask(frame, self.config.player_hsv_lower, self.config.player_hsv_upper)
        mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, self.kernel)
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, self.kernel)

        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        best = PlayerObservation.not_detected()
        best_score = 0.0
        frame_width = frame.shape[1]

        for contour in contours:
            area = cv2.contourArea(contour)
            if area < self.config.player_min_area or area > self.config.player_max_area:
                continue

            x, y, w, h = cv2.boundingRect(contour)
            aspect_ratio = w / h if h > 0 else 0.0
            if aspect_ratio < 0.3 or aspect_ratio > 3.0:
                continue

            score = score_player_candidate(
                x, y, w, h, area, frame_width, last_position, self.config.search_radius
            )
            if score > best_score and score >= self.config.player_min_confidence:
                best_score = score
                best = PlayerObservation(
                    detected=True,
                    x=x + w // 2,
                    y=y + h // 2,
                    confidence=score,
                    width=w,
                    height=h,
                )

        return best


class ObstacleDetector:
    """Finds vertical pipe pairs and the gap between them"""

    def __init__(self, config: DetectionConfig):
        self.config = config
        self.kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))

    def detect(self, frame: np.ndarray) -> list[ObstacleObservation]:
        if frame is None or frame.size == 0:
            return []

        mask = color_mask(frame, self.config.obstacle_hsv_lower, self.config.obstacle_hsv_upper)
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, self.kernel)

        obstacles = self._find_by_projection(mask)
        if not obstacles:
            obstacles = self._find_by_contours(mask)
        return sorted(obstacles, key=lambda o: o.x)

    def _find_by_projection(self, mask: np.ndarray) -> list[ObstacleObservation]:
        """Columns mostly covered by obstacle colour form an obstacle."""
        frame_height = mask.shape[0]
        projection = np.count_nonzero(mask, axis=0)
        threshold = frame_height / 4

        obstacles = []
        in_obstacle = False
        start = 0
        last = len(projection) - 1

        for x, count in enumerate(projection):
            if not in_obstacle and count > threshold:
                in_obstacle = True
                start = x
            elif in_obstacle and (count <= threshold or x == last):
                in_obstacle = False
                width = x - start
                if self.config.obstacle_min_width <= width <= self.config.obstacle_max_width:
                    gap = self._find_gap(mask, start, x)
                    if gap is not None:
                        obstacles.append(ObstacleObservation(start, width, gap[0], gap[1]))

        return obstacles

    def _find_gap(self, mask: np.ndarray, x_start: int, x_end: int) -> tuple[int, int] | None:
        """Longest run of rows with little obstacle colour inside a column band."""
        projection = np.count_nonzero(mask[:, x_start:x_end], axis=1)
        gap_threshold = (x_end - x_start) / 3
        min_gap = max(self.config.min_gap_height, 1)

        best = None
        best_length = 0
        run_start = None

        for y, count in enumerate(projection):
            if count < gap_threshold:
                if run_start is None:
                    run_start = y
                continue
            if run_start is not None:
                length = y - run_start
                if length > best_length and length >= min_gap:
                    best, best_length = (run_start, y), length
                run_start = None

        if run_start is not None:
            length = len(projection) - run_start
            if length > best_length and length >= min_gap:
                best = (run_start, len(projection))

        return best

    def _find_by_contours(self, mask: np.ndarray) -> list[ObstacleObservation]:
        """Pair top and bottom pipe contours sharing roughly the same X."""
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        columns: dict[int, list[tuple[int, int, int, int]]] = {}
        for contour in contours:
            if cv2.contourArea(contour) < 500:
                continue
            rect = cv2.boundingRect(contour)
            columns.setdefault((rect[0] // 20) * 20, []).append(rect)

        obstacles = []
        for rects in columns.values():
            if len(rects) < 2:
                continue
            rects.sort(key=lambda r: r[1])
            top_pipe, bottom_pipe = rects[0], rects[-1]

            gap_top = top_pipe[1] + top_pipe[3]
            gap_bottom = bottom_pipe[1]
            if gap_bottom - gap_top < max(self.config.min_gap_height, 1):
                continue

            obstacles.append(
                ObstacleObservation(
                    x=min(top_pipe[0], bottom_pipe[0]),
                    width=max(top_pipe[2], bottom_pipe[2]),
                    gap_top=gap_top,
                    gap_bottom=gap_bottom,
                )
            )

        return obstacles


class GameStateClassifier:
    """Per-frame game state guess. Not debounced."""

    def __init__(self, config: DetectionConfig):
        self.config = config
        self.game_over_template = self._load_template(config.game_over_template)
        self.menu_template = self._load_template(config.menu_template)

    @staticmethod
    def _load_template(path: str | None) -> np.ndarray | None:
        if not path:
            return None
        template = cv2.imread(path)
        if template is None:
            logger.warning(f"Could not load template image {path}")
        return template

    @staticmethod
    def match_template(frame: np.ndarray, template: np.ndarray) -> bool:
        frame_h, frame_w = frame.shape[:2]
        template_h, template_w = template.shape[:2]
        if template_w > frame_w or template_h > frame_h:
            scale = min(frame_w / template_w, frame_h / template_h) * 0.8
            template = cv2.resize(template, None, fx=scale, fy=scale)

        result = cv2.matchTemplate(frame, template, cv2.TM_CCOEFF_NORMED)
        _, max_val, _, _ = cv2.minMaxLoc(result)
        return max_val >= TEMPLATE_MATCH_THRESHOLD

    def classify(self, frame: np.ndarray) -> tuple[GameState, float]:
        if frame is None or frame.size == 0:
            return GameState.UNKNOWN, 0.0

        if self.game_over_template is not None and self.match_template(frame, self.game_over_template):
            return GameState.GAME_OVER, 0.9
        if self.menu_template is not None and self.match_template(frame, self.menu_template):
            return GameState.MENU, 0.9

        if self.game_over_template is None:
            mask = color_mask(frame, GAME_OVER_HSV_LOWER, GAME_OVER_HSV_UPPER)
            if np.count_nonzero(mask) / mask.size > GAME_OVER_PIXEL_RATIO:
                return GameState.GAME_OVER, 0.7

        # The space background is always dark, without a menu template assume playing
        return GameState.PLAYING, 0.5


class FrameAnalyzer:
    """Runs all detectors on a frame and bundles the results.

    Parameters
    ----------
    config : DetectionConfig
        Colour ranges and size limits.
    """

    def __init__(self, config: DetectionConfig):
        self.player_detector = PlayerDetector(config)
        self.obstacle_detector = ObstacleDetector(config)
        self.state_classifier = GameStateClassifier(config)

    def analyze(
        self, frame: np.ndarray, last_player: PlayerObservation | None = None
    ) -> FrameObservation:
        """Analyse one BGR frame.

        Parameters
        ----------
        frame : np.ndarray
            Captured frame.
        last_player : PlayerObservation | None, optional
            Player observation of the previous frame, used for tracking continuity.

        Returns
        -------
        FrameObservation
            Detection bundle for the control loop.
        """
        start = time.perf_counter()

        last_position = None
        if last_player is not None and last_player.detected:
            last_position = (last_player.x, last_player.y)

        player = self.player_detector.detect(frame, last_position)
        obstacles = self.obstacle_detector.detect(frame)
        raw_state, raw_confidence = self.state_classifier.classify(frame)

        return FrameObservation(
            player=player,
            obstacles=tuple(obstacles),
            raw_state=raw_state,
            raw_confidence=raw_confidence,
            timestamp=time.monotonic(),
            frame=frame,
            analysis_time_ms=(time.perf_counter() - start) * 1000.0,
        )
