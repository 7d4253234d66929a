from typing import Callable

from loguru import logger
import numpy as np

from jettypilot.environment.detection import color_mask
from jettypilot.models.game_state import PlayAreaBounds

# Bright green border bars around the play field
BORDER_HSV_LOWER = (35, 100, 100)
BORDER_HSV_UPPER = (85, 255, 255)
MIN_PLAY_AREA_SIZE = 200


class PlayAreaDetector:
    """Finds the play field by scanning for the green border bars.

    Parameters
    ----------
    frame_source : Callable[[], np.ndarray | None]
        Returns the latest captured BGR frame.
    margin : int, optional
        Pixels to stay inside the detected bars, by default 10.
    """

    def __init__(self, frame_source: Callable[[], np.ndarray | None], margin: int = 10):
        self.frame_source = frame_source
        self.margin = margin

    def detect_bounds(self) -> PlayAreaBounds | None:
        frame = self.frame_source()
        if frame is None:
            return None
        return self.detect_from_frame(frame)

    def detect_from_frame(self, frame: np.ndarray) -> PlayAreaBounds | None:
        """Detect the play area in one frame, None if the bars are not found."""
        if frame is None or frame.size == 0:
            return None

        green = color_mask(frame, BORDER_HSV_LOWER, BORDER_HSV_UPPER) > 0
        frame_height, frame_width = green.shape

        top, bottom = self._horizontal_bars(green)
        left, right = self._vertical_bars(green, top, bottom)

        if not self._is_plausible(top, bottom, left, right, frame_width, frame_height):
            logger.info(
                f"Play area detection failed (top={top}, bottom={bottom}, "
                f"left={left}, right={right})"
            )
            return None

        return PlayAreaBounds(
            min_x=left + self.margin,
            max_x=right - self.margin,
            min_y=top + self.margin,
            max_y=bottom - self.margin,
            detected=True,
        )

    @staticmethod
    def _scan(counts: np.ndarray, indices: range, limit: float, threshold: float) -> int:
        """Index where the first bar along ``indices`` ends, -1 if none.

        A bar starts where ``counts`` exceeds ``threshold`` and ends where it
        drops below half of it.
        """
        step = indices.step
        for i in indices:
            if counts[i] <= threshold:
                continue
            edge = i
            while (edge < limit if step > 0 else edge > limit) and counts[edge] >= threshold / 2:
                edge += step
            return edge
        return -1

    def _horizontal_bars(self, green: np.ndarray) -> tuple[int, int]:
        height, width = green.shape
        row_counts = np.count_nonzero(green, axis=1)
        min_bar_width = width / 4

        upper_limit = height * 0.4
        lower_limit = height * 0.6
        top = self._scan(row_counts, range(0, int(upper_limit)), upper_limit, min_bar_width)
        bottom = self._scan(
            row_counts, range(height - 1, int(lower_limit), -1), lower_limit, min_bar_width
        )
        return top, bottom

    def _vertical_bars(self, green: np.ndarray, top: int, bottom: int) -> tuple[int, int]:
        height, width = green.shape
        search_top = top if top > 0 else int(height * 0.1)
        search_bottom = bottom if bottom > 0 else int(height * 0.8)
        col_counts = np.count_nonzero(green[search_top:search_bottom, :], axis=0)
        min_bar_height = (search_bottom - search_top) / 4

        left_limit = width * 0.4
        right_limit = width * 0.6
        left = self._scan(col_counts, range(0, int(left_limit)), left_limit, min_bar_height)
        right = self._scan(
            col_counts, range(width - 1, int(right_limit), -1), right_limit, min_bar_height
        )
        return left, right

    @staticmethod
    def _is_plausible(top, bottom, left, right, frame_width, frame_height) -> bool:
        if min(top, bottom, left, right) <= 0:
            return False
        if top >= bottom or left >= right:
            return False

        width = right - left
        height = bottom - top
        if width < MIN_PLAY_AREA_SIZE or height < MIN_PLAY_AREA_SIZE:
            return False
        # The whole screen being green is not a play area
        return width <= frame_width * 0.9 and height <= frame_height * 0.9
