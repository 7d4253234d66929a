import time

from loguru import logger
import numpy as np
from PIL import ImageGrab
import pygetwindow as gw

from jettypilot.config import CaptureConfig
from jettypilot.environment.capture import ScreenCapture


class GameWindow:
    """Locates the game window and grabs frames from it.

    Parameters
    ----------
    config : CaptureConfig
        Capture configuration.

    Attributes
    ----------
    config : CaptureConfig
        Capture configuration.
    game_window : pygetwindow.Win32Window | None
        Game window handle, None when using a custom region.
    capture_engine : ScreenCapture
        Screen capture utility.
    """

    def __init__(self, config: CaptureConfig):
        self.config = config
        self.game_window = None
        self.capture_engine = ScreenCapture()

    def window_exists(self) -> bool:
        """Check if the game window exists.

        Returns
        -------
        bool
            True if window found, False otherwise.
        """
        title = self.config.window_title
        windows = gw.getWindowsWithTitle(title)
        for window in windows:
            if title.lower() in window.title.lower():
                self.game_window = window
                logger.info(f"Found game window: {window.title}")
                return True
        logger.warning(f"{title} window not found.")
        self.game_window = None
        return False

    def wait_for_window(self, timeout: float = 30.0) -> bool:
        """Poll for the game window for up to ``timeout`` seconds."""
        if self.config.use_custom_region:
            return True

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.window_exists():
                return True
            time.sleep(1.0)
        return False

    def get_region(self) -> tuple[int, int, int, int]:
        """Get the capture region.

        Returns
        -------
        tuple[int, int, int, int]
            Left, top, width, height of the captured area.

        Raises
        ------
        RuntimeError
            If the game window cannot be found.
        """
        if self.config.use_custom_region:
            return self.config.region
        if self.game_window is None and not self.window_exists():
            raise RuntimeError(f"Cannot find {self.config.window_title} window!")
        return (
            self.game_window.left,
            self.game_window.top,
            self.game_window.width,
            self.game_window.height,
        )

    def activate(self) -> None:
        """Bring the game window to the front so it receives inputs."""
        if self.game_window is None:
            return
        try:
            self.game_window.restore()
            self.game_window.activate()
        except Exception as e:
            logger.warning(f"Could not activate game window: {e}")

    def grab(self) -> np.ndarray | None:
        """Capture the current frame in BGR order.

        Returns
        -------
        np.ndarray | None
            Captured frame, or None if capture fails.
        """
        try:
            if not self.capture_engine.configured:
                self.capture_engine.set_region(*self.get_region())
            return self.capture_engine.capture()
        except Exception as e:
            logger.error(f"Screenshot error: {e}")
            # The window may have moved, look it up again next time
            self.capture_engine.monitor = None
            self.game_window = None
            return self._grab_fallback()

    def _grab_fallback(self) -> np.ndarray | None:
        try:
            left, top, width, height = self.get_region()
            screenshot = ImageGrab.grab(bbox=(left, top, left + width, top + height))
        except Exception as e:
            logger.error(f"Fallback screenshot error: {e}")
            return None

        frame = np.array(screenshot, dtype=np.uint8)
        if frame.ndim != 3:
            return None
        # PIL returns RGB(A)
        return np.ascontiguousarray(frame[:, :, 2::-1])

    def close(self) -> None:
        self.capture_engine.close()


def list_window_titles() -> list[str]:
    """Titles of all visible top-level windows, without empty ones."""
    return [title for title in gw.getAllTitles() if title.strip()]
