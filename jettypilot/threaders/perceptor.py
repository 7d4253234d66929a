import queue
import threading
import time

from loguru import logger
import numpy as np

from jettypilot.environment.detection import FrameAnalyzer
from jettypilot.environment.game_env import GameWindow
from jettypilot.models.game_state import FrameObservation, PlayerObservation


class PerceptorThread(threading.Thread):
    """Continuously captures and analyses game frames.

    This thread grabs frames from the game window at a fixed rate, runs
    the detectors and keeps only the newest detection bundle for the
    control loop. It is the detector the loop waits on.

    Parameters
    ----------
    window : GameWindow
        Frame source.
    analyzer : FrameAnalyzer
        Player, obstacle and game state detectors.
    perception_fps : int, optional
        Target frames per second, by default 30.

    Attributes
    ----------
    window : GameWindow
        Frame source.
    analyzer : FrameAnalyzer
        Detectors.
    frame_interval : float
        Time between frames in seconds.
    running : bool
        Flag to control thread execution.
    frame_count : int
        Total frames analysed.
    lock : threading.Lock
        Guards ``latest_frame``.
    """

    def __init__(self, window: GameWindow, analyzer: FrameAnalyzer, perception_fps: int = 30):
        super().__init__(daemon=True, name="perceptor")
        self.window = window
        self.analyzer = analyzer
        self.frame_interval = 1.0 / perception_fps
        self.running = True
        self.frame_count = 0
        self.lock = threading.Lock()

        self._bundles: queue.Queue = queue.Queue(maxsize=1)
        self._latest_frame: np.ndarray | None = None
        self._last_player: PlayerObservation | None = None

    def run(self) -> None:
        """Capture, analyse and hand over one bundle per frame interval."""
        while self.running:
            start_time = time.time()
            try:
                frame = self.window.grab()
                if frame is not None:
                    observation = self.analyzer.analyze(frame, self._last_player)
                    self._last_player = observation.player

                    with self.lock:
                        self._latest_frame = frame
                        self.frame_count += 1
                    self._offer(observation)

            except Exception as e:
                logger.error(f"Perceptor error: {e}")

            elapsed = time.time() - start_time
            sleep_time = self.frame_interval - elapsed
            if sleep_time > 0:
                time.sleep(sleep_time)

    def _offer(self, observation: FrameObservation) -> None:
        """Replace any unread bundle with ``observation``."""
        try:
            self._bundles.get_nowait()
        except queue.Empty:
            pass
        try:
            self._bundles.put_nowait(observation)
        except queue.Full:
            logger.debug("Dropped detection bundle")

    def observe(self, timeout: float) -> FrameObservation | None:
        """Wait for the next detection bundle, None on timeout."""
        try:
            return self._bundles.get(timeout=timeout)
        except queue.Empty:
            return None

    def latest_frame(self) -> np.ndarray | None:
        with self.lock:
            return self._latest_frame

    def stop(self) -> None:
        """Stop the perception thread gracefully."""
        self.running = False
