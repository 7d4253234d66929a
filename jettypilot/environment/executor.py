import time

from loguru import logger
import pyautogui

from jettypilot.config import InputConfig
from jettypilot.models.action import GameAction

# Inputs are sent at game speed, the default 0.1s pause would stall the loop
pyautogui.PAUSE = 0.0


class KeyboardExecutor:
    """Sends actions to the game as key presses or mouse clicks.

    Parameters
    ----------
    config : InputConfig
        Key bindings and rate limit.

    Attributes
    ----------
    config : InputConfig
        Input configuration.
    input_count : int
        Inputs sent successfully.
    last_input_time : float
        Monotonic time of the last input.
    """

    def __init__(self, config: InputConfig):
        self.config = config
        self.input_count = 0
        self.last_input_time = float("-inf")

    def execute(self, action: GameAction) -> bool:
        if action == GameAction.NONE:
            return True
        if action == GameAction.JUMP:
            return self._send_jump()
        return self._send_start()

    def _send_jump(self) -> bool:
        if time.monotonic() - self.last_input_time < self.config.min_input_interval:
            return False

        try:
            if self.config.use_mouse_click:
                pyautogui.click()
            else:
                pyautogui.press(self.config.jump_key)
        except Exception as e:
            logger.error(f"Jump input failed: {e}")
            return False

        self._count_input()
        return True

    def _send_start(self) -> bool:
        try:
            pyautogui.press(self.config.start_key)
        except Exception as e:
            logger.error(f"Start game input failed: {e}")
            return False

        self._count_input()
        return True

    def _count_input(self) -> None:
        self.last_input_time = time.monotonic()
        self.input_count += 1


class DryRunExecutor:
    """Logs actions instead of sending them"""

    def __init__(self):
        self.input_count = 0

    def execute(self, action: GameAction) -> bool:
        if action != GameAction.NONE:
            self.input_count += 1
            logger.debug(f"[DRY RUN] Would execute: {action.name}")
        return True
