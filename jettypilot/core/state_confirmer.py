from loguru import logger

from jettypilot.models.game_state import GameState


class StateConfirmer:
    """Debounces per-frame game state classifications.

    A raw state only becomes the stable state after it has been reported
    on ``required_confirmations`` consecutive ticks. Until then the
    previous stable state is reported with halved confidence, so a single
    misclassified frame never flips the state machine.

    Parameters
    ----------
    required_confirmations : int, optional
        Consecutive identical classifications needed, by default 3.

    Attributes
    ----------
    required_confirmations : int
        Confirmation threshold.
    last_raw : GameState
        Raw state seen on the previous tick.
    count : int
        How many consecutive ticks ``last_raw`` has been seen.
    """

    def __init__(self, required_confirmations: int = 3):
        if required_confirmations < 1:
            raise ValueError("required_confirmations must be at least 1")
        self.required_confirmations = required_confirmations
        self.last_raw = GameState.UNKNOWN
        self.count = 0
        self._stable = GameState.UNKNOWN

    @property
    def stable_state(self) -> GameState:
        return self._stable

    def confirm(self, raw_state: GameState, raw_confidence: float) -> tuple[GameState, float]:
        """Feed one raw classification and get the debounced state back.

        Parameters
        ----------
        raw_state : GameState
            Classification of the current frame.
        raw_confidence : float
            Classifier confidence for ``raw_state``.

        Returns
        -------
        tuple[GameState, float]
            The stable state and its effective confidence.
        """
        if raw_state == self.last_raw:
            self.count += 1
        else:
            self.count = 1
            self.last_raw = raw_state

        if self.count >= self.required_confirmations:
            if raw_state != self._stable:
                logger.debug(f"State confirmed: {self._stable.name} -> {raw_state.name}")
            self._stable = raw_state
            return raw_state, raw_confidence

        return self._stable, raw_confidence * 0.5

    def reset(self) -> None:
        self.last_raw = GameState.UNKNOWN
        self.count = 0
        self._stable = GameState.UNKNOWN
