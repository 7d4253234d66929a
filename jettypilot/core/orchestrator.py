import queue
import threading
import time
from typing import Callable, Protocol

from loguru import logger

from jettypilot.config import AppConfig
from jettypilot.core.jump_policy import JumpPolicy
from jettypilot.core.kinematics import KinematicPredictor
from jettypilot.core.session_stats import SessionStats
from jettypilot.core.state_confirmer import StateConfirmer
from jettypilot.models.action import (
    ActionDecision,
    GameAction,
    JumpDecision,
    LoopStatistics,
    TickStatus,
)
from jettypilot.models.game_state import FrameObservation, GameState, PlayAreaBounds


class Detector(Protocol):
    def observe(self, timeout: float) -> FrameObservation | None:
        """Wait up to ``timeout`` seconds for the next detection bundle."""
        ...


class BoundsProvider(Protocol):
    def detect_bounds(self) -> PlayAreaBounds | None:
        """Detect the play area, None if it cannot be found right now."""
        ...


class ActionExecutor(Protocol):
    def execute(self, action: GameAction) -> bool:
        """Send ``action`` to the game and report whether it was delivered."""
        ...


class ControlLoop:
    """Fixed-rate perceive, decide, act loop.

    Every tick consumes one detection bundle, debounces the game state,
    resynchronises the trajectory model with the observed motion, asks the
    jump policy for a decision and hands exactly one action to the
    executor. A ``TickStatus`` is returned from ``tick()`` and published on
    ``status_queue`` for presentation code.

    All decision state is owned by the thread running the loop. The
    control methods only flip flags that are read at tick boundaries.

    Parameters
    ----------
    detector : Detector
        Source of per-tick observations.
    executor : ActionExecutor
        Sink for the chosen actions.
    bounds_provider : BoundsProvider | None
        Play area detector, queried at start and on every new game.
    config : AppConfig
        Application configuration.
    clock : Callable[[], float], optional
        Monotonic time source, by default ``time.monotonic``.
    sleep : Callable[[float], None], optional
        Sleep function, by default ``time.sleep``.

    Attributes
    ----------
    confirmer : StateConfirmer
        Game state debouncer.
    predictor : KinematicPredictor
        Vertical motion model.
    policy : JumpPolicy
        Jump decision rules.
    session : SessionStats
        Per-game statistics.
    bounds : PlayAreaBounds
        Current play area.
    status_queue : queue.Queue
        Latest tick statuses, oldest dropped when full.
    """

    def __init__(
        self,
        detector: Detector,
        executor: ActionExecutor,
        bounds_provider: BoundsProvider | None = None,
        config: AppConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or AppConfig()
        if self.config.loop.target_rate <= 0:
            raise ValueError("loop.target_rate must be positive")

        self.detector = detector
        self.executor = executor
        self.bounds_provider = bounds_provider
        self.clock = clock
        self.sleep = sleep

        self.confirmer = StateConfirmer(self.config.loop.required_confirmations)
        self.predictor = KinematicPredictor(self.config.physics)
        self.policy = JumpPolicy(self.predictor, self.config.policy, clock=clock)
        self.session = SessionStats(self.config.detection.obstacle_min_width)

        min_x, max_x, min_y, max_y = self.config.loop.default_bounds
        self.bounds = PlayAreaBounds(min_x, max_x, min_y, max_y)

        self.status_queue: queue.Queue = queue.Queue(maxsize=self.config.loop.status_queue_size)
        self.tick_interval = 1.0 / self.config.loop.target_rate

        self._state = GameState.UNKNOWN
        self._suppressed = False
        self._previous_y: int | None = None
        self._previous_time: float | None = None

        self._ticks = 0
        self._jumps_issued = 0
        self._games_played = 0
        self._failed_dispatches = 0
        self._skipped_ticks = 0
        self._start_time = self.clock()

        self._stop_event = threading.Event()
        self._paused = False
        self._reset_requested = False
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def state(self) -> GameState:
        return self._state

    def start(self) -> None:
        """Run the loop in a background thread."""
        if self.running:
            logger.warning("Control loop already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="control-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Stop after the current tick and wait for the thread to finish."""
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                # Still running, keep the handle
                logger.warning(f"Control loop did not stop within {timeout:.1f}s")
                return
        self._thread = None

    def pause(self) -> None:
        self._paused = True
        logger.info("Paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Resumed")

    def toggle_pause(self) -> None:
        if self._paused:
            self.resume()
        else:
            self.pause()

    def reset(self) -> None:
        """Reset statistics and decision state at the next tick boundary."""
        if self.running:
            self._reset_requested = True
        else:
            self._apply_reset()

    @property
    def statistics(self) -> LoopStatistics:
        run_time = max(self.clock() - self._start_time, 0.0)
        return LoopStatistics(
            ticks=self._ticks,
            jumps_issued=self._jumps_issued,
            games_played=self._games_played,
            average_rate=self._ticks / run_time if run_time > 0 else 0.0,
            failed_dispatches=self._failed_dispatches,
            skipped_ticks=self._skipped_ticks,
            obstacles_cleared=self.session.obstacles_cleared,
            run_time=run_time,
        )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run(self, max_ticks: int | None = None) -> None:
        """Run ticks at the target rate until stopped.

        Parameters
        ----------
        max_ticks : int | None, optional
            Stop after this many loop iterations, by default run until ``stop()``.
        """
        logger.info(
            f"Control loop started (target rate: {self.config.loop.target_rate}/s, "
            f"jump margin: {self.policy.safety_margin}px, "
            f"cooldown: {self.policy.min_jump_interval:.2f}s)"
        )
        self._start_time = self.clock()
        self._refresh_bounds()

        iterations = 0
        try:
            while not self._stop_event.is_set():
                if max_ticks is not None and iterations >= max_ticks:
                    break
                iterations += 1

                start = self.clock()
                status = self.tick()
                if status is None:
                    continue

                # Overruns start the next tick immediately, no catch-up
                sleep_time = self.tick_interval - (self.clock() - start)
                if sleep_time > 0:
                    self.sleep(sleep_time)
        except Exception as e:
            logger.exception(f"Control loop error: {e}")
            raise
        finally:
            logger.info(f"Control loop stopped. Stats: {self.statistics}")

    def tick(self) -> TickStatus | None:
        """Run one tick. Returns None when the tick was skipped."""
        if self._reset_requested:
            self._apply_reset()

        if self._paused:
            self.sleep(self.config.loop.pause_interval)
            return None

        tick_start = self.clock()

        try:
            observation = self.detector.observe(self.config.loop.observe_timeout)
        except Exception as e:
            logger.warning(f"Detector error: {e}")
            observation = None

        if observation is None:
            self._skipped_ticks += 1
            self.sleep(self.config.loop.retry_backoff)
            return None

        now = self.clock()
        state, state_confidence = self.confirmer.confirm(
            observation.raw_state, observation.raw_confidence
        )
        if state != self._state:
            self._handle_state_change(self._state, state, now)

        decision = self._decide(observation, state, now)
        jumped = decision.action == GameAction.JUMP
        if jumped:
            self.predictor.simulate_jump()

        dispatched = self._dispatch(decision)
        if jumped and dispatched:
            self._jumps_issued += 1

        self._ticks += 1
        if state == GameState.PLAYING:
            self.session.record_tick(jumped)
            self.session.observe_obstacles(observation.player, observation.obstacles)

        if self.config.logging.log_decisions and decision.action != GameAction.NONE:
            logger.debug(f"Tick {self._ticks}: {decision.action.name} - {decision.reason}")

        status = TickStatus(
            tick=self._ticks,
            timestamp=now,
            state=state,
            state_confidence=state_confidence,
            observation=observation,
            decision=decision,
            dispatched=dispatched,
            velocity_y=self.predictor.velocity_y,
            bounds=self.bounds,
            tick_time_ms=(self.clock() - tick_start) * 1000.0,
            statistics=self.statistics,
        )
        self._publish(status)
        return status

    def _decide(self, observation: FrameObservation, state: GameState, now: float) -> ActionDecision:
        if state == GameState.MENU:
            return ActionDecision(GameAction.START_GAME, "At menu, starting game")
        if state == GameState.GAME_OVER:
            return ActionDecision(GameAction.NONE, "Game over")
        if self._suppressed:
            return ActionDecision(GameAction.NONE, "Waiting for a new game")

        player = observation.player
        if player.detected:
            if self._previous_y is not None and self._previous_time is not None:
                self.predictor.update_from_position(
                    player.y, self._previous_y, now - self._previous_time
                )
            self._previous_y = player.y
            self._previous_time = now

        jump_decision: JumpDecision = self.policy.decide(player, observation.obstacles, self.bounds)
        if jump_decision.should_jump:
            return ActionDecision(
                GameAction.JUMP, jump_decision.reason, jump_decision.confidence, jump_decision
            )
        return ActionDecision(GameAction.NONE, jump_decision.reason, 0.0, jump_decision)

    def _dispatch(self, decision: ActionDecision) -> bool:
        try:
            delivered = self.executor.execute(decision.action)
        except Exception as e:
            logger.error(f"Executor error on {decision.action.name}: {e}")
            delivered = False

        if not delivered:
            self._failed_dispatches += 1
            logger.debug(f"Dispatch of {decision.action.name} failed")
        return delivered

    def _publish(self, status: TickStatus) -> None:
        try:
            self.status_queue.put_nowait(status)
        except queue.Full:
            try:
                self.status_queue.get_nowait()
            except queue.Empty:
                pass
            self.status_queue.put_nowait(status)

    def _handle_state_change(self, old: GameState, new: GameState, now: float) -> None:
        logger.info(f"Game state changed: {old.name} -> {new.name}")
        self._state = new

        if new == GameState.PLAYING:
            self._reset_decision_state()
            self._suppressed = False
            self._refresh_bounds()
            self.session.start_game(now)
            logger.info("New game started")
        elif new == GameState.GAME_OVER:
            self._games_played += 1
            self._suppressed = True
            self.session.end_game(now)
            logger.info(f"Game Over! Games played: {self._games_played}")

    def _refresh_bounds(self) -> None:
        if self.bounds_provider is None:
            return

        try:
            bounds = self.bounds_provider.detect_bounds()
        except Exception as e:
            logger.warning(f"Play area detection error: {e}")
            return

        if bounds is None:
            logger.debug("Play area not detected, keeping previous bounds")
            return
        if not bounds.is_valid():
            logger.warning(f"Rejected degenerate play area {bounds}, keeping {self.bounds}")
            return

        self.bounds = bounds
        logger.info(
            f"Play area: X=[{bounds.min_x}-{bounds.max_x}], Y=[{bounds.min_y}-{bounds.max_y}]"
        )

    def _reset_decision_state(self) -> None:
        self.predictor.reset()
        self.policy.reset()
        self._previous_y = None
        self._previous_time = None

    def _apply_reset(self) -> None:
        self._reset_requested = False
        self._reset_decision_state()
        self.confirmer.reset()
        self.session.reset()
        self._state = GameState.UNKNOWN
        self._suppressed = False
        self._ticks = 0
        self._jumps_issued = 0
        self._games_played = 0
        self._failed_dispatches = 0
        self._skipped_ticks = 0
        self._start_time = self.clock()
        logger.info("Reset")
