from dataclasses import asdict, dataclass, fields, is_dataclass, replace
from enum import Enum
import json
from pathlib import Path
from typing import get_args

from loguru import logger


class PlayStyle(str, Enum):
    """How much risk the jump policy accepts.

    Safe play aims deeper inside gaps and waits longer between jumps,
    aggressive play does the opposite.
    """

    SAFE = "safe"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"

    @property
    def safety_margin(self) -> int:
        return {PlayStyle.SAFE: 25, PlayStyle.BALANCED: 15, PlayStyle.AGGRESSIVE: 5}[self]

    @property
    def cooldown_scale(self) -> float:
        return {PlayStyle.SAFE: 1.2, PlayStyle.BALANCED: 1.0, PlayStyle.AGGRESSIVE: 0.8}[self]


@dataclass(frozen=True)
class PhysicsConfig:
    """Physics constants of the game, in screen pixels and seconds.

    Attributes
    ----------
    gravity : float
        Downward acceleration in px/s^2 (default: 800.0).
    jump_impulse_velocity : float
        Vertical velocity right after a jump, negative is up (default: -300.0).
    terminal_velocity : float
        Maximum falling speed in px/s (default: 500.0).
    horizontal_speed : float
        Scroll speed of the obstacles in px/s (default: 150.0).
    """

    gravity: float = 800.0
    jump_impulse_velocity: float = -300.0
    terminal_velocity: float = 500.0
    horizontal_speed: float = 150.0


@dataclass(frozen=True)
class PolicyConfig:
    """Thresholds used by the jump policy.

    Attributes
    ----------
    safety_margin : int
        Pixels kept clear of each gap edge (default: 15).
    min_jump_interval : float
        Minimum seconds between two jumps (default: 0.35).
    lead_time : float
        A planned jump closer than this many seconds is taken now (default: 0.05).
    ceiling_margin : int
        No jumps within this many pixels of the ceiling (default: 30).
    danger_zone_fraction : float
        Fraction of the play height below which a jump is forced (default: 0.70).
    caution_zone_fraction : float
        Fraction of the play height below which recovery starts (default: 0.55).
    centering_tolerance_fraction : float
        Allowed distance from the centre line, as a fraction of the play
        height (default: 0.125).
    falling_noise_threshold : int
        Vertical change in pixels ignored by the falling tracker (default: 2).
    centering_falling_frames : int
        Falling frames needed to re-center when off the centre line (default: 3).
    caution_falling_frames : int
        Falling frames needed to recover inside the caution zone (default: 2).
    max_falling_frames : int
        Falling frames tolerated anywhere below centre (default: 5).
    heuristic_min_distance : int
        Pixels below a gap centre that trigger the fallback jump (default: 50).
    heuristic_min_time : float
        Seconds of travel left required by the fallback jump (default: 0.2).
    search_resolution : float
        Step in seconds of the optimal jump search (default: 0.01).
    centering_enabled : bool
        Use the centering rules when no obstacle is ahead (default: True).
    max_jump_zone_y : int | None
        Ignore player positions below this Y; None uses the play area floor.
    play_style : PlayStyle | None
        Risk profile. When set it replaces ``safety_margin`` and scales
        ``min_jump_interval``; None uses both values as configured.
    """

    safety_margin: int = 15
    min_jump_interval: float = 0.35
    lead_time: float = 0.05
    ceiling_margin: int = 30
    danger_zone_fraction: float = 0.70
    caution_zone_fraction: float = 0.55
    centering_tolerance_fraction: float = 0.125
    falling_noise_threshold: int = 2
    centering_falling_frames: int = 3
    caution_falling_frames: int = 2
    max_falling_frames: int = 5
    heuristic_min_distance: int = 50
    heuristic_min_time: float = 0.2
    search_resolution: float = 0.01
    centering_enabled: bool = True
    max_jump_zone_y: int | None = None
    play_style: PlayStyle | None = None

    @property
    def effective_safety_margin(self) -> int:
        if self.play_style is None:
            return self.safety_margin
        return self.play_style.safety_margin

    @property
    def effective_min_jump_interval(self) -> float:
        if self.play_style is None:
            return self.min_jump_interval
        return self.min_jump_interval * self.play_style.cooldown_scale

    def with_play_style(self, style: PlayStyle | None) -> "PolicyConfig":
        """Return a copy using ``style``; the configured thresholds are kept as the base."""
        return replace(self, play_style=style)


@dataclass(frozen=True)
class LoopConfig:
    """Timing of the control loop.

    Attributes
    ----------
    target_rate : int
        Ticks per second (default: 30).
    observe_timeout : float
        Seconds to wait for a detector bundle before skipping the tick (default: 0.1).
    retry_backoff : float
        Sleep after a failed observation (default: 0.01).
    pause_interval : float
        Sleep per tick while paused (default: 0.1).
    required_confirmations : int
        Identical raw classifications needed to change state (default: 3).
    status_queue_size : int
        Capacity of the status channel (default: 120).
    default_bounds : tuple[int, int, int, int]
        Play area used until one is detected, as (min_x, max_x, min_y, max_y).
    """

    target_rate: int = 30
    observe_timeout: float = 0.1
    retry_backoff: float = 0.01
    pause_interval: float = 0.1
    required_confirmations: int = 3
    status_queue_size: int = 120
    default_bounds: tuple[int, int, int, int] = (250, 680, 50, 380)


@dataclass(frozen=True)
class CaptureConfig:
    """Screen capture settings.

    Attributes
    ----------
    window_title : str
        Title of the game window (default: "Jetty Boots").
    use_custom_region : bool
        Capture ``region`` instead of looking up the window (default: False).
    region : tuple[int, int, int, int]
        Custom region as (left, top, width, height).
    perception_fps : int
        Capture rate of the perceptor thread (default: 30).
    """

    window_title: str = "Jetty Boots"
    use_custom_region: bool = False
    region: tuple[int, int, int, int] = (0, 0, 800, 600)
    perception_fps: int = 30


@dataclass(frozen=True)
class DetectionConfig:
    """Colour segmentation parameters. HSV ranges use the OpenCV scale.

    Attributes
    ----------
    player_hsv_lower, player_hsv_upper : tuple[int, int, int]
        Player colour range (orange/yellow by default).
    obstacle_hsv_lower, obstacle_hsv_upper : tuple[int, int, int]
        Obstacle colour range (green by default).
    player_min_area, player_max_area : int
        Accepted player contour areas in pixels.
    player_min_confidence : float
        Minimum candidate score (default: 0.5).
    search_radius : int
        Radius around the last position that earns a continuity bonus (default: 100).
    obstacle_min_width, obstacle_max_width : int
        Accepted obstacle column widths in pixels.
    min_gap_height : int
        Smallest gap considered passable (default: 50).
    game_over_template, menu_template : str | None
        Optional template images for state classification.
    """

    player_hsv_lower: tuple[int, int, int] = (0, 100, 100)
    player_hsv_upper: tuple[int, int, int] = (30, 255, 255)
    obstacle_hsv_lower: tuple[int, int, int] = (35, 50, 50)
    obstacle_hsv_upper: tuple[int, int, int] = (85, 255, 255)
    player_min_area: int = 100
    player_max_area: int = 10000
    player_min_confidence: float = 0.5
    search_radius: int = 100
    obstacle_min_width: int = 30
    obstacle_max_width: int = 150
    min_gap_height: int = 50
    game_over_template: str | None = None
    menu_template: str | None = None


@dataclass(frozen=True)
class InputConfig:
    """Input simulation settings.

    Attributes
    ----------
    jump_key : str
        pyautogui key name used to jump (default: "space").
    start_key : str
        Key used to start or restart a game (default: "space").
    use_mouse_click : bool
        Click instead of pressing ``jump_key`` (default: False).
    min_input_interval : float
        Minimum seconds between two inputs (default: 0.05).
    dry_run : bool
        Log actions instead of sending them (default: False).
    """

    jump_key: str = "space"
    start_key: str = "space"
    use_mouse_click: bool = False
    min_input_interval: float = 0.05
    dry_run: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    """Logging and session history settings."""

    level: str = "INFO"
    log_to_file: bool = True
    log_file: str = "logs/jettypilot_{time}.log"
    rotation: str = "1 day"
    retention: int = 7
    log_decisions: bool = False
    history_file: str = "session_history.csv"


@dataclass(frozen=True)
class DebugConfig:
    """Debug window settings."""

    show_window: bool = True
    trajectory_horizon: float = 0.5
    trajectory_step: float = 0.033


@dataclass(frozen=True)
class AppConfig:
    """Root configuration object for JettyPilot.

    Attributes
    ----------
    physics : PhysicsConfig
        Game physics constants.
    policy : PolicyConfig
        Jump policy thresholds.
    loop : LoopConfig
        Control loop timing.
    capture : CaptureConfig
        Screen capture settings.
    detection : DetectionConfig
        Colour segmentation parameters.
    input : InputConfig
        Input simulation settings.
    logging : LoggingConfig
        Logging settings.
    debug : DebugConfig
        Debug window settings.
    """

    physics: PhysicsConfig = PhysicsConfig()
    policy: PolicyConfig = PolicyConfig()
    loop: LoopConfig = LoopConfig()
    capture: CaptureConfig = CaptureConfig()
    detection: DetectionConfig = DetectionConfig()
    input: InputConfig = InputConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: DebugConfig = DebugConfig()


def validate_config(config: AppConfig) -> list[str]:
    """Return a list of human readable problems, empty when the config is usable."""
    errors = []

    if config.physics.gravity <= 0:
        errors.append("physics.gravity must be positive")
    if config.physics.jump_impulse_velocity >= 0:
        errors.append("physics.jump_impulse_velocity must be negative (upwards)")
    if config.physics.terminal_velocity <= 0:
        errors.append("physics.terminal_velocity must be positive")
    if config.physics.horizontal_speed <= 0:
        errors.append("physics.horizontal_speed must be positive")

    if config.policy.safety_margin < 0:
        errors.append("policy.safety_margin must not be negative")
    if config.policy.min_jump_interval < 0:
        errors.append("policy.min_jump_interval must not be negative")
    if config.policy.search_resolution <= 0:
        errors.append("policy.search_resolution must be positive")
    for name in ("danger_zone_fraction", "caution_zone_fraction", "centering_tolerance_fraction"):
        value = getattr(config.policy, name)
        if not 0.0 < value < 1.0:
            errors.append(f"policy.{name} must be between 0 and 1")
    if config.policy.caution_zone_fraction > config.policy.danger_zone_fraction:
        errors.append("policy.caution_zone_fraction must not exceed danger_zone_fraction")

    if not 1 <= config.loop.target_rate <= 120:
        errors.append("loop.target_rate must be between 1 and 120")
    if config.loop.required_confirmations < 1:
        errors.append("loop.required_confirmations must be at least 1")
    min_x, max_x, min_y, max_y = config.loop.default_bounds
    if min_x >= max_x or min_y >= max_y:
        errors.append("loop.default_bounds must have min < max on both axes")

    if config.capture.perception_fps <= 0:
        errors.append("capture.perception_fps must be positive")
    if config.detection.player_min_area >= config.detection.player_max_area:
        errors.append("detection.player_min_area must be below player_max_area")

    return errors


def _enum_type(field_type):
    """Enum class named by a field annotation, also inside ``X | None``."""
    for candidate in get_args(field_type) or (field_type,):
        if isinstance(candidate, type) and issubclass(candidate, Enum):
            return candidate
    return None


def _build(cls, data: dict):
    """Build dataclass ``cls`` from a (possibly partial) mapping."""
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        default = getattr(cls(), f.name)
        enum_type = _enum_type(f.type)
        if is_dataclass(default):
            value = _build(type(default), value or {})
        elif enum_type is not None:
            value = None if value is None else enum_type(value)
        elif isinstance(default, tuple):
            value = tuple(value)
        kwargs[f.name] = value
    unknown = set(data) - {f.name for f in fields(cls)}
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**kwargs)


def load_config(path: str | Path) -> AppConfig:
    """Load an ``AppConfig`` from a JSON file.

    Missing files and unreadable JSON fall back to the defaults. Validation
    problems are logged but the loaded values are still used.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Configuration file not found: {path}, using defaults")
        return AppConfig()

    try:
        with path.open() as f:
            data = json.load(f)
        config = _build(AppConfig, data)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.error(f"Error loading configuration from {path}: {e}")
        return AppConfig()

    for error in validate_config(config):
        logger.warning(f"Config: {error}")

    logger.info(f"Loaded configuration from {path}")
    return config


def save_config(config: AppConfig, path: str | Path) -> None:
    """Write ``config`` as indented JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        json.dump(asdict(config), f, indent=2, default=lambda o: o.value)
    logger.info(f"Saved configuration to {path}")
