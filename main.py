import argparse
from dataclasses import replace
from pathlib import Path
import platform
import queue
import sys
from typing import Any, Dict, Optional

from loguru import logger

from jettypilot.config import AppConfig, LoggingConfig, PlayStyle, load_config, save_config
from jettypilot.core.orchestrator import ControlLoop
from jettypilot.core.vision import DebugOverlay
from jettypilot.environment.detection import FrameAnalyzer
from jettypilot.environment.diagnostics import (
    analyze_folder,
    analyze_image,
    benchmark_capture,
    save_annotated,
)
from jettypilot.environment.executor import DryRunExecutor, KeyboardExecutor
from jettypilot.environment.game_env import GameWindow, list_window_titles
from jettypilot.environment.play_area import PlayAreaDetector
from jettypilot.threaders.perceptor import PerceptorThread


def setup_logging(config: LoggingConfig) -> None:
    """Configure loguru logging with file and console outputs."""
    logger.remove()
    if config.log_to_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.log_file,
            rotation=config.rotation,
            retention=config.retention,
            level="DEBUG",
        )
    logger.add(sys.stderr, level=config.level, colorize=True)

    logger.info("Starting JettyPilot")
    logger.info("=" * 50)


def check_platform() -> bool:
    """Check if the platform is Windows."""
    if platform.system() != "Windows":
        logger.critical("ERROR: Window lookup and input simulation only work on Windows.")
        return False
    return True


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Autopilot for Jetty Boots")
    parser.add_argument("--config", default="config.json", help="JSON configuration file")
    parser.add_argument("--dry-run", action="store_true", help="log actions instead of sending them")
    parser.add_argument("--fps", type=int, help="control loop and capture rate")
    parser.add_argument(
        "--play-style",
        choices=[style.value for style in PlayStyle],
        help="risk profile of the jump policy",
    )
    parser.add_argument("--no-debug-window", action="store_true", help="do not show the overlay")
    parser.add_argument("--verbose", action="store_true", help="debug logging with every decision")
    parser.add_argument("--save-config", action="store_true", help="write the effective config and exit")

    diagnostics = parser.add_argument_group("diagnostics")
    modes = diagnostics.add_mutually_exclusive_group()
    modes.add_argument("--list-windows", action="store_true", help="list visible window titles and exit")
    modes.add_argument("--find-game", action="store_true", help="look up the game window and exit")
    modes.add_argument("--test-capture", action="store_true", help="benchmark screen capture and exit")
    modes.add_argument(
        "--test-detection",
        metavar="PATH",
        help="run detection on a screenshot or a folder of screenshots and exit",
    )
    modes.add_argument(
        "--live-detection",
        action="store_true",
        help="show live detections in the debug window without sending inputs",
    )
    return parser.parse_args(argv)


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Apply command line overrides on top of the loaded configuration."""
    if args.dry_run or args.live_detection:
        config = replace(config, input=replace(config.input, dry_run=True))
    if args.fps:
        config = replace(
            config,
            loop=replace(config.loop, target_rate=args.fps),
            capture=replace(config.capture, perception_fps=args.fps),
        )
    if args.play_style:
        config = replace(config, policy=config.policy.with_play_style(PlayStyle(args.play_style)))
    if args.live_detection:
        config = replace(config, debug=replace(config.debug, show_window=True))
    elif args.no_debug_window:
        config = replace(config, debug=replace(config.debug, show_window=False))
    if args.verbose:
        config = replace(config, logging=replace(config.logging, level="DEBUG", log_decisions=True))
    return config


def initialize_components(config: AppConfig) -> Optional[Dict[str, Any]]:
    """Initialize capture, perception, input and the control loop."""
    try:
        window = GameWindow(config.capture)
        if not window.wait_for_window():
            logger.error(f"Timed out waiting for the {config.capture.window_title} window")
            return None
        window.activate()

        analyzer = FrameAnalyzer(config.detection)
        perceptor = PerceptorThread(window, analyzer, config.capture.perception_fps)
        play_area = PlayAreaDetector(perceptor.latest_frame)

        if config.input.dry_run:
            logger.warning("DRY RUN mode, no inputs will be sent")
            executor = DryRunExecutor()
        else:
            executor = KeyboardExecutor(config.input)

        loop = ControlLoop(perceptor, executor, play_area, config)
        overlay = None
        if config.debug.show_window:
            overlay = DebugOverlay(config, dry_run=config.input.dry_run)

        return {
            "window": window,
            "perceptor": perceptor,
            "loop": loop,
            "overlay": overlay,
        }

    except Exception as e:
        logger.error(f"Error initializing components: {e}")
        return None


def handle_command(command: Optional[str], loop: ControlLoop) -> bool:
    """Apply a key command from the overlay. Returns False to quit."""
    if command == "quit":
        logger.info("Quit requested")
        return False
    if command == "pause":
        loop.toggle_pause()
    elif command == "reset":
        loop.reset()
    return True


def run(components: Dict[str, Any]) -> None:
    """Start the threads and drive the overlay until the user quits."""
    perceptor = components["perceptor"]
    loop = components["loop"]
    overlay = components["overlay"]

    perceptor.start()
    loop.start()
    logger.success("Autopilot running. Press Q in the debug window or Ctrl+C to stop.")

    while loop.running:
        try:
            status = loop.status_queue.get(timeout=0.05)
        except queue.Empty:
            status = None

        if overlay is None:
            continue

        command = overlay.display(status) if status is not None else overlay.poll()
        if not handle_command(command, loop):
            break


def cleanup(components: Optional[Dict[str, Any]], config: AppConfig) -> None:
    """Stop threads, save the session history and log a summary."""
    logger.info("Cleaning up...")
    if not components:
        return

    loop = components["loop"]
    loop.stop()
    components["perceptor"].stop()
    if components["overlay"] is not None:
        components["overlay"].close()
    components["window"].close()

    session = loop.session
    session.save_history(config.logging.history_file)

    logger.info("Session ended")
    logger.info(f"Stats: {loop.statistics}")
    best = session.best_game
    if best is not None:
        logger.info(
            f"Best game: #{best.game}, {best.obstacles_cleared} obstacles in {best.duration:.1f}s"
        )


def run_diagnostic(args: argparse.Namespace, config: AppConfig) -> bool:
    """Run a one-shot diagnostic mode. Returns False when none was requested."""
    if args.list_windows:
        titles = list_window_titles()
        logger.info(f"{len(titles)} visible windows:")
        for title in titles:
            logger.info(f"  {title}")
        return True

    if args.find_game:
        window = GameWindow(config.capture)
        if window.window_exists():
            left, top, width, height = window.get_region()
            logger.success(f"Capture region: left={left}, top={top}, size={width}x{height}")
        return True

    if args.test_capture:
        window = GameWindow(config.capture)
        try:
            benchmark_capture(window.grab)
        finally:
            window.close()
        return True

    if args.test_detection:
        path = Path(args.test_detection)
        if path.is_dir():
            reports = analyze_folder(path, config.detection)
        else:
            report = analyze_image(path, config.detection)
            reports = [report] if report is not None else []
        for report in reports:
            save_annotated(report)
        return True

    return False


def main(argv=None) -> None:
    """Main entry point for the autopilot."""
    args = parse_args(argv)
    config = apply_overrides(load_config(args.config), args)

    if args.save_config:
        save_config(config, args.config)
        return

    setup_logging(config.logging)

    # Still images work on any platform
    if args.test_detection:
        run_diagnostic(args, config)
        return

    if not check_platform():
        return

    if run_diagnostic(args, config):
        return
    if args.live_detection:
        logger.info("Live detection: decisions are shown but no inputs are sent")

    components = initialize_components(config)
    if components is None:
        return

    try:
        run(components)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
    except Exception as e:
        logger.exception(f"Autopilot error: {e}")
    finally:
        cleanup(components, config)


if __name__ == "__main__":
    main()
