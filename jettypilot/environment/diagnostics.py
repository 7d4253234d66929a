from dataclasses import dataclass
from pathlib import Path
import time
from typing import Callable

import cv2
from loguru import logger
import numpy as np

from jettypilot.config import DetectionConfig
from jettypilot.environment.detection import FrameAnalyzer
from jettypilot.environment.play_area import PlayAreaDetector
from jettypilot.models.game_state import FrameObservation, PlayAreaBounds

GREEN = (0, 255, 0)
RED = (0, 0, 255)
CYAN = (255, 255, 0)
MAGENTA = (255, 0, 255)


@dataclass
class DetectionReport:
    """Detection results for one still image."""

    path: Path
    observation: FrameObservation
    bounds: PlayAreaBounds | None


@dataclass
class CaptureReport:
    """Outcome of a capture benchmark."""

    frames_requested: int
    frames_captured: int
    average_capture_ms: float
    frame_size: tuple[int, int] | None


def analyze_image(path: str | Path, config: DetectionConfig) -> DetectionReport | None:
    """Run the frame analyzer and play area detector on an image file.

    Parameters
    ----------
    path : str | Path
        Screenshot to analyse.
    config : DetectionConfig
        Detection parameters, the same ones the live loop uses.

    Returns
    -------
    DetectionReport | None
        Detection results, or None if the image cannot be read.
    """
    path = Path(path)
    if not path.exists():
        logger.error(f"Image not found: {path}")
        return None

    frame = cv2.imread(str(path))
    if frame is None:
        logger.error(f"Could not load image: {path}")
        return None

    height, width = frame.shape[:2]
    logger.info(f"Loaded {path} ({width}x{height})")

    observation = FrameAnalyzer(config).analyze(frame)
    bounds = PlayAreaDetector(lambda: frame).detect_from_frame(frame)
    report = DetectionReport(path, observation, bounds)
    log_report(report)
    return report


def log_report(report: DetectionReport) -> None:
    observation = report.observation
    logger.info(f"Analysis time: {observation.analysis_time_ms:.2f}ms")

    player = observation.player
    if player.detected:
        logger.success(
            f"Player at ({player.x}, {player.y}), size {player.width}x{player.height}, "
            f"confidence {player.confidence:.0%}"
        )
    else:
        logger.warning("Player not detected")

    if observation.obstacles:
        logger.info(f"Found {len(observation.obstacles)} obstacle(s)")
        for obstacle in observation.obstacles:
            logger.info(
                f"  X={obstacle.x} width={obstacle.width} gap Y={obstacle.gap_top}-"
                f"{obstacle.gap_bottom} (height {obstacle.gap_height}, center {obstacle.gap_center:.0f})"
            )
    else:
        logger.info("No obstacles detected")

    logger.info(f"State: {observation.raw_state.name} ({observation.raw_confidence:.0%})")

    bounds = report.bounds
    if bounds is None:
        logger.warning("Play area not detected")
    else:
        logger.info(
            f"Play area X={bounds.min_x}-{bounds.max_x}, Y={bounds.min_y}-{bounds.max_y}"
        )


def annotate(frame: np.ndarray, report: DetectionReport) -> np.ndarray:
    """Return a copy of ``frame`` with the detections drawn on it."""
    canvas = frame.copy()
    height = canvas.shape[0]

    bounds = report.bounds
    if bounds is not None:
        cv2.rectangle(canvas, (bounds.min_x, bounds.min_y), (bounds.max_x, bounds.max_y), MAGENTA, 1)

    for obstacle in report.observation.obstacles:
        right = obstacle.right_edge
        cv2.rectangle(canvas, (obstacle.x, 0), (right, obstacle.gap_top), RED, 2)
        cv2.rectangle(canvas, (obstacle.x, obstacle.gap_bottom), (right, height), RED, 2)
        cv2.rectangle(canvas, (obstacle.x, obstacle.gap_top), (right, obstacle.gap_bottom), CYAN, 1)

    player = report.observation.player
    if player.detected:
        half_w, half_h = player.width // 2, player.height // 2
        cv2.rectangle(
            canvas, (player.x - half_w, player.y - half_h), (player.x + half_w, player.y + half_h), GREEN, 2
        )
        cv2.putText(
            canvas,
            f"Player ({player.x}, {player.y}) conf={player.confidence:.2f}",
            (max(player.x - half_w, 0), max(player.y - half_h - 10, 10)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            GREEN,
            1,
        )
    else:
        cv2.putText(canvas, "PLAYER NOT DETECTED", (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, RED, 2)

    return canvas


def save_annotated(report: DetectionReport) -> Path | None:
    """Write ``<name>_analysis.png`` next to the analysed image."""
    frame = report.observation.frame
    if frame is None:
        return None
    output = report.path.with_name(f"{report.path.stem}_analysis.png")
    if not cv2.imwrite(str(output), annotate(frame, report)):
        logger.error(f"Could not write {output}")
        return None
    logger.info(f"Saved annotated frame to {output}")
    return output


def analyze_folder(folder: str | Path, config: DetectionConfig) -> list[DetectionReport]:
    """Analyse every screenshot in ``folder``, skipping earlier analysis output."""
    folder = Path(folder)
    if not folder.is_dir():
        logger.error(f"Folder not found: {folder}")
        return []

    files = sorted(p for p in folder.glob("*.png") if not p.stem.endswith("_analysis"))
    logger.info(f"Found {len(files)} screenshots in {folder}")

    reports = []
    for path in files:
        report = analyze_image(path, config)
        if report is not None:
            reports.append(report)

    detected = sum(report.observation.player.detected for report in reports)
    logger.info(f"Player detected in {detected}/{len(reports)} frames")
    return reports


def benchmark_capture(
    grab: Callable[[], np.ndarray | None],
    frames: int = 60,
    output: str | Path | None = "test_capture.png",
    interval: float = 1 / 60,
    clock: Callable[[], float] = time.perf_counter,
    sleep: Callable[[float], None] = time.sleep,
) -> CaptureReport:
    """Grab ``frames`` frames, log timings and save the first one.

    Parameters
    ----------
    grab : Callable[[], np.ndarray | None]
        Frame source, usually ``GameWindow.grab``.
    frames : int, optional
        Number of frames to capture, by default 60.
    output : str | Path | None, optional
        Where the first frame is saved, None to skip saving.
    interval : float, optional
        Pause between two captures, by default 1/60 s.
    """
    captured = 0
    total_ms = 0.0
    frame_size = None

    for i in range(frames):
        start = clock()
        frame = grab()
        elapsed_ms = (clock() - start) * 1000.0

        if frame is None:
            logger.warning(f"Frame {i + 1}: capture failed")
        else:
            captured += 1
            total_ms += elapsed_ms
            if frame_size is None:
                frame_size = (frame.shape[1], frame.shape[0])
                if output is not None and cv2.imwrite(str(output), frame):
                    logger.info(f"Saved first frame to {output}")
            if captured == 1 or (i + 1) % 10 == 0:
                logger.info(f"Frame {i + 1:3d}: {elapsed_ms:.1f}ms, size {frame_size[0]}x{frame_size[1]}")
        sleep(interval)

    average = total_ms / captured if captured else 0.0
    logger.info(f"Captured {captured}/{frames} frames, average capture time {average:.2f}ms")
    if average > 0:
        logger.info(f"Estimated max capture rate: {1000.0 / average:.1f} FPS")
    return CaptureReport(frames, captured, average, frame_size)
