"""Tests for jettypilot.environment.diagnostics: screenshot analysis and capture checks."""

import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from jettypilot.config import DetectionConfig  # noqa: E402
from jettypilot.environment.diagnostics import (  # noqa: E402
    analyze_folder,
    analyze_image,
    benchmark_capture,
    save_annotated,
)
from jettypilot.models.game_state import GameState, PlayAreaBounds  # noqa: E402

HEIGHT, WIDTH = 600, 800
ORANGE = (0, 165, 255)
PIPE_GREEN = (0, 200, 0)
BORDER_GREEN = (0, 255, 0)


def screenshot():
    frame = np.zeros((HEIGHT, WIDTH, 3), dtype=np.uint8)
    frame[200:230, 100:130] = ORANGE
    frame[:200, 400:460] = PIPE_GREEN
    frame[330:, 400:460] = PIPE_GREEN
    return frame


def bordered():
    frame = np.zeros((HEIGHT, WIDTH, 3), dtype=np.uint8)
    frame[50:60, 100:700] = BORDER_GREEN
    frame[540:550, 100:700] = BORDER_GREEN
    frame[50:550, 100:110] = BORDER_GREEN
    frame[50:550, 690:700] = BORDER_GREEN
    return frame


def write(path, frame):
    assert cv2.imwrite(str(path), frame)
    return path


class StepClock:
    def __init__(self, step):
        self.now = 0.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


# ---------------------------------------------------------------------------
# Still images
# ---------------------------------------------------------------------------

class TestAnalyzeImage:
    def test_screenshot(self, tmp_path):
        report = analyze_image(write(tmp_path / "shot.png", screenshot()), DetectionConfig())

        assert report is not None
        assert report.observation.player.detected
        assert len(report.observation.obstacles) == 1
        assert report.observation.raw_state == GameState.PLAYING
        assert report.bounds is None

    def test_play_area(self, tmp_path):
        report = analyze_image(write(tmp_path / "border.png", bordered()), DetectionConfig())

        assert report.bounds == PlayAreaBounds(120, 679, 70, 529, detected=True)
        assert not report.observation.player.detected

    def test_missing_file(self, tmp_path):
        assert analyze_image(tmp_path / "missing.png", DetectionConfig()) is None

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_text("not an image")
        assert analyze_image(path, DetectionConfig()) is None

    def test_save_annotated(self, tmp_path):
        report = analyze_image(write(tmp_path / "shot.png", screenshot()), DetectionConfig())

        output = save_annotated(report)

        assert output == tmp_path / "shot_analysis.png"
        annotated = cv2.imread(str(output))
        assert annotated.shape == (HEIGHT, WIDTH, 3)
        # Drawing works on a copy
        assert not np.array_equal(annotated, report.observation.frame)


class TestAnalyzeFolder:
    def test_skips_previous_analysis(self, tmp_path):
        write(tmp_path / "a.png", screenshot())
        write(tmp_path / "b.png", bordered())
        save_annotated(analyze_image(tmp_path / "a.png", DetectionConfig()))

        reports = analyze_folder(tmp_path, DetectionConfig())

        assert [report.path.name for report in reports] == ["a.png", "b.png"]

    def test_missing_folder(self, tmp_path):
        assert analyze_folder(tmp_path / "missing", DetectionConfig()) == []


# ---------------------------------------------------------------------------
# Capture benchmark
# ---------------------------------------------------------------------------

class TestBenchmarkCapture:
    def test_counts_frames_and_saves_first(self, tmp_path):
        frames = iter([screenshot(), None, screenshot()])
        output = tmp_path / "capture.png"

        report = benchmark_capture(
            lambda: next(frames), frames=3, output=output, clock=StepClock(0.005), sleep=lambda s: None
        )

        assert report.frames_requested == 3
        assert report.frames_captured == 2
        assert report.average_capture_ms == pytest.approx(5.0)
        assert report.frame_size == (WIDTH, HEIGHT)
        assert output.exists()

    def test_nothing_captured(self, tmp_path):
        output = tmp_path / "capture.png"

        report = benchmark_capture(lambda: None, frames=2, output=output, sleep=lambda s: None)

        assert report.frames_captured == 0
        assert report.average_capture_ms == 0.0
        assert report.frame_size is None
        assert not output.exists()
