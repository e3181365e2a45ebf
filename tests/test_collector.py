"""
Tests for calibrig.collector.
"""

import numpy as np
import pytest

from calibrig.collector import ObservationCollector, apply_flips
from calibrig.errors import DimensionMismatchError
from calibrig.types import CalibrationOptions, DisplayMode, PatternSize

from conftest import FakeDetector, grid_corners, make_frame


@pytest.fixture
def pattern_size():
    return PatternSize(9, 6)


def collector_for(pattern_size, detector=None, **options):
    return ObservationCollector(
        pattern_size,
        CalibrationOptions(**options),
        detector or FakeDetector(),
    )


class TestApplyFlips:
    @pytest.fixture
    def frame(self):
        return np.arange(12, dtype=np.uint8).reshape(3, 4)

    def test_horizontal(self, frame):
        expected = frame[:, ::-1].copy()
        out = apply_flips(frame, horizontal=True, vertical=False)
        assert out is frame
        np.testing.assert_array_equal(frame, expected)

    def test_vertical(self, frame):
        expected = frame[::-1, :].copy()
        apply_flips(frame, horizontal=False, vertical=True)
        np.testing.assert_array_equal(frame, expected)

    def test_both(self, frame):
        expected = frame[::-1, ::-1].copy()
        apply_flips(frame, horizontal=True, vertical=True)
        np.testing.assert_array_equal(frame, expected)

    def test_none(self, frame):
        expected = frame.copy()
        apply_flips(frame, horizontal=False, vertical=False)
        np.testing.assert_array_equal(frame, expected)


class TestObservationCollector:
    def test_accepts_detected_frame(self, pattern_size):
        collector = collector_for(pattern_size)

        assert collector.process(make_frame(640, 480)) is True
        assert len(collector) == 1
        assert collector.frame_size == (640, 480)
        assert collector.observations[0].shape == (54, 2)

    def test_rejects_empty_frame_without_detection(self, pattern_size):
        detector = FakeDetector()
        collector = collector_for(pattern_size, detector)

        assert collector.process(None) is False
        assert collector.process(np.zeros((0, 0, 3), dtype=np.uint8)) is False
        assert collector.process(np.zeros((0, 640, 3), dtype=np.uint8)) is False
        assert detector.calls == 0
        assert len(collector) == 0
        assert collector.frame_size is None

    def test_rejects_frame_without_pattern(self, pattern_size):
        collector = collector_for(pattern_size)

        assert collector.process(make_frame(found=False)) is False
        assert len(collector) == 0
        assert collector.frame_size is None

    def test_rejects_incomplete_detection(self, pattern_size):
        def partial(frame, size):
            return grid_corners(size)[:10]

        collector = collector_for(pattern_size, partial)
        assert collector.process(make_frame()) is False
        assert len(collector) == 0

    def test_dimension_mismatch_is_fatal(self, pattern_size):
        collector = collector_for(pattern_size)
        collector.process(make_frame(640, 480))

        with pytest.raises(DimensionMismatchError) as excinfo:
            collector.process(make_frame(800, 600))

        assert excinfo.value.expected == (640, 480)
        assert excinfo.value.actual == (800, 600)
        assert len(collector) == 1

    def test_rejected_frame_does_not_set_dimensions(self, pattern_size):
        collector = collector_for(pattern_size)
        collector.process(make_frame(800, 600, found=False))

        assert collector.process(make_frame(640, 480)) is True
        assert collector.frame_size == (640, 480)

    def test_flip_applied_before_detection(self, pattern_size):
        seen = []

        def detector(frame, size):
            seen.append(frame[0, 0, 0])
            return grid_corners(size)

        frame = make_frame(8, 4)
        frame[0, -1] = 7  # top-right pixel moves to top-left
        collector = collector_for(pattern_size, detector, flip_horizontal=True)
        collector.process(frame)

        assert seen == [7]

    def test_no_frames_retained_without_display(self, pattern_size):
        collector = collector_for(pattern_size)
        for _ in range(3):
            collector.process(make_frame())
        assert collector.retained_frames == []

    def test_first_frame_mode_retains_one(self, pattern_size):
        collector = collector_for(pattern_size, display_mode=DisplayMode.FIRST_FRAME)
        collector.process(make_frame(found=False))
        for _ in range(3):
            collector.process(make_frame())
        assert len(collector.retained_frames) == 1

    def test_interactive_mode_retains_every_accepted_frame(self, pattern_size):
        collector = collector_for(pattern_size, display_mode=DisplayMode.INTERACTIVE)
        collector.process(make_frame())
        collector.process(make_frame(found=False))
        collector.process(make_frame())
        assert len(collector.retained_frames) == 2
