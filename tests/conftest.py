"""
Pytest configuration and shared fixtures.
"""

import tempfile
from pathlib import Path

import numpy as np
import pytest


def make_frame(width=640, height=480, found=True):
    """Uniform BGR frame; the fake detector finds a pattern in bright frames."""
    value = 255 if found else 0
    return np.full((height, width, 3), value, dtype=np.uint8)


def grid_corners(pattern_size, offset=(100.0, 80.0), spacing=20.0):
    """Detected corners laid out on a regular grid."""
    xs, ys = np.meshgrid(np.arange(pattern_size.columns), np.arange(pattern_size.rows))
    corners = np.stack([xs.ravel(), ys.ravel()], axis=1).astype(np.float32)
    return corners * spacing + np.array(offset, dtype=np.float32)


class FakeDetector:
    """Finds the pattern in any non-black frame."""

    def __init__(self):
        self.calls = 0

    def __call__(self, frame, pattern_size):
        self.calls += 1
        if frame.mean() == 0:
            return None
        return grid_corners(pattern_size)


class FakeSolver:
    """Returns fixed intrinsics and records what it was called with."""

    def __init__(self, matrix=None, distortion=None, error=0.25):
        self.calls = []
        self.matrix = matrix if matrix is not None else np.array([
            [800.0, 0.0, 320.0],
            [0.0, 800.0, 240.0],
            [0.0, 0.0, 1.0],
        ])
        self.distortion = distortion if distortion is not None else np.zeros(8)
        self.error = error

    def __call__(self, object_sets, image_sets, resolution, flags):
        self.calls.append((object_sets, image_sets, resolution, flags))
        return self.matrix, self.distortion, self.error


class FakeVideo:
    """
    In-memory video. ``frames`` maps positions to frames; positions not in
    the map decode to ``default``.
    """

    def __init__(self, frame_count, frames=None, default=None):
        self.frame_count = frame_count
        self.frames = frames or {}
        self.default = default
        self.reads = []
        self.closed = False

    def read_at(self, position):
        self.reads.append(position)
        frame = self.frames.get(position, self.default)
        return None if frame is None else frame.copy()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True


class RecordingWriter:
    """Keeps written results in memory."""

    def __init__(self, output_dir=Path("out")):
        self.output_dir = output_dir
        self.results = []

    def __call__(self, result):
        self.results.append(result)
        return self.output_dir / f"{result.device}.toml"


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after test."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def sample_intrinsics_matrix():
    """Typical camera intrinsics matrix."""
    return np.array([
        [800.0, 0.0, 640.0],
        [0.0, 800.0, 360.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)


@pytest.fixture
def sample_distortion():
    """Typical rational-model distortion coefficients (k1, k2, p1, p2, k3, k4, k5, k6)."""
    return np.array([0.1, -0.25, 0.001, -0.001, 0.1, 0.01, -0.02, 0.005], dtype=np.float64)


@pytest.fixture
def sample_result(sample_intrinsics_matrix, sample_distortion):
    """Sample CalibrationResult dataclass."""
    from calibrig.types import CalibrationResult
    return CalibrationResult(
        device="cam_front",
        resolution=(1280, 720),
        matrix=sample_intrinsics_matrix,
        distortion=sample_distortion,
        error=0.2513,
        grid_count=25,
    )


@pytest.fixture
def settings(temp_dir):
    """Default settings rooted in the temporary directory."""
    from calibrig.types import CalibrationSettings
    return CalibrationSettings(
        square_size=0.025,
        data_dir=temp_dir / "data",
        output_dir=temp_dir / "calibration",
    )


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def solver():
    return FakeSolver()


@pytest.fixture
def writer():
    return RecordingWriter()
