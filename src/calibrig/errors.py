"""
Exception hierarchy for calibrig.

Per-frame problems never raise: a frame without a detectable pattern is
simply rejected by the collector. Everything below is raised at source,
device or invocation level.
"""

from __future__ import annotations


class CalibrationError(Exception):
    """Base class for all calibrig errors."""


class UsageError(CalibrationError):
    """Bad or missing command line arguments or settings."""


class SourceAccessError(CalibrationError):
    """A data directory or file could not be listed or opened."""


class DecodeError(CalibrationError):
    """An image or video could not be decoded."""


class DimensionMismatchError(CalibrationError):
    """An accepted frame differs in size from the device's first frame."""

    def __init__(self, expected: tuple[int, int], actual: tuple[int, int]):
        super().__init__(
            f"Inconsistent dimensions: expected {expected[0]}x{expected[1]}, "
            f"got {actual[0]}x{actual[1]}"
        )
        self.expected = expected
        self.actual = actual


class InsufficientFramesError(CalibrationError):
    """A video has fewer frames than the sampling target."""

    def __init__(self, frame_count: int, target: int):
        super().__init__(
            f"Video has {frame_count} frames, need at least {target}"
        )
        self.frame_count = frame_count
        self.target = target


class NoUsableObservationsError(CalibrationError):
    """A device produced no observations to calibrate from."""


class DegenerateSolutionError(CalibrationError):
    """The solver returned non-finite or out-of-range values."""


class WriteError(CalibrationError):
    """A calibration result could not be persisted."""


class InvalidSquareSizeError(UsageError):
    """The square size argument is not a positive number."""
