"""
Core data structures for calibrig.

All types are frozen dataclasses with slots for immutability and performance.
Logic is in separate pure functions - these are data containers only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import numpy as np


# ============================================================================
# Calibration Pattern
# ============================================================================


@dataclass(frozen=True, slots=True)
class PatternSize:
    """
    Interior corner grid of the chessboard target.

    A 10x7 square board has 9x6 interior corners.
    """

    columns: int = 9
    rows: int = 6

    @property
    def point_count(self) -> int:
        return self.columns * self.rows

    def as_tuple(self) -> tuple[int, int]:
        """(columns, rows) as expected by OpenCV."""
        return (self.columns, self.rows)


# ============================================================================
# Options and Settings
# ============================================================================


class DisplayMode(Enum):
    NONE = "none"
    FIRST_FRAME = "first_frame"
    INTERACTIVE = "interactive"


class SourceKind(Enum):
    STILL_IMAGE = "still_image"
    VIDEO = "video"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class CalibrationOptions:
    """
    Switches set once from the command line flag token.
    """

    fix_principal_point: bool = False
    fix_aspect_ratio: bool = False
    zero_tangential_distortion: bool = False
    flip_horizontal: bool = False
    flip_vertical: bool = False
    display_mode: DisplayMode = DisplayMode.NONE


@dataclass(frozen=True, slots=True)
class CalibrationSettings:
    """
    Everything that stays constant for a process run.
    Loaded from an optional TOML file plus the command line.
    """

    square_size: float  # Edge length of one square, in output units
    options: CalibrationOptions = CalibrationOptions()
    pattern_size: PatternSize = PatternSize()
    frame_target: int = 25  # Sample slots per video
    frame_skip: int = 5  # Frames to shift a slot after a bad attempt
    max_bad_attempts: int = 5
    max_empty_reads: int = 10
    data_dir: Path = Path("data")
    output_dir: Path = Path("calibration")
    intrinsics_db: Path | None = None


# ============================================================================
# Calibration Data
# ============================================================================


@dataclass(frozen=True, slots=True)
class CalibrationResult:
    """
    Intrinsic parameters solved for one device.
    Stored as <device>.toml and optionally in SQLite keyed by (device, resolution).
    """

    device: str
    resolution: tuple[int, int]  # (width, height)
    matrix: np.ndarray  # 3x3 camera matrix
    distortion: np.ndarray  # Distortion coefficients (8,)
    error: float  # Average reprojection error
    grid_count: int  # Number of observations used in calibration


# ============================================================================
# Run Reports
# ============================================================================


@dataclass(frozen=True, slots=True)
class SamplingReport:
    """
    What happened while sampling one video.
    """

    attempted: int  # Slots attempted, always the target count
    filled: int  # Slots that yielded an accepted frame
    frame_attempts: int  # Frames handed to the collector
    empty_reads: int = 0


class RunState(Enum):
    IDLE = "idle"
    ENUMERATING = "enumerating"
    ACCUMULATING = "accumulating"
    SOLVING = "solving"
    VALIDATING = "validating"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class DeviceOutcome:
    """
    Result of calibrating a single device.

    A write failure leaves the computed result in place, so ``ok`` only
    depends on whether a validated result exists.
    """

    device: str
    state: RunState
    result: CalibrationResult | None = None
    error: Exception | None = None
    sources_seen: int = 0
    sources_processed: int = 0
    observation_count: int = 0
    artifact: Path | None = None
    write_error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass(frozen=True, slots=True)
class FleetOutcome:
    """
    Outcomes of all attempted devices, in the order they ran.
    """

    outcomes: list[DeviceOutcome] = field(default_factory=list)
    error: Exception | None = None  # Failure before any device could run

    @property
    def ok(self) -> bool:
        return self.error is None and all(o.ok for o in self.outcomes)

    @property
    def calibrated(self) -> list[str]:
        return [o.device for o in self.outcomes if o.ok]
