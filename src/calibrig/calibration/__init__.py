"""
Calibration module for calibrig.

All functions are pure - they take arrays and dataclasses and return
dataclasses. No threading, no state management.
"""

from .pattern import (
    PatternDetector,
    detect_chessboard,
    draw_observation,
    generate_chessboard_image,
    make_object_points,
)

from .intrinsic import (
    CalibrationSolver,
    calibration_flags,
    compute_reprojection_error,
    solve_intrinsics,
    validate_solution,
)

__all__ = [
    # Pattern
    "PatternDetector",
    "detect_chessboard",
    "draw_observation",
    "generate_chessboard_image",
    "make_object_points",
    # Intrinsic
    "CalibrationSolver",
    "calibration_flags",
    "compute_reprojection_error",
    "solve_intrinsics",
    "validate_solution",
]
