"""
Intrinsic camera calibration.

Pure functions - no threading, no state. Caller manages frame collection.
"""

from __future__ import annotations

from typing import Callable, Sequence

import cv2
import numpy as np

from ..errors import DegenerateSolutionError
from ..types import CalibrationOptions, CalibrationResult

DISTORTION_COEFFICIENTS = 8  # k1, k2, p1, p2, k3, k4, k5, k6
MAX_ABS_VALUE = 1e6

# (object_sets, image_sets, (width, height), flags) -> (matrix, distortion, error)
CalibrationSolver = Callable[
    [Sequence[np.ndarray], Sequence[np.ndarray], "tuple[int, int]", int],
    "tuple[np.ndarray, np.ndarray, float]",
]


# ============================================================================
# Solver
# ============================================================================


def calibration_flags(options: CalibrationOptions) -> int:
    """
    OpenCV calibration flags for the given options.

    The rational model is always on so the solver returns 8 coefficients.
    """
    flags = cv2.CALIB_RATIONAL_MODEL
    if options.fix_principal_point:
        flags |= cv2.CALIB_FIX_PRINCIPAL_POINT
    if options.fix_aspect_ratio:
        flags |= cv2.CALIB_FIX_ASPECT_RATIO
    if options.zero_tangential_distortion:
        flags |= cv2.CALIB_ZERO_TANGENT_DIST
    return flags


def solve_intrinsics(
    object_sets: Sequence[np.ndarray],
    image_sets: Sequence[np.ndarray],
    resolution: tuple[int, int],
    flags: int,
) -> tuple[np.ndarray, np.ndarray, float]:
    """
    Run OpenCV calibration on matched object/image point sets.

    Args:
        object_sets: One (n, 3) array per view
        image_sets: One (n, 2) array per view
        resolution: (width, height) of the frames
        flags: cv2.CALIB_* flags

    Returns:
        (3x3 camera matrix, (8,) distortion coefficients, RMS reprojection error)

    Raises:
        DegenerateSolutionError: If OpenCV cannot solve the system
    """
    # Unit aspect ratio is what CALIB_FIX_ASPECT_RATIO keeps
    matrix = np.eye(3, dtype=np.float64)
    distortion = np.zeros(DISTORTION_COEFFICIENTS, dtype=np.float64)

    try:
        error, matrix, distortion, _, _ = cv2.calibrateCamera(
            [np.asarray(o, dtype=np.float32) for o in object_sets],
            [np.asarray(i, dtype=np.float32).reshape(-1, 1, 2) for i in image_sets],
            resolution,
            matrix,
            distortion,
            flags=flags,
        )
    except cv2.error as e:
        raise DegenerateSolutionError(f"Calibration failed: {e}") from e

    distortion = distortion.ravel().astype(np.float64)
    if distortion.size < DISTORTION_COEFFICIENTS:
        distortion = np.pad(distortion, (0, DISTORTION_COEFFICIENTS - distortion.size))

    return matrix.astype(np.float64), distortion[:DISTORTION_COEFFICIENTS], float(error)


def validate_solution(matrix: np.ndarray, distortion: np.ndarray, error: float) -> None:
    """
    Reject solver output that is not usable as a camera model.

    Raises:
        DegenerateSolutionError: On non-finite or out-of-range values, or a
            distortion vector that is not 8 coefficients long
    """
    for name, values in (("camera matrix", matrix), ("distortion", distortion)):
        values = np.asarray(values, dtype=np.float64)
        if values.size == 0 or not np.all(np.isfinite(values)):
            raise DegenerateSolutionError(f"Non-finite values in {name}")
        if np.any(np.abs(values) > MAX_ABS_VALUE):
            raise DegenerateSolutionError(f"Out-of-range values in {name}")

    if np.asarray(matrix).shape != (3, 3):
        raise DegenerateSolutionError(f"Camera matrix has shape {np.asarray(matrix).shape}")
    if np.asarray(distortion).size != DISTORTION_COEFFICIENTS:
        raise DegenerateSolutionError(
            f"Expected {DISTORTION_COEFFICIENTS} distortion coefficients, "
            f"got {np.asarray(distortion).size}"
        )
    if not np.isfinite(error) or error < 0:
        raise DegenerateSolutionError(f"Invalid reprojection error {error}")


# ============================================================================
# Quality
# ============================================================================


def compute_reprojection_error(
    object_points: np.ndarray,
    observation: np.ndarray,
    result: CalibrationResult,
) -> float | None:
    """
    Compute reprojection error for a single view.

    Args:
        object_points: (n, 3) reference corner positions
        observation: (n, 2) detected corners
        result: Solved intrinsics

    Returns:
        RMS reprojection error in pixels, or None if can't compute
    """
    if object_points.size == 0 or observation.size == 0:
        return None

    object_points = np.asarray(object_points, dtype=np.float32)
    observation = np.asarray(observation, dtype=np.float32).reshape(-1, 2)

    # Use solvePnP to get pose
    success, rvec, tvec = cv2.solvePnP(
        object_points,
        observation,
        result.matrix,
        result.distortion,
    )

    if not success:
        return None

    # Project points back
    projected, _ = cv2.projectPoints(
        object_points,
        rvec,
        tvec,
        result.matrix,
        result.distortion,
    )
    projected = projected[:, 0, :]

    error = np.sqrt(np.mean((observation - projected) ** 2))
    return float(error)
