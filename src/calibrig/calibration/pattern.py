"""
Chessboard target geometry and detection.

Pure functions - no classes, no state.
"""

from __future__ import annotations

from typing import Callable

import cv2
import numpy as np

from ..types import PatternSize

# (frame, pattern_size) -> (n, 2) corner pixels, or None when not found
PatternDetector = Callable[[np.ndarray, PatternSize], "np.ndarray | None"]

SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.001)
SUBPIX_WINDOW = (11, 11)


# ============================================================================
# Reference Geometry
# ============================================================================


def make_object_points(pattern_size: PatternSize, square_size: float) -> np.ndarray:
    """
    Ideal 3D corner positions of the planar target (z = 0).

    Point index i * columns + j holds (j * square_size, i * square_size, 0).

    Args:
        pattern_size: Interior corner grid
        square_size: Edge length of one square

    Returns:
        (columns * rows, 3) float32 array
    """
    if square_size <= 0:
        raise ValueError(f"square_size must be positive, got {square_size}")

    points = np.zeros((pattern_size.point_count, 3), np.float32)
    points[:, :2] = np.mgrid[0:pattern_size.columns, 0:pattern_size.rows].T.reshape(-1, 2)
    points[:, :2] *= square_size
    return points


def generate_chessboard_image(
    pattern_size: PatternSize,
    square_px: int = 40,
    margin_px: int = 40,
) -> np.ndarray:
    """
    Render a chessboard with the given interior corner grid.

    The board has (columns + 1) x (rows + 1) squares surrounded by a white
    margin, which the detector needs as a quiet zone.

    Returns:
        BGR image as numpy array
    """
    squares_x = pattern_size.columns + 1
    squares_y = pattern_size.rows + 1
    width = squares_x * square_px + 2 * margin_px
    height = squares_y * square_px + 2 * margin_px

    img = np.full((height, width), 255, dtype=np.uint8)
    for row in range(squares_y):
        for col in range(squares_x):
            if (row + col) % 2 == 0:
                y0 = margin_px + row * square_px
                x0 = margin_px + col * square_px
                img[y0:y0 + square_px, x0:x0 + square_px] = 0

    return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)


# ============================================================================
# Detection
# ============================================================================


def detect_chessboard(frame: np.ndarray, pattern_size: PatternSize) -> np.ndarray | None:
    """
    Find the interior chessboard corners in a frame.

    Corners are refined to sub-pixel accuracy.

    Args:
        frame: BGR or grayscale image
        pattern_size: Interior corner grid to look for

    Returns:
        (columns * rows, 2) float32 array, or None if the board is not found
    """
    if frame.ndim == 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    else:
        gray = frame

    flags = cv2.CALIB_CB_ADAPTIVE_THRESH + cv2.CALIB_CB_NORMALIZE_IMAGE
    found, corners = cv2.findChessboardCorners(gray, pattern_size.as_tuple(), flags)
    if not found or corners is None:
        return None

    try:
        corners = cv2.cornerSubPix(gray, corners, SUBPIX_WINDOW, (-1, -1), SUBPIX_CRITERIA)
    except cv2.error:
        pass  # Sub-pixel refinement failed, use raw corners

    return corners.reshape(-1, 2).astype(np.float32)


def draw_observation(
    frame: np.ndarray,
    pattern_size: PatternSize,
    corners: np.ndarray,
) -> np.ndarray:
    """
    Copy of the frame with the detected corners drawn on it.
    """
    annotated = frame.copy()
    cv2.drawChessboardCorners(
        annotated,
        pattern_size.as_tuple(),
        corners.reshape(-1, 1, 2).astype(np.float32),
        True,
    )
    return annotated
