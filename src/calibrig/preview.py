"""
Undistortion preview of retained calibration frames.
"""

from __future__ import annotations

from typing import Callable, Sequence

import cv2
import numpy as np

from . import logger as _logger
from .types import CalibrationResult

logger = _logger.get(__name__)

WINDOW_NAME = "calibrig - undistorted"
EXIT_KEYS = (27, ord("q"))  # Esc, q
FIRST_FRAME_WAIT_MS = 1000


def build_undistort_maps(result: CalibrationResult) -> tuple[np.ndarray, np.ndarray]:
    """
    Remap tables for undistorting frames of the calibrated device.

    Args:
        result: Solved intrinsics

    Returns:
        (map_x, map_y) for cv2.remap
    """
    width, height = result.resolution
    new_matrix, _ = cv2.getOptimalNewCameraMatrix(
        result.matrix, result.distortion, (width, height), 1, (width, height)
    )
    return cv2.initUndistortRectifyMap(
        result.matrix,
        result.distortion,
        None,
        new_matrix,
        (width, height),
        cv2.CV_16SC2,
    )


def show_undistorted(
    frames: Sequence[np.ndarray],
    result: CalibrationResult,
    interactive: bool = False,
    show: Callable[[str, np.ndarray], None] = cv2.imshow,
    wait_key: Callable[[int], int] = cv2.waitKey,
) -> int:
    """
    Show retained frames after undistortion.

    In interactive mode every frame waits for a key press and Esc or q
    stops the preview. Calibration is already finished at this point.

    Args:
        frames: Frames retained by the collector
        result: Solved intrinsics for the device
        interactive: Block on each frame
        show: Frame display function
        wait_key: Key polling function, milliseconds -> key code

    Returns:
        Number of frames shown
    """
    if not frames:
        return 0

    map_x, map_y = build_undistort_maps(result)
    shown = 0

    for frame in frames:
        undistorted = cv2.remap(frame, map_x, map_y, cv2.INTER_LINEAR)
        show(WINDOW_NAME, undistorted)
        shown += 1

        key = wait_key(0 if interactive else FIRST_FRAME_WAIT_MS) & 0xFF
        if interactive and key in EXIT_KEYS:
            logger.info(f"Preview of {result.device} stopped after {shown} frame(s)")
            break

    return shown


def close_preview():
    try:
        cv2.destroyWindow(WINDOW_NAME)
    except cv2.error:
        pass  # Window was never opened


def preview_result(
    frames: Sequence[np.ndarray],
    result: CalibrationResult,
    interactive: bool = False,
) -> int:
    """Show the undistorted frames on screen and close the window afterwards."""
    try:
        return show_undistorted(frames, result, interactive=interactive)
    finally:
        close_preview()
