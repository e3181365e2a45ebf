"""
Per-device accumulation of chessboard observations.
"""

from __future__ import annotations

import cv2
import numpy as np

from . import logger as _logger
from .calibration.pattern import PatternDetector, detect_chessboard, draw_observation
from .errors import DimensionMismatchError
from .types import CalibrationOptions, DisplayMode, PatternSize

logger = _logger.get(__name__)


def apply_flips(frame: np.ndarray, horizontal: bool, vertical: bool) -> np.ndarray:
    """
    Flip a frame in place and return it.

    Both flags together are a 180 degree rotation.
    """
    if horizontal and vertical:
        frame[:] = cv2.flip(frame, -1)
    elif horizontal:
        frame[:] = cv2.flip(frame, 1)
    elif vertical:
        frame[:] = cv2.flip(frame, 0)
    return frame


class ObservationCollector:
    """
    Collects observations for one device run.

    The first accepted frame fixes the device's frame size; a later frame
    of a different size raises DimensionMismatchError, which ends the
    device run.
    """

    def __init__(
        self,
        pattern_size: PatternSize,
        options: CalibrationOptions,
        detector: PatternDetector = detect_chessboard,
    ):
        self.pattern_size = pattern_size
        self.options = options
        self.detector = detector

        self.observations: list[np.ndarray] = []
        self.frame_size: tuple[int, int] | None = None  # (width, height)
        self.retained_frames: list[np.ndarray] = []

    def __len__(self) -> int:
        return len(self.observations)

    def process(self, frame: np.ndarray | None) -> bool:
        """
        Try to turn one frame into an observation.

        Args:
            frame: BGR image, flipped in place if flips are configured

        Returns:
            True if the frame was accepted

        Raises:
            DimensionMismatchError: If the frame size differs from the first
                accepted frame
        """
        if frame is None or frame.size == 0 or frame.shape[0] == 0 or frame.shape[1] == 0:
            return False

        apply_flips(frame, self.options.flip_horizontal, self.options.flip_vertical)

        corners = self.detector(frame, self.pattern_size)
        if corners is None:
            return False

        corners = np.asarray(corners, dtype=np.float32).reshape(-1, 2)
        if len(corners) != self.pattern_size.point_count:
            logger.debug(
                f"Detector returned {len(corners)} corners, expected "
                f"{self.pattern_size.point_count}"
            )
            return False

        size = (frame.shape[1], frame.shape[0])
        if self.frame_size is None:
            self.frame_size = size
        elif size != self.frame_size:
            raise DimensionMismatchError(self.frame_size, size)

        first = len(self.observations) == 0
        self.observations.append(corners)

        mode = self.options.display_mode
        if mode is DisplayMode.INTERACTIVE or (mode is DisplayMode.FIRST_FRAME and first):
            self.retained_frames.append(draw_observation(frame, self.pattern_size, corners))

        return True
