"""
Temporal frame sampling from calibration videos.

A video is split into ``target`` slots of ``stride`` frames. Each slot is
probed at its start; a rejected frame shifts the probe by ``skip`` frames
until ``max_bad_attempts`` is reached, after which the slot is abandoned.
This bounds the work to ``target * (max_bad_attempts + 1)`` processed
frames while keeping the samples spread over the whole video.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

import cv2
import numpy as np

from . import logger as _logger
from .errors import DecodeError, InsufficientFramesError
from .types import SamplingReport

logger = _logger.get(__name__)


class VideoSource(Protocol):
    frame_count: int

    def read_at(self, position: int) -> np.ndarray | None:
        ...


# ============================================================================
# OpenCV Video
# ============================================================================


@dataclass
class OpenCVVideo:
    """Seekable video file read through cv2.VideoCapture."""

    path: Path

    capture: cv2.VideoCapture | None = field(default=None, init=False)
    frame_count: int = field(default=0, init=False)

    def open(self) -> "OpenCVVideo":
        self.capture = cv2.VideoCapture(str(self.path))
        if not self.capture.isOpened():
            self.capture.release()
            self.capture = None
            raise DecodeError(f"Cannot open video {self.path}")

        self.frame_count = int(self.capture.get(cv2.CAP_PROP_FRAME_COUNT))
        return self

    def read_at(self, position: int) -> np.ndarray | None:
        """Decode the frame at an absolute position, None on failure."""
        if self.capture is None:
            raise DecodeError(f"Video {self.path} is not open")

        self.capture.set(cv2.CAP_PROP_POS_FRAMES, position)
        ok, frame = self.capture.read()
        if not ok or frame is None or frame.size == 0:
            return None
        return frame

    def close(self):
        if self.capture is not None:
            self.capture.release()
            self.capture = None

    def __enter__(self) -> "OpenCVVideo":
        if self.capture is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def open_video(path: Path) -> OpenCVVideo:
    """
    Open a video file for sampling.

    Raises:
        DecodeError: If OpenCV cannot open the file
    """
    return OpenCVVideo(path).open()


# ============================================================================
# Slot State Machine
# ============================================================================


@dataclass
class SlotCursor:
    """
    Position bookkeeping for slot sampling.

    ``step`` is the slot being filled, ``bad_attempt`` the number of
    rejected frames for that slot so far.
    """

    target: int
    stride: int
    skip: int
    max_bad_attempts: int

    step: int = 0
    bad_attempt: int = 0
    filled: int = 0

    @property
    def done(self) -> bool:
        return self.step >= self.target

    @property
    def position(self) -> int:
        return self.step * self.stride + self.bad_attempt * self.skip

    def accept(self):
        self.filled += 1
        self._advance()

    def reject(self) -> bool:
        """
        Record a rejected frame.

        Returns:
            True if the slot gets another attempt, False if it was abandoned
        """
        if self.bad_attempt < self.max_bad_attempts:
            self.bad_attempt += 1
            return True
        self._advance()
        return False

    def _advance(self):
        self.step += 1
        self.bad_attempt = 0


# ============================================================================
# Sampling
# ============================================================================


def sample_video(
    video: VideoSource,
    process: Callable[[np.ndarray], bool],
    target: int = 25,
    skip: int = 5,
    max_bad_attempts: int = 5,
    max_empty_reads: int = 10,
) -> SamplingReport:
    """
    Feed ``target`` well-spread frames of a video to ``process``.

    Args:
        video: Opened video source
        process: Frame consumer, returns True when the frame is accepted
        target: Number of slots
        skip: Frame offset applied per bad attempt within a slot
        max_bad_attempts: Retries per slot before abandoning it
        max_empty_reads: Consecutive empty decodes at one position before
            the position counts as a bad attempt

    Returns:
        SamplingReport with attempted/filled slot counts

    Raises:
        InsufficientFramesError: If the video is shorter than ``target``
            (raised before any frame is decoded)
    """
    if target < 1:
        raise ValueError(f"target must be at least 1, got {target}")

    frame_count = int(video.frame_count)
    if frame_count < target:
        raise InsufficientFramesError(frame_count, target)

    cursor = SlotCursor(
        target=target,
        stride=frame_count // target,
        skip=skip,
        max_bad_attempts=max_bad_attempts,
    )
    frame_attempts = 0
    empty_reads = 0
    consecutive_empty = 0

    while not cursor.done:
        position = cursor.position
        frame = video.read_at(position)

        if frame is None or frame.size == 0:
            empty_reads += 1
            consecutive_empty += 1
            if consecutive_empty < max_empty_reads:
                continue
            logger.debug(f"Giving up on undecodable frame {position}")
            consecutive_empty = 0
            cursor.reject()
            continue

        consecutive_empty = 0
        frame_attempts += 1
        if process(frame):
            logger.debug(f"Slot {cursor.step + 1}/{target}: accepted frame {position}")
            cursor.accept()
        elif not cursor.reject():
            logger.debug(f"Slot {cursor.step}/{target}: no usable frame, skipped")

    return SamplingReport(
        attempted=target,
        filled=cursor.filled,
        frame_attempts=frame_attempts,
        empty_reads=empty_reads,
    )
