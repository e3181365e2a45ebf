"""
Calibration source discovery.

Sources are classified by file extension only; content is never sniffed.
"""

from __future__ import annotations

import os
from pathlib import Path

import cv2
import numpy as np

from . import logger as _logger
from .errors import DecodeError, SourceAccessError
from .types import SourceKind

logger = _logger.get(__name__)

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "bmp", "tif", "tiff"})
VIDEO_EXTENSIONS = frozenset({"mpg", "mpeg", "avi", "mov", "mp4", "mkv"})


def classify_source(path: str | os.PathLike) -> SourceKind:
    """
    Classify a file as still image, video or unknown by its extension.

    Args:
        path: File path or bare file name

    Returns:
        SourceKind for the extension after the last "."
    """
    name = os.path.basename(os.fspath(path))
    if "." not in name:
        return SourceKind.UNKNOWN

    extension = name.rsplit(".", 1)[1].lower()
    if extension in IMAGE_EXTENSIONS:
        return SourceKind.STILL_IMAGE
    if extension in VIDEO_EXTENSIONS:
        return SourceKind.VIDEO
    return SourceKind.UNKNOWN


def read_image(path: Path) -> np.ndarray:
    """
    Decode a still image.

    Raises:
        DecodeError: If OpenCV cannot decode the file
    """
    img = cv2.imread(str(path))
    if img is None or img.size == 0:
        raise DecodeError(f"Error reading image: {path}")
    return img


def list_sources(device_dir: Path) -> list[Path]:
    """
    List candidate source files of a device in directory order.

    Hidden entries and anything that is not a regular file are skipped.

    Raises:
        SourceAccessError: If the directory cannot be read
    """
    sources = []
    try:
        with os.scandir(device_dir) as entries:
            for entry in entries:
                if entry.name.startswith("."):
                    continue
                if not entry.is_file():
                    logger.debug(f"Skipping non-file entry {entry.path}")
                    continue
                sources.append(Path(entry.path))
    except OSError as e:
        raise SourceAccessError(f"Cannot read {device_dir}: {e}") from e

    return sources
