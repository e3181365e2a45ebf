"""
Calibration of a single device from its directory of images and videos.

The run moves through RunState: ENUMERATING -> ACCUMULATING -> SOLVING ->
VALIDATING -> WRITING -> DONE, or FAILED from any of the first four.
Any source that fails hard (unreadable file, frame size change) ends the
run at once; the remaining sources are not looked at.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, ContextManager, Sequence

import cv2
import numpy as np

from . import logger as _logger
from .calibration.intrinsic import (
    CalibrationSolver,
    calibration_flags,
    compute_reprojection_error,
    solve_intrinsics,
    validate_solution,
)
from .calibration.pattern import PatternDetector, detect_chessboard, make_object_points
from .collector import ObservationCollector
from .config import ResultWriter
from .errors import (
    CalibrationError,
    DecodeError,
    DimensionMismatchError,
    InsufficientFramesError,
    NoUsableObservationsError,
    SourceAccessError,
    WriteError,
)
from .preview import preview_result
from .sampler import VideoSource, open_video, sample_video
from .sources import classify_source, list_sources, read_image
from .types import (
    CalibrationResult,
    CalibrationSettings,
    DeviceOutcome,
    DisplayMode,
    RunState,
    SourceKind,
)

logger = _logger.get(__name__)

ImageReader = Callable[[Path], np.ndarray]
VideoOpener = Callable[[Path], ContextManager[VideoSource]]
Writer = Callable[[CalibrationResult], Path]
Preview = Callable[..., int]

# Errors that end the device run as soon as one source raises them
FATAL_SOURCE_ERRORS = (SourceAccessError, DecodeError, DimensionMismatchError)


class DeviceCalibrationRun:
    """
    One calibration run for one device.

    Owns the observation collector for its lifetime; nothing is shared
    with other runs.
    """

    def __init__(
        self,
        device_dir: Path,
        settings: CalibrationSettings,
        detector: PatternDetector = detect_chessboard,
        solver: CalibrationSolver = solve_intrinsics,
        writer: Writer | None = None,
        read_image: ImageReader = read_image,
        open_video: VideoOpener = open_video,
        preview: Preview = preview_result,
    ):
        self.device_dir = device_dir
        self.device = device_dir.name
        self.settings = settings
        self.solver = solver
        self.writer = writer or ResultWriter(settings.output_dir, settings.intrinsics_db)
        self.read_image = read_image
        self.open_video = open_video
        self.preview = preview

        self.state = RunState.IDLE
        self.collector = ObservationCollector(settings.pattern_size, settings.options, detector)
        self.object_points = make_object_points(settings.pattern_size, settings.square_size)
        self.sources_seen = 0
        self.sources_processed = 0

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _outcome(self, **kwargs) -> DeviceOutcome:
        return DeviceOutcome(
            device=self.device,
            state=self.state,
            sources_seen=self.sources_seen,
            sources_processed=self.sources_processed,
            observation_count=len(self.collector),
            **kwargs,
        )

    def _fail(self, error: CalibrationError) -> DeviceOutcome:
        logger.error(f"{self.device}: calibration failed during {self.state.value}: {error}")
        self.state = RunState.FAILED
        return self._outcome(error=error)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> DeviceOutcome:
        logger.info(f"Calibrating {self.device}...")

        self.state = RunState.ENUMERATING
        try:
            sources = list_sources(self.device_dir)
        except SourceAccessError as e:
            return self._fail(e)

        self.state = RunState.ACCUMULATING
        for path in sources:
            try:
                self._accumulate(path)
            except FATAL_SOURCE_ERRORS as e:
                return self._fail(e)

        logger.info(
            f"{self.device}: {len(self.collector)} observation(s) from "
            f"{self.sources_processed} source(s)"
        )
        if len(self.collector) == 0 or self.sources_processed == 0:
            return self._fail(
                NoUsableObservationsError(f"No usable observations for {self.device}")
            )

        self.state = RunState.SOLVING
        resolution = self.collector.frame_size
        object_sets = [self.object_points] * len(self.collector)
        try:
            matrix, distortion, error = self.solver(
                object_sets,
                list(self.collector.observations),
                resolution,
                calibration_flags(self.settings.options),
            )
        except CalibrationError as e:
            return self._fail(e)

        self.state = RunState.VALIDATING
        matrix = np.asarray(matrix, dtype=np.float64)
        distortion = np.asarray(distortion, dtype=np.float64).ravel()
        try:
            validate_solution(matrix, distortion, error)
        except CalibrationError as e:
            return self._fail(e)

        result = CalibrationResult(
            device=self.device,
            resolution=resolution,
            matrix=matrix,
            distortion=distortion,
            error=float(error),
            grid_count=len(self.collector),
        )
        logger.info(f"{self.device}: reprojection error {result.error:.4f}")
        self._log_worst_view(result)

        self.state = RunState.WRITING
        artifact = None
        write_error = None
        try:
            artifact = self.writer(result)
            logger.info(f"{self.device}: saved {artifact}")
        except WriteError as e:
            logger.error(f"{self.device}: {e}")
            write_error = e

        self.state = RunState.DONE
        self._show_preview(result)

        return self._outcome(result=result, artifact=artifact, write_error=write_error)

    def _accumulate(self, path: Path):
        kind = classify_source(path)

        if kind is SourceKind.UNKNOWN:
            logger.warning(f"{self.device}: skipping unrecognised file {path.name}")
            return

        self.sources_seen += 1

        if kind is SourceKind.STILL_IMAGE:
            frame = self.read_image(path)
            accepted = self.collector.process(frame)
            self.sources_processed += 1
            if accepted:
                logger.debug(f"{self.device}: pattern found in {path.name}")
            else:
                logger.warning(f"{self.device}: no pattern in {path.name}")
            return

        settings = self.settings
        with self.open_video(path) as video:
            try:
                report = sample_video(
                    video,
                    self.collector.process,
                    target=settings.frame_target,
                    skip=settings.frame_skip,
                    max_bad_attempts=settings.max_bad_attempts,
                    max_empty_reads=settings.max_empty_reads,
                )
            except InsufficientFramesError as e:
                logger.warning(f"{self.device}: skipping {path.name}: {e}")
                return

        self.sources_processed += 1
        logger.info(
            f"{self.device}: {path.name}: {report.filled}/{report.attempted} "
            f"slots filled ({report.frame_attempts} frames checked)"
        )

    def _log_worst_view(self, result: CalibrationResult):
        if not logger.isEnabledFor(logging.DEBUG):
            return

        errors = []
        for observation in self.collector.observations:
            try:
                errors.append(compute_reprojection_error(self.object_points, observation, result))
            except cv2.error:
                errors.append(None)

        valid = [e for e in errors if e is not None]
        if valid:
            worst = max(valid)
            logger.debug(
                f"{self.device}: worst view {errors.index(worst) + 1} "
                f"with RMS error {worst:.4f}"
            )

    def _show_preview(self, result: CalibrationResult):
        mode = self.settings.options.display_mode
        frames: Sequence[np.ndarray] = self.collector.retained_frames
        if mode is DisplayMode.NONE or not frames:
            return

        try:
            self.preview(frames, result, interactive=mode is DisplayMode.INTERACTIVE)
        except cv2.error as e:
            logger.warning(f"{self.device}: preview unavailable: {e}")


def calibrate_device(device_dir: Path, settings: CalibrationSettings, **collaborators) -> DeviceOutcome:
    """
    Calibrate one device directory.

    Args:
        device_dir: Directory holding the device's images and videos
        settings: Run settings
        **collaborators: Optional detector, solver, writer, read_image,
            open_video, preview overrides

    Returns:
        DeviceOutcome; ``ok`` is True when a validated result was produced
    """
    return DeviceCalibrationRun(device_dir, settings, **collaborators).run()
