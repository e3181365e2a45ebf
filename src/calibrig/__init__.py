# calibrig - per-device camera intrinsics from calibration images and videos

__version__ = "0.1.0"

# Core types
from calibrig.types import (
    PatternSize,
    DisplayMode,
    SourceKind,
    CalibrationOptions,
    CalibrationSettings,
    CalibrationResult,
    SamplingReport,
    RunState,
    DeviceOutcome,
    FleetOutcome,
)

# Errors
from calibrig.errors import (
    CalibrationError,
    UsageError,
    InvalidSquareSizeError,
    SourceAccessError,
    DecodeError,
    DimensionMismatchError,
    InsufficientFramesError,
    NoUsableObservationsError,
    DegenerateSolutionError,
    WriteError,
)

# Configuration and persistence
from calibrig.config import (
    default_settings,
    load_settings,
    save_settings,
    save_result,
    load_result,
    save_intrinsics,
    load_intrinsics,
    ResultWriter,
)

# Pipeline
from calibrig.sources import classify_source, list_sources
from calibrig.sampler import sample_video, SlotCursor
from calibrig.collector import ObservationCollector
from calibrig.device import DeviceCalibrationRun, calibrate_device
from calibrig.fleet import calibrate_fleet, list_devices

__all__ = [
    # Core types
    "PatternSize",
    "DisplayMode",
    "SourceKind",
    "CalibrationOptions",
    "CalibrationSettings",
    "CalibrationResult",
    "SamplingReport",
    "RunState",
    "DeviceOutcome",
    "FleetOutcome",
    # Errors
    "CalibrationError",
    "UsageError",
    "InvalidSquareSizeError",
    "SourceAccessError",
    "DecodeError",
    "DimensionMismatchError",
    "InsufficientFramesError",
    "NoUsableObservationsError",
    "DegenerateSolutionError",
    "WriteError",
    # Configuration and persistence
    "default_settings",
    "load_settings",
    "save_settings",
    "save_result",
    "load_result",
    "save_intrinsics",
    "load_intrinsics",
    "ResultWriter",
    # Pipeline
    "classify_source",
    "list_sources",
    "sample_video",
    "SlotCursor",
    "ObservationCollector",
    "DeviceCalibrationRun",
    "calibrate_device",
    "calibrate_fleet",
    "list_devices",
]
