"""
Configuration loading/saving and result persistence.

Pure functions operating on dataclasses.
- TOML for run settings and per-device result files
- SQLite for camera intrinsics (keyed by device + resolution)
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

import numpy as np
import rtoml

from . import logger as _logger
from .errors import UsageError, WriteError
from .types import (
    CalibrationOptions,
    CalibrationResult,
    CalibrationSettings,
    PatternSize,
)

logger = _logger.get(__name__)

SETTINGS_FILENAME = "calibrig.toml"


# ============================================================================
# TOML Run Settings
# ============================================================================


def default_settings(
    square_size: float,
    options: CalibrationOptions | None = None,
) -> CalibrationSettings:
    """
    Settings used when no TOML file is present.

    Args:
        square_size: Edge length of one chessboard square
        options: Command line switches

    Returns:
        CalibrationSettings with a 9x6 pattern and 25 frames per video
    """
    return CalibrationSettings(
        square_size=square_size,
        options=options or CalibrationOptions(),
    )


def find_settings_file(path: Path | None = None) -> Path | None:
    """
    Resolve the settings file to use.

    An explicit path must exist; otherwise calibrig.toml in the working
    directory is used if present.
    """
    if path is not None:
        if not path.is_file():
            raise UsageError(f"Settings file not found: {path}")
        return path

    candidate = Path.cwd() / SETTINGS_FILENAME
    return candidate if candidate.is_file() else None


def load_settings(
    path: Path,
    square_size: float,
    options: CalibrationOptions | None = None,
) -> CalibrationSettings:
    """
    Load run settings from a TOML file.

    Relative directories are resolved against the file's directory.

    Args:
        path: Path to calibrig.toml
        square_size: Edge length of one chessboard square (command line)
        options: Command line switches

    Returns:
        CalibrationSettings dataclass

    Raises:
        UsageError: If the file cannot be read or holds invalid values
    """
    try:
        data = rtoml.load(path)
    except (OSError, ValueError, rtoml.TomlParsingError) as e:
        raise UsageError(f"Cannot read settings {path}: {e}") from e

    base = path.parent

    def resolve(value) -> Path:
        p = Path(value)
        return p if p.is_absolute() else base / p

    pattern_data = _table(data, "pattern", path)
    sampling_data = _table(data, "sampling", path)
    defaults = default_settings(square_size, options)

    def integer(table, key, default) -> int:
        value = table.get(key, default)
        # bool is an int subclass; TOML true must not pass as 1
        if isinstance(value, bool) or not isinstance(value, int):
            raise UsageError(f"{key} in {path} must be an integer, got {value!r}")
        return value

    try:
        pattern_size = PatternSize(
            columns=integer(pattern_data, "columns", defaults.pattern_size.columns),
            rows=integer(pattern_data, "rows", defaults.pattern_size.rows),
        )
        settings = CalibrationSettings(
            square_size=square_size,
            options=defaults.options,
            pattern_size=pattern_size,
            frame_target=integer(sampling_data, "frame_target", defaults.frame_target),
            frame_skip=integer(sampling_data, "frame_skip", defaults.frame_skip),
            max_bad_attempts=integer(
                sampling_data, "max_bad_attempts", defaults.max_bad_attempts
            ),
            max_empty_reads=integer(sampling_data, "max_empty_reads", defaults.max_empty_reads),
            data_dir=resolve(data.get("data_dir", defaults.data_dir)),
            output_dir=resolve(data.get("output_dir", defaults.output_dir)),
            intrinsics_db=(
                resolve(data["intrinsics_db"]) if data.get("intrinsics_db") else None
            ),
        )
    except (TypeError, ValueError) as e:
        raise UsageError(f"Invalid value in {path}: {e}") from e

    validate_settings(settings)
    return settings


def _table(data: dict, key: str, path: Path) -> dict:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise UsageError(f"[{key}] in {path} must be a table, got {value!r}")
    return value


def validate_settings(settings: CalibrationSettings) -> None:
    """
    Raises:
        UsageError: If a setting is out of range
    """
    if settings.square_size <= 0:
        raise UsageError(f"square size must be positive, got {settings.square_size}")
    if settings.pattern_size.columns < 2 or settings.pattern_size.rows < 2:
        raise UsageError(
            f"pattern must be at least 2x2, got "
            f"{settings.pattern_size.columns}x{settings.pattern_size.rows}"
        )
    if settings.frame_target < 1:
        raise UsageError(f"frame_target must be at least 1, got {settings.frame_target}")
    if settings.frame_skip < 1:
        raise UsageError(f"frame_skip must be at least 1, got {settings.frame_skip}")
    if settings.max_bad_attempts < 0:
        raise UsageError(
            f"max_bad_attempts must not be negative, got {settings.max_bad_attempts}"
        )
    if settings.max_empty_reads < 1:
        raise UsageError(
            f"max_empty_reads must be at least 1, got {settings.max_empty_reads}"
        )


def save_settings(settings: CalibrationSettings, path: Path) -> None:
    """
    Save run settings to a TOML file.

    Square size and command line switches are not stored; they come from
    the command line on every run.

    Args:
        settings: CalibrationSettings dataclass
        path: Path to save calibrig.toml
    """
    data = {
        "data_dir": str(settings.data_dir),
        "output_dir": str(settings.output_dir),
        "pattern": {
            "columns": settings.pattern_size.columns,
            "rows": settings.pattern_size.rows,
        },
        "sampling": {
            "frame_target": settings.frame_target,
            "frame_skip": settings.frame_skip,
            "max_bad_attempts": settings.max_bad_attempts,
            "max_empty_reads": settings.max_empty_reads,
        },
    }
    if settings.intrinsics_db is not None:
        data["intrinsics_db"] = str(settings.intrinsics_db)

    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        rtoml.dump(data, f)


# ============================================================================
# TOML Result Files
# ============================================================================


def result_path(device: str, output_dir: Path) -> Path:
    return output_dir / f"{device}.toml"


def save_result(result: CalibrationResult, output_dir: Path) -> Path:
    """
    Save a device's calibration to <output_dir>/<device>.toml.

    Args:
        result: CalibrationResult dataclass
        output_dir: Directory for result files

    Returns:
        Path of the written file
    """
    data = {
        "device": result.device,
        "resolution": list(result.resolution),
        "camera_matrix": np.asarray(result.matrix, dtype=np.float64).tolist(),
        "distortion": np.asarray(result.distortion, dtype=np.float64).ravel().tolist(),
        "reprojection_error": float(result.error),
        "grid_count": result.grid_count,
        "created_at": datetime.now().isoformat(timespec="seconds"),
    }

    output_dir.mkdir(parents=True, exist_ok=True)
    path = result_path(result.device, output_dir)

    with open(path, "w") as f:
        rtoml.dump(data, f)

    return path


def load_result(path: Path) -> CalibrationResult | None:
    """
    Load a calibration result file.

    Args:
        path: Path to <device>.toml

    Returns:
        CalibrationResult, or None if the file doesn't exist
    """
    if not path.exists():
        return None

    data = rtoml.load(path)

    return CalibrationResult(
        device=data["device"],
        resolution=tuple(data["resolution"]),
        matrix=np.array(data["camera_matrix"], dtype=np.float64).reshape(3, 3),
        distortion=np.array(data["distortion"], dtype=np.float64),
        error=float(data["reprojection_error"]),
        grid_count=int(data["grid_count"]),
    )


# ============================================================================
# SQLite Intrinsics Database
# ============================================================================


def init_intrinsics_db(db_path: Path) -> None:
    """
    Initialize the intrinsics database if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS intrinsics (
            device TEXT NOT NULL,
            width INTEGER NOT NULL,
            height INTEGER NOT NULL,
            matrix BLOB NOT NULL,
            distortion BLOB NOT NULL,
            error REAL NOT NULL,
            grid_count INTEGER NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (device, width, height)
        )
    """)
    conn.commit()
    conn.close()


def save_intrinsics(
    result: CalibrationResult,
    db_path: Path,
) -> None:
    """
    Save camera intrinsics to database.

    Uses INSERT OR REPLACE to update existing entries.

    Args:
        result: CalibrationResult dataclass
        db_path: Path to SQLite database file
    """
    init_intrinsics_db(db_path)

    conn = sqlite3.connect(db_path)
    conn.execute(
        """
        INSERT OR REPLACE INTO intrinsics
        (device, width, height, matrix, distortion, error, grid_count)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """,
        (
            result.device,
            result.resolution[0],
            result.resolution[1],
            np.asarray(result.matrix, dtype=np.float64).tobytes(),
            np.asarray(result.distortion, dtype=np.float64).tobytes(),
            float(result.error),
            result.grid_count,
        ),
    )
    conn.commit()
    conn.close()


def load_intrinsics(
    device: str,
    resolution: tuple[int, int],
    db_path: Path,
) -> CalibrationResult | None:
    """
    Load camera intrinsics from database.

    Args:
        device: Device name
        resolution: (width, height) tuple
        db_path: Path to SQLite database file

    Returns:
        CalibrationResult if found, None otherwise
    """
    if not db_path.exists():
        return None

    conn = sqlite3.connect(db_path)
    cursor = conn.execute(
        """
        SELECT matrix, distortion, error, grid_count
        FROM intrinsics
        WHERE device = ? AND width = ? AND height = ?
    """,
        (device, resolution[0], resolution[1]),
    )

    row = cursor.fetchone()
    conn.close()

    if row is None:
        return None

    return CalibrationResult(
        device=device,
        resolution=resolution,
        matrix=np.frombuffer(row[0], dtype=np.float64).reshape(3, 3),
        distortion=np.frombuffer(row[1], dtype=np.float64),
        error=row[2],
        grid_count=row[3],
    )


# ============================================================================
# Result Writer
# ============================================================================


class ResultWriter:
    """
    Persists a device result as TOML and, if configured, in SQLite.
    """

    def __init__(self, output_dir: Path, intrinsics_db: Path | None = None):
        self.output_dir = output_dir
        self.intrinsics_db = intrinsics_db

    def __call__(self, result: CalibrationResult) -> Path:
        """
        Returns:
            Path of the TOML result file

        Raises:
            WriteError: If either store fails
        """
        try:
            path = save_result(result, self.output_dir)
        except OSError as e:
            raise WriteError(f"Cannot write result for {result.device}: {e}") from e

        if self.intrinsics_db is not None:
            try:
                save_intrinsics(result, self.intrinsics_db)
            except (OSError, sqlite3.Error) as e:
                raise WriteError(
                    f"Cannot store {result.device} in {self.intrinsics_db}: {e}"
                ) from e
            logger.debug(f"Stored {result.device} in {self.intrinsics_db}")

        return path
