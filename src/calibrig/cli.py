#!/usr/bin/env python3
"""
calibrig CLI - per-device camera intrinsics from calibration images and videos.

Usage:
    calibrig [-FLAGS] SQUARE_SIZE [DEVICE] [--config PATH]
    calibrig --help

Required arguments:
    SQUARE_SIZE     edge length of one chessboard square (e.g. meters)

Optional arguments:
    DEVICE          calibrate only this device (default: every device)
    --config PATH   settings file (default: ./calibrig.toml if present)

Flags (combine in one token, e.g. -gpz):
    g   preview the first accepted frame of each device, undistorted
    i   step through every accepted frame, undistorted (Esc/q stops)
    p   fix the principal point
    a   fix the aspect ratio
    z   assume zero tangential distortion
    h   flip frames horizontally
    v   flip frames vertically

Exit codes:
    0   success
    1   usage error
    2   invalid square size
    3   calibration failed
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, replace
from pathlib import Path

from . import logger as _logger
from .config import default_settings, find_settings_file, load_settings, validate_settings
from .errors import InvalidSquareSizeError, UsageError
from .fleet import calibrate_fleet
from .types import CalibrationOptions, DisplayMode

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_BAD_SQUARE_SIZE = 2
EXIT_CALIBRATION_FAILED = 3

FLAG_FIELDS = {
    "p": "fix_principal_point",
    "a": "fix_aspect_ratio",
    "z": "zero_tangential_distortion",
    "h": "flip_horizontal",
    "v": "flip_vertical",
}
DISPLAY_FLAGS = {
    "g": DisplayMode.FIRST_FRAME,
    "i": DisplayMode.INTERACTIVE,
}


@dataclass(frozen=True, slots=True)
class Invocation:
    square_size: float
    device: str | None = None
    options: CalibrationOptions = CalibrationOptions()
    config_path: Path | None = None


def parse_flags(token: str) -> CalibrationOptions:
    """
    Turn a flag token such as "-gpz" into options.

    Raises:
        UsageError: On an unknown flag character
    """
    options = CalibrationOptions()
    for char in token.lstrip("-"):
        if char in FLAG_FIELDS:
            options = replace(options, **{FLAG_FIELDS[char]: True})
        elif char in DISPLAY_FLAGS:
            # Interactive wins over first-frame preview
            if options.display_mode is not DisplayMode.INTERACTIVE:
                options = replace(options, display_mode=DISPLAY_FLAGS[char])
        else:
            raise UsageError(f"Unknown flag: {char}")
    return options


def parse_square_size(value: str) -> float:
    """
    Raises:
        InvalidSquareSizeError: If value is not a positive finite number
    """
    try:
        size = float(value)
    except ValueError:
        raise InvalidSquareSizeError(f"Square size is not a number: {value}") from None
    if not math.isfinite(size) or size <= 0:
        raise InvalidSquareSizeError(f"Square size must be positive: {value}")
    return size


def _is_number(token: str) -> bool:
    try:
        float(token)
    except ValueError:
        return False
    return True


def parse_args(argv: list[str]) -> Invocation:
    """
    Parse command line arguments (without the program name).

    Raises:
        UsageError: On malformed or missing arguments
        InvalidSquareSizeError: On a bad square size
    """
    args = list(argv)
    config_path = None

    positional = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--config":
            if i + 1 >= len(args):
                raise UsageError("--config needs a path")
            config_path = Path(args[i + 1])
            i += 2
            continue
        if arg.startswith("--config="):
            config_path = Path(arg.split("=", 1)[1])
        elif arg.startswith("--"):
            raise UsageError(f"Unknown option: {arg}")
        else:
            positional.append(arg)
        i += 1

    options = CalibrationOptions()
    if positional and positional[0].startswith("-") and not _is_number(positional[0]):
        options = parse_flags(positional.pop(0))

    if not positional:
        raise UsageError("Missing square size")
    if len(positional) > 2:
        raise UsageError(f"Unexpected arguments: {' '.join(positional[2:])}")

    square_size = parse_square_size(positional[0])
    device = positional[1] if len(positional) == 2 else None

    return Invocation(
        square_size=square_size,
        device=device,
        options=options,
        config_path=config_path,
    )


def print_usage():
    print(__doc__)


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if "--help" in argv:
        print_usage()
        return EXIT_OK

    _logger.configure()

    try:
        invocation = parse_args(argv)
    except InvalidSquareSizeError as e:
        print(f"ERROR: {e}")
        return EXIT_BAD_SQUARE_SIZE
    except UsageError as e:
        print(f"ERROR: {e}")
        print_usage()
        return EXIT_USAGE

    try:
        settings_path = find_settings_file(invocation.config_path)
        if settings_path is not None:
            settings = load_settings(settings_path, invocation.square_size, invocation.options)
        else:
            settings = default_settings(invocation.square_size, invocation.options)
            validate_settings(settings)
    except UsageError as e:
        print(f"ERROR: {e}")
        print_usage()
        return EXIT_USAGE

    fleet = calibrate_fleet(settings, invocation.device)

    print()
    for outcome in fleet.outcomes:
        if outcome.ok:
            saved = outcome.artifact if outcome.artifact is not None else "not saved"
            print(
                f"  {outcome.device}: error {outcome.result.error:.4f} "
                f"from {outcome.result.grid_count} views -> {saved}"
            )
        else:
            print(f"  {outcome.device}: FAILED ({outcome.error})")
    if fleet.error is not None:
        print(f"  {fleet.error}")

    if not fleet.ok:
        print("\nCalibration failed")
        return EXIT_CALIBRATION_FAILED

    print(f"\nCalibration complete: {len(fleet.calibrated)} device(s)")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
