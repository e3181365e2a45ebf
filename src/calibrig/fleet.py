"""
Calibration of every device under the data directory.
"""

from __future__ import annotations

import os
from pathlib import Path

from . import logger as _logger
from .device import calibrate_device
from .errors import CalibrationError, SourceAccessError
from .types import CalibrationSettings, DeviceOutcome, FleetOutcome, RunState

logger = _logger.get(__name__)


def list_devices(data_dir: Path) -> list[str]:
    """
    List device names (non-hidden subdirectories) in directory order.

    Order is whatever the filesystem returns; it is not sorted.

    Raises:
        SourceAccessError: If the data directory cannot be read
    """
    devices = []
    try:
        with os.scandir(data_dir) as entries:
            for entry in entries:
                if entry.name.startswith("."):
                    continue
                if entry.is_dir():
                    devices.append(entry.name)
    except OSError as e:
        raise SourceAccessError(f"Cannot read {data_dir}: {e}") from e

    return devices


def calibrate_fleet(
    settings: CalibrationSettings,
    device: str | None = None,
    **collaborators,
) -> FleetOutcome:
    """
    Calibrate one named device or every device in settings.data_dir.

    Stops at the first device that fails: devices after it are not
    attempted, devices before it keep their results.

    Args:
        settings: Run settings
        device: Restrict the run to this device
        **collaborators: Passed through to calibrate_device

    Returns:
        FleetOutcome with one DeviceOutcome per attempted device
    """
    if device is not None:
        device_dir = settings.data_dir / device
        if not device_dir.is_dir():
            error = SourceAccessError(f"No data directory for device {device}: {device_dir}")
            logger.error(str(error))
            return FleetOutcome(
                outcomes=[DeviceOutcome(device=device, state=RunState.FAILED, error=error)]
            )
        devices = [device]
    else:
        try:
            devices = list_devices(settings.data_dir)
        except CalibrationError as e:
            logger.error(str(e))
            return FleetOutcome(error=e)

        if not devices:
            error = SourceAccessError(f"No device directories in {settings.data_dir}")
            logger.error(str(error))
            return FleetOutcome(error=error)

    outcomes = []
    for name in devices:
        outcome = calibrate_device(settings.data_dir / name, settings, **collaborators)
        outcomes.append(outcome)
        if not outcome.ok:
            skipped = len(devices) - len(outcomes)
            if skipped:
                logger.error(f"Stopping after {name} failed; {skipped} device(s) not attempted")
            break

    return FleetOutcome(outcomes=outcomes)
