"""
Logger factory shared by all calibrig modules.

Modules call ``logger = calibrig.logger.get(__name__)``; the command line
entry point calls ``configure()`` once.
"""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_LEVEL_ENV = "CALIBRIG_LOG_LEVEL"

_ROOT_NAME = "calibrig"


def get(name: str) -> logging.Logger:
    """Return a logger under the calibrig hierarchy."""
    if name != _ROOT_NAME and not name.startswith(_ROOT_NAME + "."):
        name = f"{_ROOT_NAME}.{name}"
    return logging.getLogger(name)


def configure(level: str | int | None = None) -> logging.Logger:
    """
    Attach a single stream handler to the calibrig root logger.

    Level defaults to $CALIBRIG_LOG_LEVEL, then INFO. Calling this twice
    does not add a second handler.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger(_ROOT_NAME)
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    return root
