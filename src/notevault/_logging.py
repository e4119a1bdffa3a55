"""Logging setup for the ``notevault`` package logger.

Modules log through ``logging.getLogger(__name__)``; nothing is printed
until the CLI calls :func:`configure_logging`. Messages go to stderr as
``[LEVEL] logger: message`` so they never mix with command output on
stdout.

``NOTEVAULT_LOG_LEVEL`` picks the level (default INFO). ``nv --quiet``
raises it to ERROR regardless of the environment.
"""

import logging
import os
import sys

PACKAGE_LOGGER = "notevault"
LOG_LEVEL_ENV = "NOTEVAULT_LOG_LEVEL"
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

_quiet = False


def _env_level() -> int:
    name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(name)
    # getLevelName returns "Level X" for unknown names
    return level if isinstance(level, int) else logging.INFO


def _effective_level() -> int:
    level = _env_level()
    return max(level, logging.ERROR) if _quiet else level


def _apply_level(logger: logging.Logger) -> None:
    level = _effective_level()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


def configure_logging() -> None:
    """Attach a stderr handler to the package logger. Idempotent."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    if logger.handlers:
        _apply_level(logger)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    _apply_level(logger)


def set_quiet_mode(quiet: bool) -> None:
    """Toggle ``--quiet``: only errors are logged while it is on.

    May be called before or after :func:`configure_logging`.
    """
    global _quiet
    _quiet = quiet
    _apply_level(logging.getLogger(PACKAGE_LOGGER))
