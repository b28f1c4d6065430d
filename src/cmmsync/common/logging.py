"""Shared logging helpers for cmmsync."""

from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "CMMS_LOG_LEVEL"


def resolve_log_level(level: int | str | None = None) -> int:
    """Turn a level name or number into a logging level, defaulting to ``CMMS_LOG_LEVEL``."""

    if level is None:
        level = os.getenv(LOG_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelNamesMapping().get(level.strip().upper())
    if resolved is None:
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(*, level: int | str | None = None, force: bool = False) -> None:
    """Initialise the root logger with a terse CLI format.

    Optimistic patches and rollbacks log at DEBUG; confirmed remote calls at INFO.
    Pass ``force=True`` to reconfigure during tests.
    """

    logging.basicConfig(
        level=resolve_log_level(level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
