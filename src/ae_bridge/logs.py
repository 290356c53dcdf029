"""Append-only activity log shared by CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

ACTIVITY_LOGGER_NAME = "ae_bridge.activity"
_FORMAT = "[%(asctime)s] %(message)s"

logger = logging.getLogger(__name__)
activity_logger = logging.getLogger(ACTIVITY_LOGGER_NAME)


def configure_activity_log(log_path: Path) -> Path | None:
    """Attach a timestamped file handler for activity lines.

    Returns the log path, or None when the file cannot be opened. Calling it
    again with the same path is a no-op.
    """

    resolved = log_path.expanduser()
    for handler in activity_logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == resolved:
            return resolved
    try:
        resolved.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(resolved, encoding="utf-8", delay=True)
    except OSError as exc:
        logger.warning("Activity log unavailable at %s: %s", resolved, exc)
        return None
    handler.setFormatter(logging.Formatter(_FORMAT))
    activity_logger.addHandler(handler)
    activity_logger.setLevel(logging.INFO)
    return resolved


def close_activity_log() -> None:
    """Detach and close every activity file handler."""

    for handler in list(activity_logger.handlers):
        if isinstance(handler, logging.FileHandler):
            activity_logger.removeHandler(handler)
            handler.close()


def append_log(lines: Iterable[str]) -> None:
    """Write activity lines; the sink never raises into delivery code."""

    for line in lines:
        activity_logger.info("%s", line)


def clear_log(log_path: Path) -> bool:
    """Delete the activity log file. Returns True when a file was removed."""

    close_activity_log()
    resolved = log_path.expanduser()
    try:
        resolved.unlink()
    except FileNotFoundError:
        return False
    return True
