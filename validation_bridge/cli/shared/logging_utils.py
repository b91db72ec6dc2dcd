"""Loguru helpers for consistent logging in CLI commands."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

_SINK_IDS: dict[str, int] = {}

_STDERR_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {name}:{line} - {message}"


def configure_stderr_logging(level: str = "INFO") -> None:
    """Replace loguru's default handler with a stderr sink at ``level``."""
    previous = _SINK_IDS.pop("stderr", None)
    if previous is None:
        logger.remove()
    else:
        logger.remove(previous)
    # Resolve sys.stderr per message so redirected streams (tests, daemons) are honoured.
    _SINK_IDS["stderr"] = logger.add(
        lambda message: sys.stderr.write(message),
        level=level.upper(),
        format=_STDERR_FORMAT,
        colorize=False,
    )


def ensure_rotating_log_file(log_path: Path, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given file path."""
    log_path = log_path.expanduser()
    key = str(log_path.resolve())
    if key in _SINK_IDS:
        return log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    sink_id = logger.add(
        str(log_path),
        level=level.upper(),
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[key] = sink_id
    return log_path
