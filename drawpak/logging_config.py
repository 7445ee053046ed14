"""Loguru sink configuration.

Library modules simply do ``from loguru import logger`` and log; nothing is
emitted anywhere until :func:`setup_logger` installs sinks (the CLI does this
on start-up).
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from drawpak.config import settings

_CONSOLE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} - {level} - {message}"
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
)


def setup_logger(
    log_level: Optional[str] = None,
    log_path: Optional[Path] = None,
    console: bool = True,
    file_sink: bool = True,
):
    """Install console and file sinks, replacing any existing ones.

    Args:
        log_level: Minimum level (defaults to ``settings.log_level``).
        log_path: Rotating log file (defaults to ``settings.log_path``).
        console: Write to stderr as well (stdout is left to the CLI).
        file_sink: Disable to skip the rotating log file entirely.

    Returns:
        The configured loguru logger.
    """
    level = (log_level or settings.log_level).upper()
    logger.remove()

    if console:
        logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT)

    if file_sink:
        path = log_path or settings.log_path
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(path),
            level=level,
            format=_FILE_FORMAT,
            rotation="10 MB",
            retention="7 days",
            enqueue=True,
            backtrace=True,
        )

    return logger
