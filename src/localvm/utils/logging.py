"""Logging configuration for localvm.

Diagnostics go through the standard ``logging`` module under the
``localvm`` namespace. User-facing progress text is handled separately by
:mod:`localvm.utils.output`. Verbosity is controlled via CLI flags:
- No flag: WARNING only
- -v: INFO level
- -vv: DEBUG level
- -vvv: DEBUG level + SSH transport debug output
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy below WARNING.
_CHATTY_LOGGERS = ("paramiko", "urllib3")

_loggers: dict[str, logging.Logger] = {}


def get_log_level(verbosity: int) -> int:
    """Convert verbosity count to log level.

    Args:
        verbosity: Number of -v flags (0-3).

    Returns:
        Logging level constant.
    """
    levels = {
        0: logging.WARNING,
        1: logging.INFO,
        2: logging.DEBUG,
        3: logging.DEBUG,
    }
    return levels.get(min(max(verbosity, 0), 3), logging.WARNING)


def configure_logging(
    verbosity: int = 0,
    log_file: str | Path | None = None,
    log_level: str | None = None,
) -> None:
    """Configure logging for localvm.

    Sets up a stderr handler at the requested level and, optionally, a
    file handler that always records DEBUG output. Calling this again
    replaces the previously installed handlers.

    Args:
        verbosity: Number of -v flags from CLI (0-3).
        log_file: Optional path to log file.
        log_level: Level name from the config file; a non-zero verbosity
            takes precedence.

    Example:
        >>> configure_logging(verbosity=2)
        >>> configure_logging(log_file="~/.localvm/logs/localvm.log")
    """
    if verbosity == 0 and log_level:
        level = getattr(logging, log_level.upper(), logging.WARNING)
    else:
        level = get_log_level(verbosity)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger("localvm")
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in _CHATTY_LOGGERS:
        chatty = logging.getLogger(name)
        chatty.handlers.clear()
        if verbosity >= 3:
            chatty.setLevel(logging.DEBUG)
            chatty.addHandler(console_handler)
        else:
            chatty.setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module.

    Creates child loggers under the 'localvm' namespace.

    Args:
        name: Name of the module (e.g., 'ssh', 'machine_manager').

    Returns:
        Logger instance.
    """
    full_name = f"localvm.{name}" if not name.startswith("localvm.") else name

    if full_name not in _loggers:
        _loggers[full_name] = logging.getLogger(full_name)

    return _loggers[full_name]


class LogContext:
    """Context manager for temporary log level changes.

    Used to silence transport noise around commands that are expected
    to drop the connection, such as powering off the guest.

    Args:
        logger_name: Name of the logger to modify.
        level: Temporary log level.

    Example:
        >>> with LogContext("paramiko", logging.CRITICAL):
        ...     runner.run_command(record, "sudo poweroff")
    """

    def __init__(self, logger_name: str, level: int) -> None:
        self.logger = logging.getLogger(logger_name)
        self.level = level
        self.original_level: int | None = None

    def __enter__(self) -> LogContext:
        self.original_level = self.logger.level
        self.logger.setLevel(self.level)
        return self

    def __exit__(self, *args: object) -> None:
        if self.original_level is not None:
            self.logger.setLevel(self.original_level)
