"""Logging for wfsctl.

All module loggers are children of the ``wfsctl`` package logger, which owns
the single stdout handler and the level. Module loggers stay at NOTSET, so
``set_level()`` (or ``WFSCTL_LOG_LEVEL`` at first use) re-levels every
component at once.

Lines look like::

    [I 14:23:45.123 transport] Listening on 0.0.0.0:8000
    [W 14:23:45.140 dispatche receive] /remoteInput/attenuation: value 5.0 above 0.0 dB
"""
import logging
import os
import sys
import threading
from typing import Optional, Union


PACKAGE_LOGGER = "wfsctl"
LEVEL_ENV_VAR = "WFSCTL_LOG_LEVEL"
LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Background threads are named "wfsctl-<role>"; only <role> is printed
THREAD_PREFIX = "wfsctl-"

_handler_lock = threading.Lock()


class WfsFormatter(logging.Formatter):
    """Compact formatter: [{level[0]} {time} {module[:9]}{ thread}] {message}

    The thread tag is left out for the main thread, so CLI output stays short
    while receive-loop and tick-loop lines say where they came from.
    """

    def format(self, record):
        module_name = record.name.split('.')[-1][:9].ljust(9)
        timestamp = f"{self.formatTime(record, '%H:%M:%S')}.{record.msecs:03.0f}"

        tag = ""
        thread_name = record.threadName or "MainThread"
        if thread_name != "MainThread":
            if thread_name.startswith(THREAD_PREFIX):
                thread_name = thread_name[len(THREAD_PREFIX):]
            tag = f" {thread_name}"

        line = f"[{record.levelname[0]} {timestamp} {module_name}{tag}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def parse_level(level: Union[str, int]) -> int:
    """Convert a level name (any case) or number to a logging level.

    Raises:
        ValueError: If the name is not one of DEBUG/INFO/WARNING/ERROR/CRITICAL
    """
    if isinstance(level, int) and not isinstance(level, bool):
        return level
    name = str(level).strip().upper()
    if name not in LEVEL_NAMES:
        raise ValueError(f"Log level must be one of {', '.join(LEVEL_NAMES)}, got {level!r}")
    return getattr(logging, name)


def _env_level() -> int:
    try:
        return parse_level(os.getenv(LEVEL_ENV_VAR, "INFO"))
    except ValueError:
        return logging.INFO


def _package_logger() -> logging.Logger:
    """The ``wfsctl`` logger, with its handler installed on first use."""
    package = logging.getLogger(PACKAGE_LOGGER)
    with _handler_lock:
        if not any(isinstance(h.formatter, WfsFormatter) for h in package.handlers):
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(WfsFormatter())
            package.addHandler(handler)
            package.setLevel(_env_level())
    return package


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get logger for a wfsctl component.

    Args:
        name: Component name (usually __name__)
        level: Optional level pinned on this logger only. Without it the
               logger follows the package level (set_level, WFSCTL_LOG_LEVEL,
               then INFO)

    Example:
        >>> from wfsctl.log import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Transport started")
        [I 14:23:45.123 transport] Transport started
    """
    _package_logger()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(parse_level(level))
    return logger


def set_level(level: Union[str, int]) -> None:
    """Re-level every wfsctl logger that has no pinned level.

    Raises:
        ValueError: If level is not a known level name
    """
    _package_logger().setLevel(parse_level(level))
