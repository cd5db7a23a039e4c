"""
Logging utilities for the cellsearch package.

Every pipeline stage logs through a child of the ``cellsearch`` logger
(``cellsearch.correlator``, ``cellsearch.frame_sync``, ...), so the stage
that reported a peak, a lock or an overrun shows up in each record. Only the
package logger owns a handler; stage loggers propagate to it.
"""

import logging
import sys
from typing import Optional

PACKAGE = "cellsearch"


class ColorFormatter(logging.Formatter):
    """
    Custom logging formatter that adds ANSI color codes to the log levels.
    """

    GREY = "\x1b[38;20m"
    CYAN = "\x1b[36;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"
    FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"

    LEVEL_COLORS = {
        logging.DEBUG: CYAN,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        log_color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        formatter = logging.Formatter(
            f"{log_color}{self.FORMAT}{self.RESET}",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        return formatter.format(record)


def get_logger(name: str = PACKAGE) -> logging.Logger:
    """
    Returns the package logger or one of its stage loggers.

    The package logger gets a colorized stdout handler the first time it is
    requested. Module names such as ``cellsearch.correlator`` map to child
    loggers without handlers of their own.

    Args:
        name: ``"cellsearch"`` or a dotted name below it.

    Returns:
        A configured logging.Logger instance.
    """
    if name != PACKAGE and not name.startswith(PACKAGE + "."):
        name = f"{PACKAGE}.{name}"
    log = logging.getLogger(name)

    if name == PACKAGE and not log.handlers:
        log.setLevel(logging.INFO)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColorFormatter())
        log.addHandler(handler)

    return log


# Package logger; stage modules use get_logger(__name__)
logger = get_logger()


def _level(level) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper())
    return level


def set_log_level(level, stage: Optional[str] = None):
    """
    Sets the log level of the package, or of a single stage.

    Args:
        level: logging.DEBUG, logging.INFO, etc. or string "DEBUG", "INFO", etc.
        stage: Stage module name (e.g. ``"peak_detector"``). When given, only
            that stage's logger changes; the others keep following the
            package level.
    """
    if stage is None:
        logger.setLevel(_level(level))
    else:
        get_logger(stage).setLevel(_level(level))
