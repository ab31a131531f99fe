from __future__ import annotations

import logging
import sys

"""Logging initialisation with labelled prefixes.

Every line is ``LABEL message`` on stdout. Besides the standard levels two
custom ones are registered:

- DETAIL (15): progress detail below INFO, e.g. "Output 12 Account members"
- SUMMARY (25): the single end-of-run summary line

Modules log through ``logging.getLogger(__name__)``; records propagate to the
package logger configured here.
"""

__all__ = [
    "DETAIL",
    "SUMMARY_LEVEL",
    "get_logger",
    "log_summary",
    "reset_logging",
    "set_level",
    "setup_logging",
]

LOGGER_NAME = "planning_extract"
DETAIL = 15
SUMMARY_LEVEL = 25

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        DETAIL: "DETAIL",
        logging.INFO: "INFO",
        SUMMARY_LEVEL: "SUMMARY",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        message = f"{label} {record.getMessage()}"
        if record.exc_info and record.levelno <= logging.DEBUG:
            message += "\n" + self.formatException(record.exc_info)
        return message


def setup_logging(level: int = DETAIL) -> logging.Logger:
    """Configure the package logger (idempotent).

    Args:
        level: threshold for the console handler; DETAIL shows progress
            detail, DEBUG everything.
    """
    global _logger
    if _logger is not None:
        return _logger

    logging.addLevelName(DETAIL, "DETAIL")
    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    _logger = logger
    return logger


def set_level(level: int | str) -> None:
    logger = get_logger()
    logger.setLevel(level)
    for h in logger.handlers:
        h.setLevel(level)


def get_logger() -> logging.Logger:
    if _logger is None:
        return setup_logging()
    return _logger


def log_summary(message: str) -> None:
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Forget the configured logger. Used by tests."""
    global _logger
    if _logger is not None:
        for handler in _logger.handlers[:]:
            _logger.removeHandler(handler)
        _logger.propagate = True
        _logger.setLevel(logging.NOTSET)
    _logger = None
