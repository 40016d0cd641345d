"""
log_setup.py — Application logger with labeled level prefixes.

Output looks like ``INFO [normalizer] normalized 42 students`` on stdout.
setup_logging() is idempotent; get_logger() configures on first use.
"""

import logging
import os
import sys
from typing import Optional

LOGGER_NAME = "score_analytics"

_logger: Optional[logging.Logger] = None


class LabeledFormatter(logging.Formatter):
    """Prefix each message with a short level label."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        message = f"{label} [{record.module}] {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the application logger once; later calls only adjust the level."""
    global _logger

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    if _logger is not None:
        _logger.setLevel(numeric_level)
        return _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)

    # Keep uvicorn's root handlers from printing everything twice.
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    if _logger is None:
        return setup_logging()
    return _logger


def reset_logging() -> None:
    """Forget the configured logger. Used by tests."""
    global _logger
    _logger = None
