"""
Tests for core/log_setup.py — labeled formatter and idempotent setup.
"""

import logging
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.log_setup import LOGGER_NAME, LabeledFormatter, get_logger, reset_logging, setup_logging


@pytest.fixture(autouse=True)
def restore_level():
    yield
    setup_logging("INFO")


def _own_handlers(logger):
    # pytest's log capture attaches its own handlers to the logger as well.
    return [h for h in logger.handlers if isinstance(h.formatter, LabeledFormatter)]


def _record(level, msg, exc_info=None):
    return logging.LogRecord(LOGGER_NAME, level, "/app/core/normalizer.py", 10, msg, (), exc_info)


def test_formatter_labels():
    fmt = LabeledFormatter()
    assert fmt.format(_record(logging.INFO, "normalized 3 students")) == "INFO [normalizer] normalized 3 students"
    assert fmt.format(_record(logging.WARNING, "careful")).startswith("WARN ")


def test_formatter_includes_traceback():
    try:
        raise ValueError("boom")
    except ValueError:
        exc_info = sys.exc_info()
    text = LabeledFormatter().format(_record(logging.ERROR, "failed", exc_info))
    assert text.startswith("ERROR [normalizer] failed\n")
    assert "ValueError: boom" in text


def test_setup_is_idempotent():
    first = setup_logging("INFO")
    second = setup_logging("DEBUG")
    assert first is second
    assert len(_own_handlers(second)) == 1
    assert second.level == logging.DEBUG
    assert second.propagate is False


def test_unknown_level_defaults_to_info():
    reset_logging()
    logger = setup_logging("CHATTY")
    assert logger.level == logging.INFO
    assert len(_own_handlers(logger)) == 1
    assert get_logger() is logger
