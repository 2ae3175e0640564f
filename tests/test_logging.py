from __future__ import annotations

import logging

from medscan.logging import get_logger, set_level


def test_get_logger_is_configured_once() -> None:
    first = get_logger("test-once")
    again = get_logger("test-once")
    assert first is again
    assert len(first.handlers) >= 1
    assert first.name == "medscan.test-once"
    assert first.propagate is False


def test_set_level_applies_to_existing_loggers() -> None:
    logger = get_logger("test-level")
    try:
        assert set_level("debug") == logging.DEBUG
        assert logger.level == logging.DEBUG
        assert all(h.level == logging.DEBUG for h in logger.handlers)
    finally:
        set_level("INFO")
