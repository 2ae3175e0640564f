import logging
import os
from typing import Dict, Optional, Union


_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_CONFIGURED: Dict[str, logging.Logger] = {}


def _coerce_level(value: Optional[Union[str, int]]) -> int:
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    if isinstance(value, int):
        return value
    return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger under the ``medscan.`` namespace.

    - Honors LOG_LEVEL (default INFO) and LOG_FILE (optional path).
    - Handlers are attached once per name; propagation is off.
    """
    if name in _CONFIGURED:
        return _CONFIGURED[name]

    logger = logging.getLogger(f"medscan.{name}")
    level = _coerce_level(os.environ.get("LOG_LEVEL", "INFO"))
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    log_file = os.environ.get("LOG_FILE")
    if log_file:
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(formatter)
            logger.addHandler(fh)
        except OSError:
            logger.warning("LOG_FILE could not be opened; continuing without file logging")

    logger.propagate = False
    _CONFIGURED[name] = logger
    return logger


def set_level(value: Union[str, int]) -> int:
    """Change the level of every medscan logger created so far."""
    level = _coerce_level(value)
    for logger in _CONFIGURED.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
    return level
