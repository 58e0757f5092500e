"""Application logging helpers.

``get_logger(name)`` hands out stdlib loggers configured once per name:
level from ``echo_reads.config.log_level_name()``, one stream handler and
no propagation to the root logger.
"""
from __future__ import annotations

import logging
import threading
from typing import Set

from echo_reads import config as app_config

LOG_FORMAT = "[echo_reads] %(asctime)s %(levelname)s %(name)s %(message)s"

_LOCK = threading.Lock()
_CONFIGURED: Set[str] = set()


def _configure(logger: logging.Logger) -> None:
    logger.setLevel(getattr(logging, app_config.log_level_name(), logging.INFO))
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False


def get_logger(name: str = "echo_reads") -> logging.Logger:
    logger = logging.getLogger(name)
    if name in _CONFIGURED:
        return logger
    with _LOCK:
        if name not in _CONFIGURED:
            _configure(logger)
            _CONFIGURED.add(name)
    return logger


__all__ = ["get_logger", "LOG_FORMAT"]
