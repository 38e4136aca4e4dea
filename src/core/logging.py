"""
Structured logging for the query builder.

Every module asks for its logger through :func:`get_logger`; the handler is
attached once per logger and the level follows ``Settings.log_level`` unless
the caller overrides it.
"""
from __future__ import annotations

import logging
import sys

from src.core.config import get_settings

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    name = (level or get_settings().log_level).upper()
    return getattr(logging, name, logging.INFO)


def get_logger(name: str, level: str | int | None = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(_resolve_level(level))
    return logger


def quiet_http_loggers(level: int = logging.WARNING) -> None:
    """httpx logs every request at INFO; keep it out of the builder's output."""
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(level)
