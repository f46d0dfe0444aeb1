"""
Silo - Logging
===============
Named loggers that write pipe-separated lines to stdout, plus the
millisecond timer every stage uses for its ``[TAG] ... in %.1fms`` lines.

Verbosity follows ``settings.ENV``: ``dev`` logs DEBUG and up, ``prod``
only WARNING and up.

Usage:
    from silo.src.utils.logger import elapsed_ms, get_logger
    logger = get_logger(__name__)

    t_start = time.perf_counter()
    ...
    logger.info("[STORE] Listed %d record(s) in %.1fms.", n, elapsed_ms(t_start))
"""

import logging
import sys
import time

from silo.config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVEL_BY_ENV = {"dev": logging.DEBUG, "prod": logging.WARNING}


def level_for_env(env: str) -> int:
    """Logging level for an ``ENV`` value; unknown modes get INFO."""
    return _LEVEL_BY_ENV.get(env, logging.INFO)


def _stdout_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the logger *name*, attaching the stdout handler on first use.

    Parameters
    ----------
    name
        Usually the calling module's ``__name__``.
    level
        Explicit level; defaults to the level for ``settings.ENV``.

    Repeated calls return the same logger without stacking handlers.
    Propagation is switched off so lines are not echoed by the root logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = level_for_env(settings.ENV) if level is None else level
    logger.setLevel(resolved)
    logger.addHandler(_stdout_handler(resolved))
    logger.propagate = False
    return logger


def elapsed_ms(t_start: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - t_start) * 1000
