"""Logging configuration using loguru.

Diagnostics go to stderr; command output is printed with rich on stdout.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records (filelock uses it) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(verbose: bool = False) -> None:
    """Configure loguru as the sole logging sink.

    WARNING and above by default, everything down to DEBUG with ``verbose``.
    """
    level = "DEBUG" if verbose else "WARNING"

    logger.remove()
    if verbose:
        fmt = (
            "<green>{time:HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        )
    else:
        fmt = "<level>{level}</level>: {message}"
    logger.add(sys.stderr, level=level, format=fmt)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    logging.getLogger("filelock").setLevel(logging.DEBUG if verbose else logging.WARNING)

    logger.debug("Logging initialised (level={})", level)
