"""Logging configuration for taskboard."""

import logging
import sys


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """Configure the ``taskboard`` logger namespace.

    Safe to call more than once; the stderr handler is only attached the
    first time.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger("taskboard")
    logger.setLevel(level)

    if not any(getattr(h, "_taskboard", False) for h in logger.handlers):
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        handler._taskboard = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)
    return logger
