"""Logging configuration for the gateway."""

import logging
import os
import sys

LOGGER_NAME = "llmbridge"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    raw = level or os.getenv("LLMBRIDGE_LOG_LEVEL") or "INFO"
    resolved = logging.getLevelName(str(raw).strip().upper())
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Set up the gateway logger with a stdout handler.

    Calling it again replaces the handler instead of stacking a second one.
    """
    logger = logging.getLogger(LOGGER_NAME)
    resolved = _resolve_level(level)
    logger.setLevel(resolved)

    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved)
    console_handler.setFormatter(
        logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    )
    logger.addHandler(console_handler)

    # Let pytest's caplog and uvicorn's root handlers see our records too
    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
