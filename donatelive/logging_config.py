"""
Logging configuration for DonateLive.

Every module logs through ``logging.getLogger(__name__)``; the handlers
live on the package logger so they are configured exactly once.
"""

import logging
import sys
from typing import Optional

LOGGER_NAME = "donatelive"


def setup_logging(
    name: str = LOGGER_NAME, level: int | str = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        name: Logger name
        level: Logging level, numeric or by name (default: INFO)
        log_file: Optional file to write logs to

    Returns:
        Configured logger instance
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
