"""
Logging setup for cratesync.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

from .config import LoggingConfig


ROOT_LOGGER = "cratesync"


def configure_logging(config: LoggingConfig, debug: bool = False) -> logging.Logger:
    """
    Install handlers on the ``cratesync`` logger.

    Records go to stderr, and to a rotating file when ``config.file`` is
    set. Calling this again replaces the handlers installed before.

    Args:
        config: Logging configuration
        debug: Force the DEBUG level regardless of ``config.level``

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    level = logging.DEBUG if debug else getattr(logging, config.level)
    formatter = logging.Formatter(config.format)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                filename=config.file,
                maxBytes=config.max_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    logger.propagate = False
    return logger
