"""Logging setup shared by the pipeline, the stores and the CLI.

Everything logs under the ``image-upscaler`` logger. Component loggers
(``image-upscaler.storage``, ``image-upscaler.provider``...) carry no
handler of their own and propagate to it.
"""

import os
import sys
import logging
from typing import Optional

PACKAGE_LOGGER = "image-upscaler"

LOG_FORMATS = {
    "structured": (
        "%(asctime)s | %(name)s | %(levelname)-8s | "
        "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
    ),
    "simple": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = getattr(logging, name, logging.INFO)
    return resolved if isinstance(resolved, int) else logging.INFO


def _build_formatter(format_type: str) -> logging.Formatter:
    chosen = os.getenv("LOG_FORMAT", format_type).lower()
    if chosen == "structured":
        return logging.Formatter(LOG_FORMATS["structured"], datefmt=DATE_FORMAT)
    return logging.Formatter(LOG_FORMATS["simple"])


def setup_logger(
    name: str = PACKAGE_LOGGER,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Configure a stdout logger once and (re)apply its level.

    Args:
        name: Logger name
        level: Level override; falls back to ``LOG_LEVEL`` then INFO
        format_type: "structured" or "simple", overridden by ``LOG_FORMAT``

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_build_formatter(format_type))
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Return a logger, configuring the package logger for component names."""
    if name.startswith(PACKAGE_LOGGER + "."):
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        if not package_logger.handlers:
            setup_logger(PACKAGE_LOGGER)
        return logging.getLogger(name)
    return setup_logger(name)
