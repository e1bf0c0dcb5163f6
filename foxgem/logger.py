"""Logger setup shared by the app, services and background tasks."""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER = "foxgem"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stdout handler to the package logger once and set its level."""

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
