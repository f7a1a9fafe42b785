"""Logging helpers for the service."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

from . import config

console = Console(stderr=True)


def setup_logger(name: str, level: int | str = config.LOG_LEVEL) -> logging.Logger:
    """Return a logger that writes through a shared rich handler.

    Calling this repeatedly for the same name does not stack handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = RichHandler(
            rich_tracebacks=True,
            console=console,
            show_time=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger
