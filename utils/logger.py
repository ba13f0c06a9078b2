"""Logging utilities for the page pipeline."""
import logging
from rich.logging import RichHandler
from rich.console import Console

import config

console = Console()


def setup_logger(name: str, level: int = None) -> logging.Logger:
    """Set up a logger with rich formatting.

    Args:
        name: Logger name
        level: Logging level (defaults to config.LOG_LEVEL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if level is None:
        level = logging.getLevelName(config.LOG_LEVEL.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    # Avoid adding multiple handlers
    if not logger.handlers:
        handler = RichHandler(
            rich_tracebacks=True,
            console=console,
            show_time=True,
            show_path=False
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger
