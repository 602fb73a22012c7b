"""Logging configuration for stateguard."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "STATEGUARD_LOG_LEVEL"


def setup_logging(debug: bool = False, console: Console | None = None) -> None:
    """Configure logging for the command line.

    Reads STATEGUARD_LOG_LEVEL (defaults to WARNING). ``debug`` forces DEBUG.
    Records are rendered on stderr through rich so they don't mix with
    JSON written to stdout.
    """
    log_level = "DEBUG" if debug else os.getenv(LOG_LEVEL_ENV, "WARNING").upper()
    level = getattr(logging, log_level, logging.WARNING)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="[%X]"))

    logger = logging.getLogger("stateguard")
    logger.handlers = [handler]
    logger.setLevel(level)
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Usually __name__ of the calling module

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
