"""Logging setup for the command-line entry point."""

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "price_tracker"


def configure_logging(level: str = "WARNING", console: Console | None = None) -> logging.Logger:
    """Send package log records to stderr through Rich.

    Calling this again replaces the previous handler instead of stacking a
    second one.

    Args:
        level: Logging level name, e.g. "INFO"
        console: Console to write to, defaults to a stderr console

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    logger.propagate = False
    return logger
