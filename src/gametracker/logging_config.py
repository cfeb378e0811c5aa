"""Logging setup for gametracker.

Package modules log through ``logging.getLogger(__name__)``; this module
routes those records to a Rich handler for terminal output.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "gametracker"


def configure_logging(level: str = "WARNING", console: Optional[Console] = None) -> logging.Logger:
    """Attach a RichHandler to the package logger.

    Calling this more than once replaces the previous handler instead of
    stacking duplicates.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        console: Console to write to (defaults to stderr)

    Returns:
        The configured package logger
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
    logger.setLevel(level.upper())
    return logger
