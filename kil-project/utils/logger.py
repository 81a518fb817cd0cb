# What it does: Central logging setup for kil, routing diagnostics through rich's console handler
# How it does: get_logger() hands each module a standard logging.Logger with a RichHandler attached once; setup_logging() applies the configured level from the CLI entry point
# What data structure it uses: The logging module's logger hierarchy (a tree keyed by dotted module names)

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

# Diagnostics go to stderr so command output on stdout stays clean
console = Console(stderr=True)

DEFAULT_LEVEL = "WARNING"


def _make_handler():
    handler = RichHandler(
        console=console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%X]"))
    return handler


def get_logger(name, level=None):
    """Return a logger for `name` with rich output.

    The level comes from `level`, else the LOG_LEVEL environment variable,
    else WARNING so that normal commands stay quiet.
    """
    logger = logging.getLogger(name)

    # Avoid stacking handlers when a module is imported more than once
    if logger.handlers:
        return logger

    if level is None:
        level = os.getenv("LOG_LEVEL", DEFAULT_LEVEL)
    logger.setLevel(level.upper())
    logger.addHandler(_make_handler())

    # Let pytest's caplog see records through the root logger
    logger.propagate = True
    return logger


def setup_logging(level=DEFAULT_LEVEL): # Called once from kil.py; the environment overrides the configured level
    level = os.getenv("LOG_LEVEL", level).upper()

    # Module loggers already carry a rich handler, so only their level changes here
    for name, logger in logging.Logger.manager.loggerDict.items():
        if isinstance(logger, logging.Logger) and name.startswith(("utils", "commands")):
            logger.setLevel(level)
