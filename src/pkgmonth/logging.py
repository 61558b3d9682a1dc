"""The pkgmonth logger and its CLI configuration.

Every module logs through ``get_logger()``; nothing is emitted until
``setup_logging`` attaches a handler, so library use stays silent.
"""

import logging
import sys
from typing import TextIO

LOGGER_NAME = "pkgmonth"

DEFAULT_FORMAT = "%(message)s"
VERBOSE_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(message)s"

_logger = logging.getLogger(LOGGER_NAME)
_logger.addHandler(logging.NullHandler())


def get_logger() -> logging.Logger:
    """Get the pkgmonth logger."""
    return _logger


def setup_logging(
    verbose: bool = False, quiet: bool = False, stream: TextIO | None = None
) -> logging.Logger:
    """Send pkgmonth log records to stderr (or ``stream``).

    Quiet wins over verbose: a quiet run shows warnings and errors only.
    Verbose output includes the thread name, since months are fetched by
    worker threads.
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT))

    _logger.handlers.clear()
    _logger.addHandler(handler)
    _logger.setLevel(level)
    return _logger
