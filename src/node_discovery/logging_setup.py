"""Logging configuration for hosts embedding node discovery."""

import logging
import sys
from typing import Optional, TextIO


PACKAGE_LOGGER = "node_discovery"
HANDLER_NAME = "node-discovery"

VERBOSE_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
QUIET_FORMAT = "[%(name)s] %(message)s"


def setup_logging(verbose: bool = False, stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Attach a stream handler to the node_discovery logger.

    Only this package's loggers (and the pymongo driver's level) are
    touched; the host's root logger is left alone. Calling it again
    replaces the handler instead of adding a second one.

    Args:
        verbose: DEBUG with timestamps (per-tick watch messages included)
                 instead of INFO.
        stream: Where to write; defaults to stderr.

    Returns:
        The node_discovery logger.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in list(package_logger.handlers):
        if handler.get_name() == HANDLER_NAME:
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT if verbose else QUIET_FORMAT))
    package_logger.addHandler(handler)

    # Driver chatter only when debugging
    logging.getLogger("pymongo").setLevel(logging.DEBUG if verbose else logging.WARNING)
    return package_logger
