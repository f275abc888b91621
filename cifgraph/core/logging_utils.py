from __future__ import annotations

import logging

PACKAGE_LOGGER = "cifgraph"


def get_logger(name: str) -> logging.Logger:
    """Return a module logger with a sensible default configuration."""
    logger = logging.getLogger(name)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        )
    return logger


def configure_verbosity(debug_level: int = 0, silent: bool = False) -> None:
    """Map parser verbosity settings onto the package logger level.

    silent keeps warnings and errors only; any debug level above zero
    enables DEBUG records (the parser decides how chatty each level is).
    """
    if silent:
        level = logging.WARNING
    elif debug_level > 0:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
