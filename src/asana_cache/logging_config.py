"""Logging setup for the cache service."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger("asana_cache").setLevel(numeric)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
