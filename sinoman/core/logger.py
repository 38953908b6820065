"""Logging setup for Sinoman.

The application configures the ``sinoman`` logger once at startup; modules
log through ``logging.getLogger(__name__)`` and inherit its handler and level.
"""

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Audit levels use "warn"; the logging module only knows "WARNING".
_LEVEL_ALIASES = {"WARN": "WARNING"}
_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Set the level of a logger and attach a console handler once.

    Args:
        name: Logger name, normally the top-level package
        level: One of debug, info, warn/warning, error, critical (any case)

    Raises:
        ValueError: If the level is not recognised
    """
    level_upper = level.upper()
    level_upper = _LEVEL_ALIASES.get(level_upper, level_upper)
    if level_upper not in _VALID_LEVELS:
        raise ValueError(
            f"Invalid log level: {level}. Must be one of: DEBUG, INFO, WARN, ERROR, CRITICAL"
        )

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level_upper))

    # create_app may run more than once per process (tests, reloads)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    return logger
