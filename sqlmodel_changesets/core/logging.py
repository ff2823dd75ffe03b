# Logging configuration for the sqlmodel_changesets package logger.

import logging
from typing import IO, Optional

from sqlmodel_changesets.settings import Settings

PACKAGE_LOGGER_NAME = "sqlmodel_changesets"

# Recommended format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Default level if LOG_LEVEL env var is not set
DEFAULT_LOG_LEVEL = "INFO"

# Valid log levels
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

logger = logging.getLogger(__name__)

# The handler `setup_logging` attached for its `stream`, replaced on each call.
_stream_handler: Optional[logging.Handler] = None


def setup_logging(level: Optional[str] = None, stream: Optional[IO[str]] = None) -> logging.Logger:
    """
    Configures the package logger; the root logger and its handlers are left to the application.

    Reads the level from the LOG_LEVEL environment variable unless `level` is given.
    Falls back to INFO, with a warning, if the level is not recognised.
    Compile, save and persist-failure messages then propagate to whatever the
    application configured. Pass `stream` to also write them there directly.

    Returns:
        The package logger.
    """
    global _stream_handler

    log_level_name = (level or Settings().get_log_level(default=DEFAULT_LOG_LEVEL)).upper()
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)

    if log_level_name not in VALID_LOG_LEVELS:
        logger.warning(
            f"Invalid LOG_LEVEL '{log_level_name}'. "
            f"Defaulting to {DEFAULT_LOG_LEVEL}. "
            f"Valid levels are: {', '.join(VALID_LOG_LEVELS)}"
        )
        log_level_name = DEFAULT_LOG_LEVEL

    package_logger.setLevel(logging.getLevelName(log_level_name))

    if not any(isinstance(handler, logging.NullHandler) for handler in package_logger.handlers):
        package_logger.addHandler(logging.NullHandler())

    if _stream_handler is not None:
        package_logger.removeHandler(_stream_handler)
        _stream_handler = None
    if stream is not None:
        _stream_handler = logging.StreamHandler(stream)
        _stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(_stream_handler)

    logger.debug(f"Logging configured with level {log_level_name}.")
    return package_logger
