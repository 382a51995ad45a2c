"""
Logging setup for the mermaidview command line.

Modules log through `logging.getLogger(__name__)`; this attaches the
handlers to the package logger once `--log-level` and `--log-file` are known.
"""
import logging
import sys
from typing import Optional, Union

PACKAGE_LOGGER = "mermaidview"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


def resolve_level(level: Union[int, str]) -> int:
    """Accept a level number or a name such as 'debug'; unknown names mean INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Route package log records to stderr and, optionally, to `log_file`.

    Calling it again replaces the handlers from the previous call.
    """
    resolved = resolve_level(level)
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(resolved)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        # Appends, so a relaunch keeps the log of the previous session.
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging at %s%s", logging.getLevelName(resolved), f" to {log_file}" if log_file else "")
    return logger
