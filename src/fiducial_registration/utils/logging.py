"""
Logging Utilities

This module sets up logging for the registration package. Each module obtains
its logger through ``setup_logger(__name__)``; ``configure_logging`` applies a
level and optional log file from the application configuration to every
package logger created so far.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER_PREFIX = "fiducial_registration"

_CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
_FILE_FORMAT = '%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s'
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _file_handler(log_file: str, level: int) -> logging.FileHandler:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        logger.addHandler(_file_handler(log_file, level))

    return logger


def _package_loggers() -> list:
    manager = logging.root.manager
    loggers = []
    for name, obj in list(manager.loggerDict.items()):
        if not isinstance(obj, logging.Logger):
            continue
        if name == PACKAGE_LOGGER_PREFIX or name.startswith(PACKAGE_LOGGER_PREFIX + "."):
            loggers.append(obj)
    return loggers


def configure_logging(level: Union[int, str] = logging.INFO,
                      log_file: Optional[str] = None) -> None:
    """
    Apply a level (and optionally a log file) to all package loggers.

    Args:
        level: Logging level, either numeric or a name such as "DEBUG".
        log_file: Optional path; a file handler is added to each package logger
            that does not already write to this file.
    """
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown logging level: {level}")
        level = numeric

    resolved = str(Path(log_file).resolve()) if log_file else None

    for logger in _package_loggers():
        logger.setLevel(level)
        has_file = False
        for handler in logger.handlers:
            handler.setLevel(level)
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == resolved:
                has_file = True
        if resolved and not has_file:
            logger.addHandler(_file_handler(resolved, level))
