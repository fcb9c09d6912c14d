#!/usr/bin/env python3

"""
parallelmap Logging Utilities

This module provides logging functionality for the parallelization session, the dispatcher and the backend providers. It implements the PMLogger class as a lightweight convenience wrapper around Python's standard logging module, configuring the package logger hierarchy rooted at "parallelmap" with a console handler and an optional file handler sharing one timestamped formatter. Session-level informational messages (startup, mapping summaries, shutdown) are emitted at INFO level and controlled by the show_info option, while per-element details and timings are emitted at DEBUG level. Modules obtain child loggers through get_logger so that a single PMLogger configuration controls the output of the whole package.

Classes:
    PMLogger: Logging wrapper configuring console and file output for the package logger.

Functions:
    get_logger: Return a child logger of the package logger.
    ensure_console_logging: Attach a default console handler when nothing is configured.

Date: November 2025
Version: 1.0.0
"""

import sys
import logging
from typing import Optional

from .constants import LOGGER_NAME

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


class PMLogger:
    """
    Logging utility wrapper for the parallelmap package with configurable console and file output handlers. Creating a PMLogger clears any handlers previously attached to the named logger so that repeated configuration never duplicates messages. Simple forwarding methods (info, warning, error, debug) expose the underlying logger.
    """

    def __init__(self, name: str = LOGGER_NAME, level: int = logging.INFO,
                 log_file: Optional[str] = None, verbose: bool = True) -> None:
        """
        Initialize and configure a logger with console and optional file output handlers. The named logger gets the requested level threshold, loses any existing handlers, and receives a stdout handler when verbose is set and a file handler when a log file path is given. Both handlers share the package's timestamped formatter.

        Parameters:
            name (str): Logger name, defaults to the package logger "parallelmap".
            level (int): Minimum logging level threshold (default: logging.INFO).
            log_file (Optional[str]): Path of a log file for persistent output, None disables file logging.
            verbose (bool): Attach a console handler writing to stdout (default: True).

        Returns:
            None
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        self.logger.handlers.clear()

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

        if verbose:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)

    def debug(self, message: str) -> None:
        self.logger.debug(message)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return the package logger or one of its children.

    Parameters:
        name (Optional[str]): Dotted suffix below "parallelmap", or a full module name starting with it.

    Returns:
        logging.Logger: Logger inside the package hierarchy.
    """
    if not name or name == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    if name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def ensure_console_logging() -> None:
    """
    Attach a default INFO console handler to the package logger when neither the package logger nor the root logger has handlers, so that session messages requested through show_info are visible without any logging setup by the application.
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    if package_logger.handlers or logging.getLogger().handlers:
        return
    PMLogger(name=LOGGER_NAME, level=logging.INFO, verbose=True)
