"""
Logging configuration and utilities.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional


LOG_PREFIX = "provision"


def setup_logger(name: str,
                log_file: Optional[Path] = None,
                level: str = "INFO",
                format_string: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with console and optional file handlers.

    Loggers under the ``provisioner`` namespace propagate to the root logger,
    so handlers are only attached when a log file or format is requested.

    Args:
        name: Logger name
        log_file: Optional log file path
        level: Logging level
        format_string: Log format string

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if logger.handlers or (log_file is None and format_string is None):
        return logger

    logger.setLevel(getattr(logging, level.upper()))

    if not format_string:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    formatter = logging.Formatter(format_string)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


class StageLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the dependency and stage being worked on."""

    def process(self, msg, kwargs):
        return f"[{LOG_PREFIX}] [{self.extra['dependency']}:{self.extra['stage']}] {msg}", kwargs


def stage_logger(logger: logging.Logger, dependency: str, stage: str) -> StageLoggerAdapter:
    """Return an adapter logging as ``[provision] [<dependency>:<stage>] ...``."""
    return StageLoggerAdapter(logger, {"dependency": dependency, "stage": stage})


def setup_root_logger(log_file: Optional[Path] = None,
                     level: str = "INFO",
                     max_file_size_mb: int = 10,
                     backup_count: int = 5):
    """
    Set up the root logger for the application.

    Args:
        log_file: Optional log file path
        level: Logging level
        max_file_size_mb: Size at which the log file is rotated
        backup_count: Number of rotated files to keep
    """
    root_logger = logging.getLogger()

    # Clear any existing handlers
    root_logger.handlers.clear()

    root_logger.setLevel(getattr(logging, level.upper()))

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
