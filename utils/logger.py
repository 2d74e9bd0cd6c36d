"""
============================================================================
KUMASYNC - LOGGING UTILITY
============================================================================
Logging system built on loguru with console, file and error sinks.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import sys
from typing import TYPE_CHECKING, Optional

from loguru import logger

if TYPE_CHECKING:
    from config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
    "{extra[name]}:{function}:{line} - {message}"
)

# Records emitted through the bare logger still render with a name
logger.configure(extra={"name": "kumasync"})


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(config: Optional["LoggingSettings"] = None) -> None:
    """
    Configure logging system with multiple sinks.
    Sets up console, rotating file and error file logging.
    """
    if config is None:
        from config.settings import get_settings
        config = get_settings().logging

    # Remove default loguru handler
    logger.remove()

    log_level = config.level.value

    if config.console_enabled:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=config.console_colored,
            backtrace=True,
            diagnose=False,
        )

    if config.file_enabled:
        config.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=config.file_rotation,
            retention=config.file_retention,
            compression=config.file_compression,
            serialize=config.json_enabled,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    # Error log file (separate file for errors)
    if config.error_file_enabled:
        config.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression=config.file_compression,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    logger.info("Logging system initialized")
    logger.info(f"Log level: {log_level}")
    logger.info(f"Console logging: {config.console_enabled}")
    logger.info(f"File logging: {config.file_enabled}")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger
