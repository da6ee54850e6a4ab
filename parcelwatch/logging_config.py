"""
Logging configuration for ParcelWatch.
Uses loguru for enhanced logging capabilities.
"""

import sys
from pathlib import Path
from loguru import logger

from parcelwatch.config import ParcelWatchConfig


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# user/tracking columns come from TrackingLogger.bind(); "-" outside a tracking
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
    "user={extra[user_id]} tracking={extra[tracking_number]} | "
    "{name}:{function}:{line} | {message}"
)


def _add_file_sink(path: Path, level: str, retention: str) -> None:
    logger.add(
        str(path),
        format=FILE_FORMAT,
        level=level,
        rotation="10 MB",
        retention=retention,
        compression="zip",
        enqueue=True,  # reconciliations log from worker threads too
    )


def setup_logging(config: ParcelWatchConfig, console: bool = True) -> None:
    """
    Configure logging for the service.

    Writes LOG_FILE at LOG_LEVEL and, next to it, <name>.error.log with
    errors only.

    Args:
        config: ParcelWatch configuration
        console: Whether to output to console
    """
    logger.remove()
    logger.configure(extra={"user_id": "-", "tracking_number": "-"})

    if console:
        logger.add(sys.stdout, format=CONSOLE_FORMAT, level=config.log_level, colorize=True)

    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    _add_file_sink(log_path, config.log_level, retention="30 days")
    _add_file_sink(log_path.with_name(f"{log_path.stem}.error.log"), "ERROR", retention="60 days")

    logger.info(f"Logging initialized - Level: {config.log_level}, File: {log_path}")


class TrackingLogger:
    """Context logger for work on a single tracking."""

    def __init__(self, user_id: int, tracking_number: str):
        self.tracking_number = tracking_number
        self._logger = logger.bind(user_id=user_id, tracking_number=tracking_number)

    def _prefix(self, message: str) -> str:
        return f"[Tracking:{self.tracking_number}] {message}"

    def info(self, message: str):
        self._logger.info(self._prefix(message))

    def debug(self, message: str):
        self._logger.debug(self._prefix(message))

    def error(self, message: str):
        self._logger.error(self._prefix(message))
