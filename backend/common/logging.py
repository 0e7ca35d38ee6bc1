"""
Common logging configuration for the analytics gateway.

This module provides centralized logging configuration using loguru. It configures
console logging and, optionally, file-based logging with rotation and retention.

Log Files (when LOG_TO_FILE is enabled):
    - {LOG_DIR}/{service_name}.log: All logs at configured level (default: INFO)
    - {LOG_DIR}/{service_name}-error.log: Only ERROR level logs

Log Rotation:
    - Error logs: Rotate at 10 MB, retain 30 days, compress with zip
    - General logs: Rotate at 50 MB, retain 7 days, compress with zip

Example:
    ```python
    from common.logging import setup_logging

    setup_logging("analytics-gateway")

    from loguru import logger
    logger.info("Gateway started")
    ```
"""

from pathlib import Path
import sys

from loguru import logger

from common.config import BaseServiceSettings, get_settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(
    service_name: str | None = None,
    settings: BaseServiceSettings | None = None,
) -> None:
    """
    Configure logging for the application using loguru.

    Args:
        service_name: Optional name of the service. If provided, log files are
            named after it; otherwise generic names are used.
        settings: Optional settings instance. Loaded via get_settings() when omitted.

    Side Effects:
        - Removes existing loguru handlers
        - Adds a console handler and, if LOG_TO_FILE is set, two file handlers
        - Creates the log directory if it doesn't exist

    Note:
        Call this early in application startup. Calling it again replaces the
        previously configured handlers.
    """
    settings = settings or get_settings(service_name)

    # Remove default handler
    logger.remove()

    logger.add(
        sys.stdout,
        format=CONSOLE_FORMAT,
        level=settings.LOG_LEVEL,
        colorize=True,
    )

    if not settings.LOG_TO_FILE:
        return

    logs_dir = Path(settings.LOG_DIR)
    logs_dir.mkdir(parents=True, exist_ok=True)

    base_name = service_name or "app"
    service_log_file = logs_dir / f"{base_name}.log"
    service_error_file = logs_dir / f"{base_name}-error.log"

    logger.add(
        service_error_file,
        format=FILE_FORMAT,
        level="ERROR",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
    )

    logger.add(
        service_log_file,
        format=FILE_FORMAT,
        level=settings.LOG_LEVEL,
        rotation="50 MB",
        retention="7 days",
        compression="zip",
    )
