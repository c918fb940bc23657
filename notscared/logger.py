"""
Logging configuration
"""
from loguru import logger
import os
import sys
from notscared.config import Settings


def setup_logger(settings: Settings):
    """Configure logger with appropriate settings"""
    logger.remove()  # Remove default handler

    # Console logging
    logger.add(
        sys.stderr,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level
    )

    if settings.log_dir:
        # File logging
        logger.add(
            os.path.join(settings.log_dir, "notscared_{time:YYYY-MM-DD}.log"),
            rotation="00:00",
            retention="30 days",
            compression="zip",
            level="INFO"
        )

        # Error file
        logger.add(
            os.path.join(settings.log_dir, "errors_{time:YYYY-MM-DD}.log"),
            rotation="00:00",
            retention="90 days",
            level="ERROR"
        )

    return logger
