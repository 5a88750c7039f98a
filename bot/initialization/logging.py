"""
Bot Initialization - Logging Module.

Module: logging.py
Configures loguru logger for the bot.
Sets up log rotation and retention policies.
"""

import sys

from loguru import logger


def setup_logging(level: str = "INFO") -> None:
    """Configure console and rotating file sinks."""
    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        "logs/bot.log",
        rotation="1 day",
        retention="7 days",
        level=level,
        encoding="utf-8",
    )

    logger.info("Starting wallet bot...")
