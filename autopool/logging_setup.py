"""
Logging setup.

Module: logging_setup.py
Configures loguru logger for the engine and its workers.
Sets up log rotation and retention policies.
"""

import sys

from loguru import logger

from autopool.config.settings import settings


def setup_logging(component: str = "autopool") -> None:
    """Configure stderr and rotating file sinks."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.add(
        f"logs/{component}.log",
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        encoding="utf-8",
    )

    logger.info(f"Logging configured for {component} ({settings.environment})")
