"""
Logging setup.

Every component logs through loguru and attaches structured fields with
``logger.bind(...)``; this module only decides where records go.
"""

import sys

from loguru import logger

from parking.settings import Settings

SERVICE_NAME = "stockholmParking"


def setup_logging(settings: Settings) -> None:
    """Replace the default loguru sink with a stdout sink for the service."""
    logger.remove()
    logger.configure(extra={"service": SERVICE_NAME})
    if settings.log_json:
        logger.add(sys.stdout, level=settings.log_level.upper(), serialize=True)
    else:
        logger.add(
            sys.stdout,
            level=settings.log_level.upper(),
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | {message} | {extra}"
            ),
        )
    logger.debug(f"Logging configured (level={settings.log_level}, json={settings.log_json})")
