"""
Stockholm parking service entry point.
"""

import uvicorn
from loguru import logger

from parking.app import create_app
from parking.log import setup_logging
from parking.settings import global_settings


def main() -> None:
    setup_logging(global_settings)
    logger.bind(port=global_settings.port).info("Starting parking server...")
    uvicorn.run(
        create_app(global_settings),
        host=global_settings.host,
        port=global_settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
