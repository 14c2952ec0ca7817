"""Aura Workers: background achievement and pattern detection."""

import asyncio
import logging

from .config import Config
from .gate import select_detectors
from .health import start_health_server
from .logging import setup_logging
from .registry import registered_types
from .worker import Worker

# Import handlers to register them
from . import jobs  # noqa: F401


def main() -> None:
    config = Config.from_env()
    setup_logging(config.log_format)

    logger = logging.getLogger(__name__)

    logger.info("Aura worker starting")
    logger.info("Log format: %s", config.log_format)
    logger.info("Health port: %d", config.health_port)
    logger.info("Registered job types: %s", registered_types())
    logger.info(
        "Registered detectors: %s",
        [(spec.name, spec.min_level) for spec in select_detectors(4)],
    )

    asyncio.run(_run(config))


async def _run(config: Config) -> None:
    logger = logging.getLogger(__name__)

    health_server = await start_health_server(config.health_port, config.database_url)
    logger.info("Health server started")

    try:
        worker = Worker(config)
        await worker.run()
    finally:
        health_server.close()
        await health_server.wait_closed()


if __name__ == "__main__":
    main()
