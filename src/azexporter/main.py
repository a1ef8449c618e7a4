# src/azexporter/main.py
"""
Process entry point: wires the pipeline from the environment, serves the
metrics endpoint and runs collection ticks until SIGTERM/SIGINT.
"""

import asyncio
import logging
import signal
import sys
import traceback

from .core.config import config
from .core.exceptions import TickFailedError
from .core.factory import get_scheduler
from .metrics.exposition import start_exposition

logger = logging.getLogger(__name__)


async def serve() -> None:
    """
    Runs the exporter until a shutdown signal arrives. With TICK_FAILURE_POLICY
    'exit' a failed tick ends the loop and is raised from here.
    """
    if config.OTEL_ENABLED:
        from .core.telemetry import initialize_telemetry

        initialize_telemetry()

    scheduler = get_scheduler(config)
    start_exposition(scheduler.registry, config.SERVER_PORT, addr=config.SERVER_BIND)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Signal handlers are not available on every platform (e.g. Windows).
            pass

    collection = scheduler.start(config.SCRAPE_INTERVAL)
    stop_wait = asyncio.create_task(shutdown.wait())
    try:
        await asyncio.wait({collection, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        if collection.done() and not collection.cancelled():
            # Only an escalated tick failure ends the loop on its own.
            collection.result()
        logger.info("Shutdown requested, stopping exporter.")
    finally:
        stop_wait.cancel()
        await scheduler.stop()


def main() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting Azure exporter...")
    try:
        asyncio.run(serve())
    except TickFailedError as e:
        logger.error("Exiting after failed collection tick: %s", e)
        sys.exit(1)
    except Exception as e:
        logger.error(f"An unexpected error occurred: {e}")
        logger.error("Startup failed: %s", traceback.format_exc())
        sys.exit(1)
    logger.info("Azure exporter stopped.")


if __name__ == "__main__":
    main()
