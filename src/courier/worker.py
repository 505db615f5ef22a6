"""Standalone retry worker process.

Runs the delivery loop without the API, for deployments that keep
``COURIER_WEBHOOK_WORKER_ENABLED=false`` on their web processes.

Usage:
    python -m courier.worker

Or via the console script:
    courier-worker
"""

from __future__ import annotations

import asyncio
import signal
import sys

from courier.config import Settings
from courier.logging import bind_context, configure_logging, get_logger
from courier.service import CourierService

logger = get_logger(__name__)


async def run_worker(settings: Settings | None = None) -> None:
    """Run the retry worker until SIGINT or SIGTERM."""
    if settings is None:
        settings = Settings()

    configure_logging(level=settings.log_level, format=settings.log_format)

    async with CourierService.create(settings) as service:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass

        bind_context(worker_id=service.worker.worker_id)
        service.start_worker()
        logger.info(
            "Courier worker running",
            tick_interval_ms=settings.webhook_worker_tick_interval_ms,
            batch_size=settings.webhook_batch_size,
        )
        await stop.wait()
        logger.info("Courier worker shutting down")


def main() -> None:
    """Console script entry point."""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
