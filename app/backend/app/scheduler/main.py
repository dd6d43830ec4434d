"""
Main entry point for the background worker.
Runs the payment monitor and the leaderboard scheduler without the HTTP API.
"""

import asyncio
import signal

from app.core.database import init_database, close_database
from app.core.logging import setup_logging
from app.services.bsc_client import close_bsc_client
from .leaderboard_scheduler import get_leaderboard_scheduler, shutdown_leaderboard_scheduler
from .payment_monitor import get_payment_monitor, shutdown_payment_monitor

import structlog

logger = structlog.get_logger(__name__)

HEALTH_LOG_INTERVAL = 300  # seconds


class SchedulerMain:
    """Background worker coordinator."""

    def __init__(self):
        self.running = False
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        logger.info("Starting background worker")
        await init_database()

        await get_payment_monitor().start()
        await get_leaderboard_scheduler().start()
        self.running = True
        logger.info("Background worker started")

    async def run_forever(self) -> None:
        while self.running:
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=HEALTH_LOG_INTERVAL)
            except asyncio.TimeoutError:
                logger.info(
                    "Worker health",
                    payment_monitor=get_payment_monitor().get_status()["stats"],
                    leaderboard_scheduler=get_leaderboard_scheduler().get_status()["stats"]
                )

    async def stop(self) -> None:
        if not self.running:
            return
        logger.info("Stopping background worker")
        self.running = False
        self._stopped.set()

        await shutdown_payment_monitor()
        await shutdown_leaderboard_scheduler()
        await close_bsc_client()
        await close_database()
        logger.info("Background worker stopped")


async def main():
    """Run the worker until SIGINT / SIGTERM."""
    setup_logging()

    worker = SchedulerMain()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, lambda: asyncio.create_task(worker.stop()))

    try:
        await worker.start()
        await worker.run_forever()
    finally:
        await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
