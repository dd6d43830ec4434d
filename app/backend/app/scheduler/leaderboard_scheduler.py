"""
Leaderboard period scheduler.
Periodically closes expired leaderboard periods and opens the next one.
"""

import asyncio
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from app.core.config import settings
from app.core.database import get_async_session
from app.core.exceptions import SchedulerError
from app.models.base import utcnow
from app.services.leaderboard_service import LeaderboardService


logger = structlog.get_logger(__name__)


class LeaderboardSchedulerStatus(Enum):
    """Status of the leaderboard scheduler."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class LeaderboardSchedulerStats:
    """Statistics for leaderboard checks."""
    checks: int = 0
    failed_checks: int = 0
    periods_started: int = 0
    periods_completed: int = 0
    last_action: Optional[str] = None
    start_time: Optional[datetime] = None
    last_run: Optional[datetime] = None


class LeaderboardScheduler:
    """Runs the period check every ``leaderboard_check_interval`` seconds."""

    def __init__(self):
        self.logger = logger.bind(service="leaderboard_scheduler")
        self.status = LeaderboardSchedulerStatus.STOPPED
        self.stats = LeaderboardSchedulerStats()
        self.interval = settings.leaderboard_check_interval

        self._should_stop = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self.status == LeaderboardSchedulerStatus.RUNNING:
            self.logger.warning("Leaderboard scheduler already running")
            return

        if not settings.leaderboard_scheduler_enabled:
            self.logger.info("Leaderboard scheduler disabled in configuration")
            return

        try:
            self.status = LeaderboardSchedulerStatus.STARTING
            self._should_stop = False
            self.stats.start_time = utcnow()
            self._task = asyncio.create_task(self._loop())
            self.status = LeaderboardSchedulerStatus.RUNNING
            self.logger.info("Leaderboard scheduler started", interval=self.interval)
        except Exception as e:
            self.status = LeaderboardSchedulerStatus.ERROR
            self.logger.error("Failed to start leaderboard scheduler", error=str(e))
            raise SchedulerError(f"Failed to start leaderboard scheduler: {e}")

    async def stop(self) -> None:
        if self.status == LeaderboardSchedulerStatus.STOPPED:
            return

        self.status = LeaderboardSchedulerStatus.STOPPING
        self._should_stop = True

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self.status = LeaderboardSchedulerStatus.STOPPED
        self.logger.info("Leaderboard scheduler stopped")

    async def _loop(self) -> None:
        while not self._should_stop:
            try:
                await self.run_check()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.stats.failed_checks += 1
                self.logger.error("Error in leaderboard check", error=str(e))

            await asyncio.sleep(self.interval)

    async def run_check(self) -> Dict[str, Any]:
        """Run one period check in its own session."""
        self.stats.checks += 1
        self.stats.last_run = utcnow()

        async with get_async_session() as db:
            result = await LeaderboardService(db).check_leaderboard_period()

        action = result["action"]
        self.stats.last_action = action
        if action in ("rolled_over", "completed"):
            self.stats.periods_completed += 1
        if action in ("rolled_over", "started"):
            self.stats.periods_started += 1
        if action != "none":
            self.logger.info("Leaderboard period check", **result)
        return result

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "stats": asdict(self.stats),
            "config": {
                "interval": self.interval,
                "period_days": settings.leaderboard_period_days,
                "auto_rollover": settings.leaderboard_auto_rollover,
            },
        }


# Global scheduler instance
_leaderboard_scheduler: Optional[LeaderboardScheduler] = None


def get_leaderboard_scheduler() -> LeaderboardScheduler:
    """Get or create the global leaderboard scheduler."""
    global _leaderboard_scheduler
    if _leaderboard_scheduler is None:
        _leaderboard_scheduler = LeaderboardScheduler()
    return _leaderboard_scheduler


async def shutdown_leaderboard_scheduler() -> None:
    global _leaderboard_scheduler
    if _leaderboard_scheduler:
        await _leaderboard_scheduler.stop()
        _leaderboard_scheduler = None
