"""
Leaderboard service.
30-day XP competitions: period lifecycle with pause/resume, rankings with XRP
prize labels and payout bookkeeping.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from app.cache.cache_service import CacheService
from app.core.config import settings
from app.core.exceptions import GameStateError, NotFoundError, ValidationError
from app.game.levels import get_completed_level_numbers, get_tier
from app.models.base import utcnow
from app.models.leaderboard import LeaderboardPeriod, PeriodStatus
from app.models.profile import PlayerProfile
from .notification_service import NotificationService

logger = structlog.get_logger(__name__)

# XRP prize per rank (index 0 = 1st place)
RANK_PRIZES_XRP = (200, 100, 50, 25, 25, 15, 15, 15, 10, 10)

# Paid out to the top 3 when a period is settled
PAID_PRIZES_XRP = RANK_PRIZES_XRP[:3]
PLACES = ("1st", "2nd", "3rd")


def prize_label(rank_index: int) -> Optional[str]:
    """Prize label for a 0-based rank, None outside the top 10."""
    if 0 <= rank_index < len(RANK_PRIZES_XRP):
        return f"{RANK_PRIZES_XRP[rank_index]} XRP"
    return None


def time_remaining(period: LeaderboardPeriod, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Countdown to the period end, frozen while paused and zero after the end."""
    now = now or utcnow()
    if period.paused_at is not None and period.frozen_time_remaining_ms is not None:
        remaining_ms = period.frozen_time_remaining_ms
    else:
        remaining_ms = int((period.end_date - now).total_seconds() * 1000)
    remaining_ms = max(remaining_ms, 0)

    seconds_total = remaining_ms // 1000
    return {
        "days": seconds_total // 86400,
        "hours": (seconds_total % 86400) // 3600,
        "minutes": (seconds_total % 3600) // 60,
        "seconds": seconds_total % 60,
        "total_ms": remaining_ms,
        "is_paused": period.paused_at is not None,
        "expired": remaining_ms == 0,
    }


class LeaderboardService:
    """Service for leaderboard periods and rankings."""

    def __init__(self, db: AsyncSession, cache: Optional[CacheService] = None):
        self.db = db
        self.cache = cache
        self.logger = logger.bind(service="leaderboard_service")
        self.notifications = NotificationService(db)

    # ============================================================================
    # PERIODS
    # ============================================================================

    async def get_active_period(self) -> Optional[LeaderboardPeriod]:
        result = await self.db.execute(
            select(LeaderboardPeriod)
            .where(LeaderboardPeriod.status == PeriodStatus.ACTIVE.value)
            .order_by(desc(LeaderboardPeriod.created_at), desc(LeaderboardPeriod.id))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_periods(self) -> List[LeaderboardPeriod]:
        result = await self.db.execute(
            select(LeaderboardPeriod).order_by(desc(LeaderboardPeriod.period_number))
        )
        return list(result.scalars().all())

    async def _get_period(self, period_id: int) -> LeaderboardPeriod:
        period = await self.db.get(LeaderboardPeriod, period_id)
        if period is None:
            raise NotFoundError(f"Leaderboard period not found: {period_id}", {"period_id": period_id})
        return period

    async def start_new_period(self, now: Optional[datetime] = None) -> LeaderboardPeriod:
        """Complete the active period (if any) and open the next one."""
        now = now or utcnow()

        active = await self.get_active_period()
        if active:
            active.status = PeriodStatus.COMPLETED.value

        count = await self.db.execute(select(func.count(LeaderboardPeriod.id)))
        period = LeaderboardPeriod(
            period_number=count.scalar_one() + 1,
            start_date=now,
            end_date=now + timedelta(days=settings.leaderboard_period_days),
            status=PeriodStatus.ACTIVE.value,
        )
        self.db.add(period)
        await self.db.flush()

        self.logger.info(
            "Leaderboard period started",
            period_number=period.period_number,
            end_date=period.end_date.isoformat(),
            completed_previous=active.period_number if active else None
        )
        return period

    async def toggle_pause(self, period_id: int, now: Optional[datetime] = None) -> LeaderboardPeriod:
        """
        Pause or resume a period.

        Pausing records the time and the remaining countdown; resuming pushes
        the end date back by the paused duration.
        """
        now = now or utcnow()
        period = await self._get_period(period_id)
        if period.status != PeriodStatus.ACTIVE.value:
            raise GameStateError("Only the active period can be paused", {"period_id": period_id})

        if period.paused_at is not None:
            paused_for = now - period.paused_at
            period.end_date = period.end_date + paused_for
            period.paused_at = None
            period.frozen_time_remaining_ms = None
            self.logger.info("Leaderboard period resumed", period_id=period_id, paused_seconds=paused_for.total_seconds())
        else:
            period.paused_at = now
            period.frozen_time_remaining_ms = int((period.end_date - now).total_seconds() * 1000)
            self.logger.info("Leaderboard period paused", period_id=period_id)

        await self.db.flush()
        return period

    async def check_leaderboard_period(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Complete an expired, unpaused active period and, when rollover is
        enabled, open the next one.
        """
        now = now or utcnow()
        active = await self.get_active_period()
        if active is None:
            if settings.leaderboard_auto_rollover:
                period = await self.start_new_period(now)
                return {"action": "started", "period_number": period.period_number}
            return {"action": "none", "reason": "no_active_period"}

        if active.paused_at is not None:
            return {"action": "none", "reason": "paused", "period_number": active.period_number}

        if active.end_date > now:
            return {
                "action": "none",
                "reason": "running",
                "period_number": active.period_number,
                "time_remaining": time_remaining(active, now),
            }

        if settings.leaderboard_auto_rollover:
            period = await self.start_new_period(now)
            return {
                "action": "rolled_over",
                "completed_period": active.period_number,
                "period_number": period.period_number,
            }

        active.status = PeriodStatus.COMPLETED.value
        await self.db.flush()
        self.logger.info("Leaderboard period completed", period_number=active.period_number)
        return {"action": "completed", "completed_period": active.period_number}

    # ============================================================================
    # RANKINGS
    # ============================================================================

    async def get_rankings(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Players by total XP, highest first, with prize labels."""
        if limit < 1 or limit > 100:
            raise ValidationError("Limit must be between 1 and 100", {"limit": limit})

        if self.cache:
            cached = await self.cache.get_rankings(limit)
            if cached is not None:
                return cached

        result = await self.db.execute(
            select(PlayerProfile)
            .order_by(desc(PlayerProfile.total_xp), PlayerProfile.id)
            .limit(limit)
        )

        rankings = []
        for index, profile in enumerate(result.scalars().all()):
            completed = get_completed_level_numbers(profile.total_xp)
            completed_level = completed[-1] if completed else 0
            rankings.append({
                "rank": index + 1,
                "wallet_address": profile.wallet_address,
                "player_name": profile.player_name or "Anonymous",
                "total_xp": profile.total_xp,
                "completed_level": completed_level,
                "god_name": get_tier(completed_level).name,
                "total_games_played": profile.total_games_played,
                "prize": prize_label(index),
            })

        if self.cache:
            await self.cache.set_rankings(limit, rankings)
        return rankings

    # ============================================================================
    # PAYOUT
    # ============================================================================

    async def mark_period_paid(self, period_id: int, xrp_usd_rate: float) -> LeaderboardPeriod:
        """Settle a period: record the top 3 and notify the winners."""
        if xrp_usd_rate is None or xrp_usd_rate <= 0:
            raise ValidationError("XRP/USD rate must be positive", {"xrp_usd_rate": xrp_usd_rate})

        period = await self._get_period(period_id)
        if period.status == PeriodStatus.PAID.value:
            raise GameStateError("Period already paid", {"period_id": period_id})

        top3 = await self.get_rankings_uncached(3)
        total_xrp = sum(PAID_PRIZES_XRP)

        period.status = PeriodStatus.PAID.value
        period.paid_date = utcnow()
        period.xrp_usd_rate = xrp_usd_rate
        period.total_paid_usd = total_xrp * xrp_usd_rate

        winners = top3 + [None] * (3 - len(top3))
        period.winner_1st, period.winner_2nd, period.winner_3rd = (
            w["wallet_address"] if w else None for w in winners
        )
        period.winner_1st_score, period.winner_2nd_score, period.winner_3rd_score = (
            w["total_xp"] if w else 0 for w in winners
        )

        for entry, xrp, place in zip(top3, PAID_PRIZES_XRP, PLACES):
            await self.notifications.notify_player(
                entry["wallet_address"].lower(),
                title=f"Leaderboard Winner - {place} Place!",
                message=(
                    f"Congratulations! You won {xrp} XRP for finishing {place} place "
                    f"in the monthly Deal or No Deal leaderboard!"
                ),
                amount=xrp * xrp_usd_rate
            )

        await self.db.flush()
        self.logger.info(
            "Leaderboard period paid",
            period_number=period.period_number,
            total_paid_usd=period.total_paid_usd,
            winners=[w["wallet_address"] for w in top3]
        )
        return period

    async def get_rankings_uncached(self, limit: int) -> List[Dict[str, Any]]:
        cache, self.cache = self.cache, None
        try:
            return await self.get_rankings(limit)
        finally:
            self.cache = cache


def get_leaderboard_service(db: AsyncSession, cache: Optional[CacheService] = None) -> LeaderboardService:
    """Get leaderboard service instance."""
    return LeaderboardService(db, cache)
