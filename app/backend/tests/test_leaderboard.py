"""
Tests for leaderboard periods, rankings, caching and payout.
"""

from datetime import timedelta
from fnmatch import fnmatch

import pytest
from sqlalchemy import select

from app.cache.cache_service import CacheService, RANKINGS_KEY
from app.core.config import settings
from app.core.exceptions import GameStateError, NotFoundError, ValidationError
from app.models.base import utcnow
from app.models.leaderboard import PeriodStatus
from app.models.notification import Notification
from app.models.profile import PlayerProfile
from app.scheduler.leaderboard_scheduler import LeaderboardScheduler
from app.services.leaderboard_service import LeaderboardService, prize_label, time_remaining

from .conftest import PLAYER, OTHER_PLAYER


class FakeRedis:
    """Dictionary with the RedisClient surface used by CacheService."""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def delete_matching(self, pattern):
        return await self.delete(*[key for key in list(self.data) if fnmatch(key, pattern)])


async def add_players(db, *rows):
    for wallet, xp, name in rows:
        db.add(PlayerProfile(wallet_address=wallet, total_xp=xp, player_name=name))
    await db.flush()


def test_prize_labels():
    assert prize_label(0) == "200 XRP"
    assert prize_label(4) == "25 XRP"
    assert prize_label(9) == "10 XRP"
    assert prize_label(10) is None


@pytest.mark.asyncio
async def test_start_new_period(db):
    service = LeaderboardService(db)
    now = utcnow()

    first = await service.start_new_period(now)
    assert first.period_number == 1
    assert first.end_date - first.start_date == timedelta(days=settings.leaderboard_period_days)

    second = await service.start_new_period(now)
    assert second.period_number == 2
    assert first.status == PeriodStatus.COMPLETED.value
    assert (await service.get_active_period()) is second


@pytest.mark.asyncio
async def test_pause_freezes_countdown(db):
    service = LeaderboardService(db)
    start = utcnow()
    period = await service.start_new_period(start)

    paused_at = start + timedelta(days=10)
    await service.toggle_pause(period.id, paused_at)
    frozen = time_remaining(period, paused_at + timedelta(days=5))
    assert frozen["is_paused"]
    assert frozen["days"] == 20
    assert frozen["total_ms"] == 20 * 86400 * 1000

    # Resuming pushes the end date back by the paused time
    await service.toggle_pause(period.id, paused_at + timedelta(days=5))
    assert period.paused_at is None
    assert period.end_date == start + timedelta(days=35)
    assert time_remaining(period, paused_at + timedelta(days=5))["days"] == 20


@pytest.mark.asyncio
async def test_pause_requires_active_period(db):
    service = LeaderboardService(db)
    first = await service.start_new_period()
    await service.start_new_period()

    with pytest.raises(GameStateError):
        await service.toggle_pause(first.id)
    with pytest.raises(NotFoundError):
        await service.toggle_pause(999)


@pytest.mark.asyncio
async def test_time_remaining_after_end(db):
    period = await LeaderboardService(db).start_new_period()
    remaining = time_remaining(period, period.end_date + timedelta(hours=1))
    assert remaining["expired"]
    assert remaining["total_ms"] == 0


@pytest.mark.asyncio
async def test_check_period_lifecycle(db):
    service = LeaderboardService(db)
    now = utcnow()

    started = await service.check_leaderboard_period(now)
    assert started == {"action": "started", "period_number": 1}

    running = await service.check_leaderboard_period(now + timedelta(days=1))
    assert running["reason"] == "running"

    rolled = await service.check_leaderboard_period(now + timedelta(days=31))
    assert rolled == {"action": "rolled_over", "completed_period": 1, "period_number": 2}


@pytest.mark.asyncio
async def test_paused_period_never_expires(db):
    service = LeaderboardService(db)
    now = utcnow()
    period = await service.start_new_period(now)
    await service.toggle_pause(period.id, now)

    result = await service.check_leaderboard_period(now + timedelta(days=60))
    assert result["reason"] == "paused"
    assert period.status == PeriodStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_check_without_rollover(db, monkeypatch):
    monkeypatch.setattr(settings, "leaderboard_auto_rollover", False)
    service = LeaderboardService(db)

    assert (await service.check_leaderboard_period())["action"] == "none"

    period = await service.start_new_period(utcnow() - timedelta(days=31))
    result = await service.check_leaderboard_period()
    assert result == {"action": "completed", "completed_period": 1}
    assert period.status == PeriodStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_rankings(db):
    await add_players(
        db,
        (PLAYER, 25000, "Alice"),
        (OTHER_PLAYER, 60000, None),
        ("0x3333333333333333333333333333333333333333", 500, "Carol"),
    )
    rankings = await LeaderboardService(db).get_rankings(10)

    assert [r["total_xp"] for r in rankings] == [60000, 25000, 500]
    top = rankings[0]
    assert top["rank"] == 1
    assert top["player_name"] == "Anonymous"
    assert top["completed_level"] == 3
    assert top["god_name"] == "Artemis"
    assert top["prize"] == "200 XRP"
    assert rankings[2]["completed_level"] == 0


@pytest.mark.asyncio
async def test_rankings_limit_validation(db):
    service = LeaderboardService(db)
    with pytest.raises(ValidationError):
        await service.get_rankings(0)
    with pytest.raises(ValidationError):
        await service.get_rankings(101)


@pytest.mark.asyncio
async def test_rankings_are_cached(db):
    await add_players(db, (PLAYER, 25000, "Alice"))
    redis = FakeRedis()
    service = LeaderboardService(db, CacheService(redis))

    first = await service.get_rankings(10)
    assert RANKINGS_KEY.format(limit=10) in redis.data

    await add_players(db, (OTHER_PLAYER, 90000, "Bob"))
    assert await service.get_rankings(10) == first

    await service.cache.invalidate_rankings()
    assert len(await service.get_rankings(10)) == 2


@pytest.mark.asyncio
async def test_mark_period_paid(db):
    await add_players(
        db,
        (PLAYER, 90000, "Alice"),
        (OTHER_PLAYER, 60000, "Bob"),
    )
    service = LeaderboardService(db)
    period = await service.start_new_period()

    paid = await service.mark_period_paid(period.id, 0.5)

    assert paid.status == PeriodStatus.PAID.value
    assert paid.total_paid_usd == 175.0
    assert (paid.winner_1st, paid.winner_2nd, paid.winner_3rd) == (PLAYER, OTHER_PLAYER, None)
    assert (paid.winner_1st_score, paid.winner_2nd_score, paid.winner_3rd_score) == (90000, 60000, 0)

    notes = await db.execute(select(Notification).where(Notification.wallet_address == PLAYER))
    assert notes.scalar_one().title == "Leaderboard Winner - 1st Place!"

    with pytest.raises(GameStateError):
        await service.mark_period_paid(period.id, 0.5)


@pytest.mark.asyncio
async def test_mark_period_paid_requires_rate(db):
    period = await LeaderboardService(db).start_new_period()
    with pytest.raises(ValidationError):
        await LeaderboardService(db).mark_period_paid(period.id, 0)


@pytest.mark.asyncio
async def test_scheduler_run_check(database):
    scheduler = LeaderboardScheduler()

    result = await scheduler.run_check()
    assert result["action"] == "started"
    assert (await scheduler.run_check())["action"] == "none"

    status = scheduler.get_status()
    assert status["stats"]["checks"] == 2
    assert status["stats"]["periods_started"] == 1
