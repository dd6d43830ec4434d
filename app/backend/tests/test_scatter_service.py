"""
Tests for scatter bonus triggering and play.
"""

import pytest
from sqlalchemy import select

from app.core.exceptions import GameStateError, ValidationError
from app.game.scatter import SCATTER_AMOUNTS
from app.models.payout import ScatterWin
from app.services.progression_service import ProgressionService
from app.services.scatter_service import ScatterService, PENDING_MESSAGE

from .conftest import PLAYER, OTHER_PLAYER, add_finished_game, tx_hash


async def win_streak(db, wallet=PLAYER, start=1, count=3):
    games = []
    for offset in range(count):
        # Newest game last
        games.append(await add_finished_game(db, wallet, 1000000, tx_hash(start + offset), minutes_ago=count - offset))
    return games


@pytest.mark.asyncio
async def test_three_top_prizes_trigger_scatter(db):
    games = await win_streak(db)
    service = ScatterService(db)

    assert await service.check_trigger(games[-1], 3)

    profile = await ProgressionService(db).get_profile(PLAYER)
    assert profile.scatter_pending
    assert profile.scatter_trigger_games == sorted(g.id for g in games)

    status = await service.check_pending_scatter(PLAYER)
    assert status == {"has_pending_scatter": True, "message": PENDING_MESSAGE}


@pytest.mark.asyncio
async def test_broken_streak_does_not_trigger(db):
    await add_finished_game(db, PLAYER, 1000000, tx_hash(1), minutes_ago=3)
    await add_finished_game(db, PLAYER, 750000, tx_hash(2), minutes_ago=2)
    latest = await add_finished_game(db, PLAYER, 1000000, tx_hash(3), minutes_ago=1)

    assert not await ScatterService(db).check_trigger(latest, 3)


@pytest.mark.asyncio
async def test_other_wallets_do_not_count(db):
    await add_finished_game(db, PLAYER, 1000000, tx_hash(1), minutes_ago=3)
    await add_finished_game(db, OTHER_PLAYER, 1000000, tx_hash(2), minutes_ago=2)
    latest = await add_finished_game(db, PLAYER, 1000000, tx_hash(3), minutes_ago=1)

    assert not await ScatterService(db).check_trigger(latest, 3)


@pytest.mark.asyncio
async def test_streak_length_follows_settings(db):
    games = await win_streak(db, count=2)
    service = ScatterService(db)
    assert not await service.check_trigger(games[-1], 3)
    assert await service.check_trigger(games[-1], 2)


@pytest.mark.asyncio
async def test_play_scatter(db):
    games = await win_streak(db)
    service = ScatterService(db)
    await service.check_trigger(games[-1], 3)

    scatter = await service.play_scatter(PLAYER, [0, 5, 14])

    assert sorted(scatter.box_amounts) == sorted(SCATTER_AMOUNTS)
    expected = round(sum(scatter.box_amounts[i] for i in (0, 5, 14)), 2)
    assert scatter.total_winnings == expected
    assert scatter.status == "pending"
    assert scatter.triggering_games == sorted(g.id for g in games)

    status = await service.check_pending_scatter(PLAYER)
    assert not status["has_pending_scatter"]


@pytest.mark.asyncio
async def test_same_games_never_pay_twice(db):
    games = await win_streak(db)
    service = ScatterService(db)
    await service.check_trigger(games[-1], 3)
    await service.play_scatter(PLAYER, [1, 2, 3])

    assert not await service.check_trigger(games[-1], 3)

    # A fourth top prize forms a new set of three
    newest = await add_finished_game(db, PLAYER, 1000000, tx_hash(10))
    assert await service.check_trigger(newest, 3)


@pytest.mark.asyncio
async def test_play_requires_pending_and_valid_picks(db):
    service = ScatterService(db)
    with pytest.raises(GameStateError):
        await service.play_scatter(PLAYER, [0, 1, 2])
    with pytest.raises(ValidationError):
        await service.play_scatter(PLAYER, [0, 0, 1])
    with pytest.raises(ValidationError):
        await service.play_scatter(PLAYER, [0, 1, 15])

    wins = await db.execute(select(ScatterWin))
    assert wins.scalars().all() == []
