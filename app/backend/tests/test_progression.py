"""
Tests for XP application, trophies and the level 9 branch.
"""

import pytest
from sqlalchemy import select

from app.core.exceptions import GameStateError, PlayerNotFoundError, ValidationError
from app.models.notification import Notification
from app.models.payout import NFTSaleRequest
from app.models.profile import PlayerProfile
from app.models.trophy import PlayerTrophy, Trophy
from app.services.progression_service import DEFAULT_TROPHY_BTC_PRICES, ProgressionService

from .conftest import PLAYER, add_finished_game, tx_hash

MIXED_CASE = "0xAbCdEfAbCdEfAbCdEfAbCdEfAbCdEfAbCdEfAbCd"


async def trophy_levels(db, wallet):
    result = await db.execute(
        select(PlayerTrophy.trophy_level)
        .where(PlayerTrophy.wallet_address == wallet)
        .order_by(PlayerTrophy.trophy_level)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_profile_is_created_lowercase(db):
    service = ProgressionService(db)
    profile = await service.get_or_create_profile(MIXED_CASE, "Zeus Fan")

    assert profile.wallet_address == MIXED_CASE.lower()
    assert profile.god_name == "New God Born"
    assert await service.get_profile(MIXED_CASE) is profile


@pytest.mark.asyncio
async def test_apply_game_result_awards_trophies(db):
    """Crossing 20,001 XP completes levels 0 and 1."""
    service = ProgressionService(db)
    await service.set_player_level(PLAYER, 0, exact_xp=19500)

    result = await service.apply_game_result(PLAYER, 600, 205035)

    assert result["new_levels"] == [1]
    assert not result["marketplace_unlocked"]
    profile = result["profile"]
    assert profile.total_xp == 20100
    assert profile.current_level == 1
    assert profile.god_name == "Aphrodite"
    assert profile.total_games_played == 1
    assert await trophy_levels(db, PLAYER) == [0, 1]


@pytest.mark.asyncio
async def test_trophies_are_not_duplicated(db):
    service = ProgressionService(db)
    first = await service.apply_game_result(PLAYER, 10001, 0)
    second = await service.apply_game_result(PLAYER, 100, 0)

    assert first["new_levels"] == [0]
    assert second["new_levels"] == []
    assert await trophy_levels(db, PLAYER) == [0]


@pytest.mark.asyncio
async def test_level_up_notification(db):
    await ProgressionService(db).apply_game_result(PLAYER, 20001, 0)

    result = await db.execute(select(Notification).where(Notification.type == "level_up"))
    titles = [n.title for n in result.scalars().all()]
    assert "New level unlocked: New God Born!" in titles
    assert "New level unlocked: Aphrodite!" in titles


@pytest.mark.asyncio
async def test_marketplace_unlock(db):
    service = ProgressionService(db)
    await service.set_player_level(PLAYER, 9, exact_xp=500000)

    result = await service.apply_game_result(PLAYER, 1001, 0)
    assert result["new_levels"] == [9]
    assert result["marketplace_unlocked"]


@pytest.mark.asyncio
async def test_set_player_level_rebuilds_trophies(db):
    service = ProgressionService(db)
    result = await service.set_player_level(PLAYER, 5)

    assert result["total_xp"] == 70001
    assert result["trophies_awarded"] == 5
    assert await trophy_levels(db, PLAYER) == [0, 1, 2, 3, 4]

    await service.set_player_level(PLAYER, 2)
    assert await trophy_levels(db, PLAYER) == [0, 1]


@pytest.mark.asyncio
async def test_set_player_level_validation(db):
    service = ProgressionService(db)
    with pytest.raises(ValidationError):
        await service.set_player_level(PLAYER, 14)
    with pytest.raises(ValidationError):
        await service.set_player_level(PLAYER, 3, exact_xp=-1)


@pytest.mark.asyncio
async def test_merge_duplicate_profiles(db):
    db.add(PlayerProfile(wallet_address=MIXED_CASE, player_name="Old", total_xp=15000, total_games_played=3, total_winnings=100.0))
    await db.flush()
    db.add(PlayerProfile(wallet_address=MIXED_CASE.lower(), total_xp=6000, total_games_played=2, total_winnings=50.0))
    await add_finished_game(db, MIXED_CASE, 10, tx_hash(1))
    await db.flush()

    result = await ProgressionService(db).merge_duplicate_profiles()

    assert len(result["merged"]) == 1
    merged = result["merged"][0]
    assert merged["merged_from"] == 2
    assert merged["new_total_xp"] == 21000

    profiles = (await db.execute(select(PlayerProfile))).scalars().all()
    assert len(profiles) == 1
    assert profiles[0].wallet_address == MIXED_CASE.lower()
    assert profiles[0].player_name == "Old"
    assert profiles[0].total_games_played == 5
    assert profiles[0].god_name == "Aphrodite"
    assert await trophy_levels(db, MIXED_CASE.lower()) == [0, 1]


@pytest.mark.asyncio
async def test_sell_trophies(db):
    service = ProgressionService(db)
    db.add(Trophy(level=0, god_name="New God Born", btc_sale_price=0.00002))
    await service.set_player_level(PLAYER, 10)

    sale = await service.sell_trophies(PLAYER, 60000)

    assert isinstance(sale, NFTSaleRequest)
    assert sale.status == "pending"
    assert len(sale.nfts_sold) == 10
    expected_btc = 0.00002 + sum(DEFAULT_TROPHY_BTC_PRICES[level] for level in range(1, 10))
    assert sale.total_btc_value == pytest.approx(expected_btc)
    assert sale.total_usdt_value == pytest.approx(expected_btc * 60000, abs=0.05)

    profile = await service.get_profile(PLAYER)
    assert profile.total_xp == 0
    assert profile.current_level == 0
    assert await trophy_levels(db, PLAYER) == []


@pytest.mark.asyncio
async def test_sell_trophies_requires_level9(db):
    service = ProgressionService(db)
    with pytest.raises(PlayerNotFoundError):
        await service.sell_trophies(PLAYER, 60000)

    await service.set_player_level(PLAYER, 5)
    with pytest.raises(GameStateError):
        await service.sell_trophies(PLAYER, 60000)
    with pytest.raises(ValidationError):
        await service.sell_trophies(PLAYER, 0)


@pytest.mark.asyncio
async def test_profile_summary_exposes_both_levels(db):
    service = ProgressionService(db)
    await service.set_player_level(PLAYER, 0, exact_xp=25000)

    summary = await service.get_profile_summary(PLAYER)
    assert summary["current_tier"]["name"] == "Dionysus"
    assert summary["completed_tier"]["name"] == "Aphrodite"
    assert summary["completed_levels"] == [0, 1]
