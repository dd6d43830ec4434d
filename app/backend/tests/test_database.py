"""
Tests for engine lifecycle and the schema helpers.
"""

import pytest

from app.core import database as db_module
from app.core.database import DatabaseManager, get_async_session
from app.models.profile import PlayerProfile

from .conftest import PLAYER


@pytest.mark.asyncio
async def test_health_check_reports_driver(database):
    report = await DatabaseManager.health_check()
    assert report["status"] == "healthy"
    assert report["driver"] == "sqlite+aiosqlite"
    assert report["latency_ms"] >= 0


@pytest.mark.asyncio
async def test_health_check_without_engine(monkeypatch):
    monkeypatch.setattr(db_module, "async_engine", None)
    report = await DatabaseManager.health_check()
    assert report["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_session_requires_init(monkeypatch):
    monkeypatch.setattr(db_module, "async_session_maker", None)
    with pytest.raises(RuntimeError):
        async with get_async_session():
            pass


@pytest.mark.asyncio
async def test_table_counts(database):
    async with get_async_session() as db:
        db.add(PlayerProfile(wallet_address=PLAYER))

    counts = await DatabaseManager.table_counts()
    assert counts["profiles"] == 1
    assert counts["deal_or_no_deal_games"] == 0


@pytest.mark.asyncio
async def test_session_rolls_back_on_error(database):
    with pytest.raises(ValueError):
        async with get_async_session() as db:
            db.add(PlayerProfile(wallet_address=PLAYER))
            await db.flush()
            raise ValueError("boom")

    counts = await DatabaseManager.table_counts()
    assert counts["profiles"] == 0
