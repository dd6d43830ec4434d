"""
Shared fixtures: an in-memory SQLite database per test, seeded helpers and a
fake chain client.
"""

import os

# Settings are read at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PAYMENT_MONITOR_ENABLED", "false")
os.environ.setdefault("LEADERBOARD_SCHEDULER_ENABLED", "false")
os.environ.setdefault("MARKET_TICKER_ENABLED", "false")
os.environ.setdefault("ADMIN_WALLETS", "0xadadadadadadadadadadadadadadadadadadadad")

from datetime import timedelta
from typing import Dict, List, Optional

import pytest

from app.core.database import init_database, close_database, get_async_session, DatabaseManager
from app.models.base import utcnow
from app.models.game import Game, GameStatus
from app.models.payment import PaymentIntent, IntentStatus
from app.services.bsc_client import TransferLog, to_raw_amount

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PLAYER = "0x1111111111111111111111111111111111111111"
OTHER_PLAYER = "0x2222222222222222222222222222222222222222"
ADMIN = "0xadadadadadadadadadadadadadadadadadadadad"
GAME_WALLET = "0x508d61ad3f1559679bfae3942508b4cf7767935a"


def tx_hash(n: int) -> str:
    return "0x" + format(n, "064x")


@pytest.fixture
async def database():
    """Fresh schema for every test."""
    await init_database(TEST_DATABASE_URL)
    await DatabaseManager.create_tables()
    yield
    await close_database()


@pytest.fixture
async def db(database):
    async with get_async_session() as session:
        yield session


async def add_confirmed_intent(db, wallet: str, hash_: str, case_number: int = 7, amount: float = 0.01) -> PaymentIntent:
    intent = PaymentIntent(
        order_id=f"CASE-{case_number}-{int(utcnow().timestamp() * 1000)}{hash_[-4:]}",
        expected_from_address=wallet,
        expected_to_address=GAME_WALLET,
        expected_amount=amount,
        tx_hash=hash_,
        status=IntentStatus.CONFIRMED.value,
        confirmations=6,
        target_confirmations=6,
    )
    db.add(intent)
    await db.flush()
    return intent


async def add_finished_game(db, wallet: str, winnings: float, hash_: str, minutes_ago: int = 0) -> Game:
    game = Game(
        wallet_address=wallet,
        game_status=GameStatus.COMPLETED.value,
        player_case_number=1,
        case_amounts=[0.0] * 26,
        opened_cases=[],
        banker_offers=[],
        current_round=9,
        final_winnings=winnings,
        xp_earned=0,
        game_fee=0.01,
        tx_hash=hash_,
        created_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    db.add(game)
    await db.flush()
    return game


class FakeChainClient:
    """In-memory stand-in for BscClient."""

    def __init__(self, block_number: int = 1000):
        self.block_number = block_number
        self.transfers: List[TransferLog] = []
        self.block_times: Dict[int, object] = {}
        self.receipts: Dict[str, Dict] = {}

    def add_transfer(self, hash_: str, sender: str, receiver: str, amount: float, block_number: int) -> TransferLog:
        transfer = TransferLog(
            tx_hash=hash_,
            block_number=block_number,
            log_index=0,
            from_address=sender.lower(),
            to_address=receiver.lower(),
            value=to_raw_amount(amount),
        )
        self.transfers.append(transfer)
        self.block_times.setdefault(block_number, utcnow())
        return transfer

    async def get_block_number(self) -> int:
        return self.block_number

    async def get_block_timestamp(self, block_number: int):
        return self.block_times.get(block_number)

    async def get_transfer_logs(self, to_address: str, from_block: int, to_block: int, from_address: Optional[str] = None):
        return [
            t for t in self.transfers
            if t.to_address == to_address.lower() and from_block <= t.block_number <= to_block
        ]

    async def verify_transaction(self, hash_: str, expected_to: str, expected_amount: float, expected_from: Optional[str] = None):
        return self.receipts.get(hash_, {"verified": False, "failed": False, "confirmations": 0, "block_number": None})
