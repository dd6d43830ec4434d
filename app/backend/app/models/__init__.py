"""
Database models for the Deal or No Deal backend.

SQLAlchemy models for games, player progression, payments, leaderboard
periods and the admin payout queues.
"""

from .base import Base, BaseModel, TimestampMixin
from .profile import PlayerProfile
from .game import Game, GameStatus, OfferStatus, FINISHED_STATUSES
from .trophy import Trophy, PlayerTrophy
from .leaderboard import LeaderboardPeriod, PeriodStatus
from .payout import ScatterWin, NFTSaleRequest, ManualPayout, PayoutStatus
from .payment import PaymentIntent, PendingGamePayment, MonitoringState, IntentStatus
from .notification import Notification
from .game_settings import GameSettings, GAME_TYPE

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "PlayerProfile",
    "Game",
    "GameStatus",
    "OfferStatus",
    "FINISHED_STATUSES",
    "Trophy",
    "PlayerTrophy",
    "LeaderboardPeriod",
    "PeriodStatus",
    "ScatterWin",
    "NFTSaleRequest",
    "ManualPayout",
    "PayoutStatus",
    "PaymentIntent",
    "PendingGamePayment",
    "MonitoringState",
    "IntentStatus",
    "Notification",
    "GameSettings",
    "GAME_TYPE",
]
