"""
Player profile model - XP, levels and lifetime totals per wallet.
"""

from typing import List, Optional

from sqlalchemy import String, Integer, Boolean, Float, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class PlayerProfile(BaseModel, TimestampMixin):
    """Player profile keyed by wallet address."""

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Wallets are stored lower-cased; legacy rows may differ only by case
    wallet_address: Mapped[str] = mapped_column(
        String(42),
        comment="Player's BSC wallet address"
    )

    player_name: Mapped[Optional[str]] = mapped_column(
        String(64),
        comment="Display name"
    )

    # Progression
    total_xp: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Cumulative XP"
    )

    current_level: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Highest completed level (derived from total_xp)"
    )

    god_name: Mapped[str] = mapped_column(
        String(32),
        default="New God Born",
        comment="Trophy name of the completed level"
    )

    # Lifetime totals
    total_games_played: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Number of finished games"
    )

    total_winnings: Mapped[float] = mapped_column(
        Float,
        default=0.0,
        comment="Sum of final winnings in USD"
    )

    # Scatter bonus
    scatter_pending: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Whether a scatter bonus is waiting to be played"
    )

    scatter_trigger_games: Mapped[Optional[List[int]]] = mapped_column(
        JSON,
        comment="Game ids that triggered the pending scatter bonus"
    )

    # Level 9 branch
    chose_continue_after_level9: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Player kept playing for 1 BTC instead of selling trophies"
    )

    __table_args__ = (
        Index("idx_profile_wallet", "wallet_address"),
        Index("idx_profile_total_xp", "total_xp"),
    )

    def __repr__(self) -> str:
        return f"<PlayerProfile(wallet={self.wallet_address}, xp={self.total_xp}, level={self.current_level})>"
