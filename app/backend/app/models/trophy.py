"""
Trophy catalogue and per-player earned trophies.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Float, Index, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, utcnow


class Trophy(BaseModel, TimestampMixin):
    """Trophy NFT definition for one level."""

    __tablename__ = "trophies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    level: Mapped[int] = mapped_column(
        Integer,
        unique=True,
        comment="Level this trophy is earned for (0-13)"
    )

    god_name: Mapped[str] = mapped_column(
        String(32),
        comment="God name shown on the trophy"
    )

    nft_image_url: Mapped[Optional[str]] = mapped_column(
        String(512),
        comment="Trophy NFT image"
    )

    btc_sale_price: Mapped[float] = mapped_column(
        Float,
        default=0.0,
        comment="Marketplace buyback price in BTC"
    )

    def __repr__(self) -> str:
        return f"<Trophy(level={self.level}, god={self.god_name}, btc={self.btc_sale_price})>"


class PlayerTrophy(BaseModel, TimestampMixin):
    """Trophy earned by a player."""

    __tablename__ = "player_trophies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_address: Mapped[str] = mapped_column(
        String(42),
        comment="Owner wallet (lower-cased)"
    )

    trophy_level: Mapped[int] = mapped_column(
        Integer,
        comment="Completed level"
    )

    god_name: Mapped[str] = mapped_column(
        String(32),
        comment="God name of the level"
    )

    earned_date: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        comment="When the level was completed"
    )

    nft_image_url: Mapped[Optional[str]] = mapped_column(
        String(512),
        comment="Image copied from the catalogue at award time"
    )

    __table_args__ = (
        UniqueConstraint("wallet_address", "trophy_level", name="uq_player_trophy_level"),
        Index("idx_player_trophy_wallet", "wallet_address"),
    )

    def __repr__(self) -> str:
        return f"<PlayerTrophy(wallet={self.wallet_address}, level={self.trophy_level})>"
