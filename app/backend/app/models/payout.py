"""
Payout-pending records resolved by admins: scatter wins, trophy NFT sales
and manual payouts.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import String, Integer, Float, Index, JSON, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, utcnow


class PayoutStatus(str, Enum):
    """Payout lifecycle."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class ScatterWin(BaseModel, TimestampMixin):
    """Result of a scatter bonus round."""

    __tablename__ = "scatter_wins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_address: Mapped[str] = mapped_column(String(42))
    player_name: Mapped[str] = mapped_column(String(64), default="Anonymous")

    boxes_picked: Mapped[List[int]] = mapped_column(
        JSON,
        comment="Picked box indices (0-based)"
    )

    box_amounts: Mapped[List[float]] = mapped_column(
        JSON,
        comment="Shuffled amount per box"
    )

    total_winnings: Mapped[float] = mapped_column(Float, comment="Sum of picked boxes")

    triggering_games: Mapped[List[int]] = mapped_column(
        JSON,
        comment="Game ids of the consecutive $1M wins"
    )

    status: Mapped[str] = mapped_column(String(20), default=PayoutStatus.PENDING.value)
    paid_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    payout_tx_hash: Mapped[Optional[str]] = mapped_column(String(128))

    __table_args__ = (
        Index("idx_scatter_win_wallet", "wallet_address"),
        Index("idx_scatter_win_status", "status"),
    )


class NFTSaleRequest(BaseModel, TimestampMixin):
    """Request to sell trophies 0-9 back to the house."""

    __tablename__ = "nft_sale_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_address: Mapped[str] = mapped_column(String(42))
    player_name: Mapped[str] = mapped_column(String(64), default="Anonymous")

    nfts_sold: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        comment="Sold trophies with level, god_name, btc_price, usdt_value"
    )

    total_btc_value: Mapped[float] = mapped_column(Float, default=0.0)
    total_usdt_value: Mapped[float] = mapped_column(Float, default=0.0)

    status: Mapped[str] = mapped_column(String(20), default=PayoutStatus.PENDING.value)
    request_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    paid_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    payout_tx_hash: Mapped[Optional[str]] = mapped_column(String(128))

    __table_args__ = (
        Index("idx_nft_sale_wallet", "wallet_address"),
        Index("idx_nft_sale_status", "status"),
    )


class ManualPayout(BaseModel, TimestampMixin):
    """Payout recorded by hand by an admin."""

    __tablename__ = "manual_payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_address: Mapped[str] = mapped_column(String(42))
    player_name: Mapped[Optional[str]] = mapped_column(String(64))
    amount: Mapped[float] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(10), default="USDT")
    reason: Mapped[Optional[str]] = mapped_column(Text)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(128))
    date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_manual_payout_date", "date"),
    )
