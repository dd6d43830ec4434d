"""
Leaderboard period model - 30-day XP competitions with XRP prizes.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, BigInteger, Float, Index, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class PeriodStatus(str, Enum):
    """Leaderboard period lifecycle."""
    ACTIVE = "active"
    COMPLETED = "completed"
    PAID = "paid"


class LeaderboardPeriod(BaseModel, TimestampMixin):
    """One leaderboard competition window."""

    __tablename__ = "leaderboard_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    period_number: Mapped[int] = mapped_column(
        Integer,
        comment="Sequential period number"
    )

    start_date: Mapped[datetime] = mapped_column(DateTime, comment="Period start (UTC)")
    end_date: Mapped[datetime] = mapped_column(DateTime, comment="Period end (UTC), moves on resume")

    status: Mapped[str] = mapped_column(
        String(20),
        default=PeriodStatus.ACTIVE.value,
        comment="active, completed or paid"
    )

    # Pause / freeze
    paused_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        comment="When the countdown was paused"
    )

    frozen_time_remaining_ms: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        comment="Milliseconds left at pause time"
    )

    # Payout
    paid_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    xrp_usd_rate: Mapped[Optional[float]] = mapped_column(Float)
    total_paid_usd: Mapped[Optional[float]] = mapped_column(Float)

    winner_1st: Mapped[Optional[str]] = mapped_column(String(42))
    winner_2nd: Mapped[Optional[str]] = mapped_column(String(42))
    winner_3rd: Mapped[Optional[str]] = mapped_column(String(42))
    winner_1st_score: Mapped[int] = mapped_column(Integer, default=0)
    winner_2nd_score: Mapped[int] = mapped_column(Integer, default=0)
    winner_3rd_score: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("idx_leaderboard_period_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<LeaderboardPeriod(number={self.period_number}, status={self.status})>"

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None
